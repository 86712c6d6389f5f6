"""
Tests — durable store backends and the retrying read / read-merge-write helpers.
"""

import json
import re
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from core.errors import ConcurrentModificationError, StoreUnavailableError
from store import (
    ABSENT,
    StoredDocument,
    StoreReadError,
    StoreWriteError,
    VersionConflictError,
    build_store,
    load_document,
    mutate_document,
)
from store.drive import TOKEN_URL, GoogleDriveStore, normalize_private_key
from store.local import LocalFileStore


class FlakyStore(LocalFileStore):
    """LocalFileStore whose first `failures` loads (or every save) fail."""

    def __init__(self, directory, failures=0, fail_saves=False):
        super().__init__(directory)
        self.failures = failures
        self.fail_saves = fail_saves
        self.load_calls = 0

    async def load(self, key):
        self.load_calls += 1
        if self.load_calls <= self.failures:
            raise StoreReadError("transient read failure")
        return await super().load(key)

    async def save(self, key, data, expected_version=None):
        if self.fail_saves:
            raise StoreWriteError("disk full")
        return await super().save(key, data, expected_version)


@pytest.mark.asyncio
class TestLocalFileStore:
    async def test_missing_document_loads_as_none(self, tmp_path):
        assert await LocalFileStore(tmp_path).load("transfers") is None

    async def test_save_and_load_round_trip_with_version(self, tmp_path):
        store = LocalFileStore(tmp_path)
        version = await store.save("transfers", {"transfers": [], "nextTransferNumber": 1}, expected_version=ABSENT)

        loaded = await store.load("transfers")
        assert loaded.data == {"transfers": [], "nextTransferNumber": 1}
        assert loaded.version == version
        assert not list(tmp_path.glob("*.tmp"))

    async def test_stale_version_rejected(self, tmp_path):
        store = LocalFileStore(tmp_path)
        v1 = await store.save("doc", {"n": 1})
        await store.save("doc", {"n": 2}, expected_version=v1)

        with pytest.raises(VersionConflictError) as exc_info:
            await store.save("doc", {"n": 3}, expected_version=v1)
        assert exc_info.value.expected == v1
        assert (await store.load("doc")).data == {"n": 2}

    async def test_absent_expectation_rejects_existing_document(self, tmp_path):
        store = LocalFileStore(tmp_path)
        await store.save("doc", {"n": 1})
        with pytest.raises(VersionConflictError):
            await store.save("doc", {"n": 2}, expected_version=ABSENT)

    async def test_corrupt_document_is_read_error(self, tmp_path):
        (tmp_path / "doc.json").write_text("{not json")
        with pytest.raises(StoreReadError):
            await LocalFileStore(tmp_path).load("doc")

    async def test_build_store_selects_backend(self, settings):
        assert build_store(settings).backend_name == "local"
        settings.store_backend = "floppy"
        with pytest.raises(ValueError):
            build_store(settings)


@pytest.mark.asyncio
class TestResilientAccess:
    async def test_transient_read_failures_are_retried(self, tmp_path):
        store = FlakyStore(tmp_path, failures=2)
        await LocalFileStore(tmp_path).save("doc", {"n": 1})

        loaded = await load_document(store, "doc", attempts=3, wait_seconds=0)

        assert loaded.data == {"n": 1}
        assert store.load_calls == 3

    async def test_exhausted_reads_never_fall_back_to_empty(self, tmp_path):
        await LocalFileStore(tmp_path).save("doc", {"keep": True})
        store = FlakyStore(tmp_path, failures=10)

        with pytest.raises(StoreUnavailableError):
            await mutate_document(store, "doc", lambda doc: doc.clear(), attempts=3, wait_seconds=0)

        assert store.load_calls == 3
        assert (await LocalFileStore(tmp_path).load("doc")).data == {"keep": True}

    async def test_missing_document_uses_default(self, tmp_path):
        store = LocalFileStore(tmp_path)
        result = await mutate_document(
            store, "doc", lambda doc: doc["items"].append(1) or len(doc["items"]),
            default_factory=lambda: {"items": []}, wait_seconds=0,
        )
        assert result == 1
        assert (await store.load("doc")).data == {"items": [1]}

    async def test_conflicting_writer_is_merged_not_overwritten(self, tmp_path):
        store = LocalFileStore(tmp_path)
        await store.save("doc", {"a": 1})
        calls = []

        async def mutator(doc):
            calls.append(dict(doc))
            if len(calls) == 1:
                # another process writes between our read and our save
                await store.save("doc", {"a": 1, "b": 2})
            doc["c"] = 3

        await mutate_document(store, "doc", mutator, wait_seconds=0)

        assert len(calls) == 2
        assert (await store.load("doc")).data == {"a": 1, "b": 2, "c": 3}

    async def test_persistent_conflicts_surface(self, tmp_path):
        store = LocalFileStore(tmp_path)
        await store.save("doc", {"n": 0})

        async def interfering(doc):
            current = (await store.load("doc")).data
            await store.save("doc", {"n": current["n"] + 1})
            doc["mine"] = True

        with pytest.raises(ConcurrentModificationError):
            await mutate_document(store, "doc", interfering, wait_seconds=0, conflict_retries=1)
        assert "mine" not in (await store.load("doc")).data

    async def test_write_failure_is_unavailable(self, tmp_path):
        store = FlakyStore(tmp_path, fail_saves=True)
        with pytest.raises(StoreUnavailableError):
            await mutate_document(store, "doc", lambda doc: doc.update(n=1), wait_seconds=0)

    async def test_mutator_error_writes_nothing(self, tmp_path):
        store = LocalFileStore(tmp_path)
        await store.save("doc", {"n": 1})

        def explode(doc):
            doc["n"] = 99
            raise RuntimeError("bad input")

        with pytest.raises(RuntimeError):
            await mutate_document(store, "doc", explode, wait_seconds=0)
        assert (await store.load("doc")).data == {"n": 1}


# ── Google Drive backend ──────────────────────────────────────────────────


@pytest.fixture(scope="module")
def rsa_key_pair():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


class FakeDrive:
    """Just enough of the token endpoint and Drive v3 for GoogleDriveStore."""

    def __init__(self, public_pem):
        self.public_pem = public_pem
        self.files = {}  # file id -> {"name", "version", "content"}
        self.folders = []
        self.token_requests = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if str(request.url).startswith(TOKEN_URL):
            form = parse_qs(request.content.decode())
            claims = jwt.decode(form["assertion"][0], self.public_pem, algorithms=["RS256"], audience=TOKEN_URL)
            assert claims["iss"] == "svc@example.iam.gserviceaccount.com"
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})

        assert request.headers["Authorization"] == "Bearer tok"
        if path == "/drive/v3/drives":
            return httpx.Response(200, json={"drives": [{"id": "drive-1", "name": "Cache Drive"}]})
        if path == "/drive/v3/files" and request.method == "GET":
            query = request.url.params["q"]
            if "mimeType" in query:
                return httpx.Response(200, json={"files": [{"id": f} for f in self.folders]})
            name = re.search(r"name='([^']+)'", query).group(1)
            matches = [
                {"id": fid, "name": f["name"], "version": str(f["version"])}
                for fid, f in self.files.items()
                if f["name"] == name
            ]
            return httpx.Response(200, json={"files": matches})
        if path == "/drive/v3/files" and request.method == "POST":
            self.folders.append("folder-1")
            return httpx.Response(200, json={"id": "folder-1"})
        if path.startswith("/drive/v3/files/"):
            file = self.files[path.rsplit("/", 1)[-1]]
            return httpx.Response(200, content=file["content"])
        if path == "/upload/drive/v3/files":
            parts = request.content.split(b"\r\n\r\n")
            metadata = json.loads(parts[1].split(b"\r\n")[0])
            content = parts[2].rsplit(b"\r\n--", 1)[0]
            file_id = f"file-{len(self.files) + 1}"
            self.files[file_id] = {"name": metadata["name"], "version": 1, "content": content}
            return httpx.Response(200, json={"id": file_id, "version": "1"})
        if path.startswith("/upload/drive/v3/files/"):
            file_id = path.rsplit("/", 1)[-1]
            self.files[file_id]["version"] += 1
            self.files[file_id]["content"] = request.content
            return httpx.Response(200, json={"id": file_id, "version": str(self.files[file_id]["version"])})
        return httpx.Response(404)


@pytest.mark.asyncio
class TestGoogleDriveStore:
    def _store(self, rsa_key_pair, handler):
        private_pem, _ = rsa_key_pair
        return GoogleDriveStore(
            service_account_email="svc@example.iam.gserviceaccount.com",
            private_key=private_pem.replace("\n", "\\n"),
            shared_drive_name="Cache Drive",
            transport=httpx.MockTransport(handler),
        )

    async def test_create_update_and_conflict(self, rsa_key_pair):
        drive = FakeDrive(rsa_key_pair[1])
        store = self._store(rsa_key_pair, drive.handler)

        assert await store.load("transfers") is None
        assert drive.folders == ["folder-1"]

        v1 = await store.save("transfers", {"transfers": []}, expected_version=ABSENT)
        assert v1 == "1"
        loaded = await store.load("transfers")
        assert loaded == StoredDocument(data={"transfers": []}, version="1")

        v2 = await store.save("transfers", {"transfers": [{"id": "T0001"}]}, expected_version=v1)
        assert v2 == "2"
        with pytest.raises(VersionConflictError):
            await store.save("transfers", {"transfers": []}, expected_version=v1)

        assert (await store.load("transfers")).data == {"transfers": [{"id": "T0001"}]}
        assert drive.token_requests == 1

    async def test_http_failure_is_read_error(self, rsa_key_pair):
        def broken(request):
            if str(request.url).startswith(TOKEN_URL):
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(500)

        with pytest.raises(StoreReadError):
            await self._store(rsa_key_pair, broken).load("transfers")

    async def test_missing_shared_drive(self, rsa_key_pair):
        def empty(request):
            if str(request.url).startswith(TOKEN_URL):
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, json={"drives": []})

        with pytest.raises(StoreReadError, match="not found"):
            await self._store(rsa_key_pair, empty).load("transfers")


def test_private_key_newlines_are_restored():
    assert normalize_private_key("-----BEGIN-----\\nabc\\n-----END-----") == "-----BEGIN-----\nabc\n-----END-----"
