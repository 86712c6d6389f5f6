"""
Google Drive backend — documents live as `<key>.json` files inside a folder of
a shared drive, accessed through the Drive v3 REST API with a service account.

The access token comes from the OAuth2 JWT-bearer flow: a short-lived RS256
assertion signed with the service account key is exchanged at the token
endpoint. Drive's monotonically increasing file `version` is the version token.
"""

import json
import time
import uuid
from typing import Any

import httpx
import structlog
from jose import jwt

from store.base import ABSENT, DurableStore, StoreReadError, StoreWriteError, StoredDocument, VersionConflictError

logger = structlog.get_logger()

TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive"
FOLDER_MIME = "application/vnd.google-apps.folder"


def normalize_private_key(key: str) -> str:
    """Env files often carry the PEM with literal `\\n` sequences."""
    if "\\n" in key:
        key = key.replace("\\n", "\n")
    return key


class GoogleDriveStore(DurableStore):
    def __init__(
        self,
        service_account_email: str,
        private_key: str,
        shared_drive_name: str,
        folder_name: str = "Inventory-Cache",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.service_account_email = service_account_email
        self.private_key = normalize_private_key(private_key)
        self.shared_drive_name = shared_drive_name
        self.folder_name = folder_name
        self._transport = transport
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._drive_id: str | None = None
        self._folder_id: str | None = None
        self._file_ids: dict[str, str] = {}
        self.logger = logger.bind(backend="drive", shared_drive=shared_drive_name)

    @property
    def backend_name(self) -> str:
        return "drive"

    # ── Auth ───────────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=30.0)

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        now = time.time()
        if self._token and self._token_expires_at - 60 > now:
            return self._token

        assertion = jwt.encode(
            {
                "iss": self.service_account_email,
                "scope": DRIVE_SCOPE,
                "aud": TOKEN_URL,
                "iat": int(now),
                "exp": int(now) + 3600,
            },
            self.private_key,
            algorithm="RS256",
        )
        response = await client.post(
            TOKEN_URL,
            data={"grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer", "assertion": assertion},
        )
        response.raise_for_status()
        payload = response.json()
        self._token = payload["access_token"]
        self._token_expires_at = now + int(payload.get("expires_in", 3600))
        return self._token

    async def _headers(self, client: httpx.AsyncClient) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self._access_token(client)}"}

    # ── Lookup ─────────────────────────────────────────────────────────

    async def _find_shared_drive(self, client: httpx.AsyncClient) -> str:
        if self._drive_id:
            return self._drive_id
        response = await client.get(
            f"{DRIVE_API}/drives", headers=await self._headers(client), params={"pageSize": 100}
        )
        response.raise_for_status()
        for drive in response.json().get("drives", []):
            if drive.get("name") == self.shared_drive_name:
                self._drive_id = drive["id"]
                return self._drive_id
        raise StoreReadError(f"Shared drive '{self.shared_drive_name}' not found")

    async def _find_or_create_folder(self, client: httpx.AsyncClient, drive_id: str) -> str:
        if self._folder_id:
            return self._folder_id
        headers = await self._headers(client)
        response = await client.get(
            f"{DRIVE_API}/files",
            headers=headers,
            params={
                "q": f"name='{self.folder_name}' and '{drive_id}' in parents "
                f"and mimeType='{FOLDER_MIME}' and trashed=false",
                "driveId": drive_id,
                "corpora": "drive",
                "includeItemsFromAllDrives": "true",
                "supportsAllDrives": "true",
                "fields": "files(id, name)",
            },
        )
        response.raise_for_status()
        files = response.json().get("files", [])
        if files:
            self._folder_id = files[0]["id"]
            return self._folder_id

        created = await client.post(
            f"{DRIVE_API}/files",
            headers=headers,
            params={"supportsAllDrives": "true", "fields": "id"},
            json={"name": self.folder_name, "mimeType": FOLDER_MIME, "parents": [drive_id]},
        )
        created.raise_for_status()
        self._folder_id = created.json()["id"]
        self.logger.info("store.folder_created", folder=self.folder_name)
        return self._folder_id

    async def _find_file(self, client: httpx.AsyncClient, key: str) -> dict | None:
        drive_id = await self._find_shared_drive(client)
        folder_id = await self._find_or_create_folder(client, drive_id)
        response = await client.get(
            f"{DRIVE_API}/files",
            headers=await self._headers(client),
            params={
                "q": f"name='{key}.json' and '{folder_id}' in parents and trashed=false",
                "driveId": drive_id,
                "corpora": "drive",
                "includeItemsFromAllDrives": "true",
                "supportsAllDrives": "true",
                "fields": "files(id, name, version)",
            },
        )
        response.raise_for_status()
        files = response.json().get("files", [])
        if not files:
            return None
        self._file_ids[key] = files[0]["id"]
        return files[0]

    # ── DurableStore ───────────────────────────────────────────────────

    async def load(self, key: str) -> StoredDocument | None:
        try:
            async with self._client() as client:
                meta = await self._find_file(client, key)
                if meta is None:
                    self.logger.info("store.document_missing", key=key)
                    return None
                response = await client.get(
                    f"{DRIVE_API}/files/{meta['id']}",
                    headers=await self._headers(client),
                    params={"alt": "media", "supportsAllDrives": "true"},
                )
                response.raise_for_status()
                data = json.loads(response.content.decode("utf-8"))
        except httpx.HTTPError as exc:
            raise StoreReadError(f"Drive read failed for {key}: {exc}") from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreReadError(f"Document {key} is not valid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise StoreReadError(f"Document {key} is not a JSON object")
        return StoredDocument(data=data, version=str(meta.get("version", "")))

    async def save(self, key: str, data: dict[str, Any], expected_version: str | None = None) -> str:
        body = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
        try:
            async with self._client() as client:
                meta = await self._find_file(client, key)
                if expected_version is not None:
                    # Drive has no conditional upload; this narrows the window but does not close it.
                    actual = ABSENT if meta is None else str(meta.get("version", ""))
                    if actual != expected_version:
                        raise VersionConflictError(key, expected_version, actual)

                headers = await self._headers(client)
                if meta is not None:
                    response = await client.patch(
                        f"{DRIVE_UPLOAD_API}/files/{meta['id']}",
                        headers={**headers, "Content-Type": "application/json"},
                        params={"uploadType": "media", "supportsAllDrives": "true", "fields": "id, version"},
                        content=body,
                    )
                else:
                    boundary = uuid.uuid4().hex
                    metadata = json.dumps({"name": f"{key}.json", "parents": [self._folder_id]})
                    multipart = (
                        f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n{metadata}\r\n"
                        f"--{boundary}\r\nContent-Type: application/json\r\n\r\n"
                    ).encode("utf-8") + body + f"\r\n--{boundary}--".encode("utf-8")
                    response = await client.post(
                        f"{DRIVE_UPLOAD_API}/files",
                        headers={**headers, "Content-Type": f"multipart/related; boundary={boundary}"},
                        params={"uploadType": "multipart", "supportsAllDrives": "true", "fields": "id, version"},
                        content=multipart,
                    )
                response.raise_for_status()
                saved = response.json()
        except httpx.HTTPError as exc:
            raise StoreWriteError(f"Drive write failed for {key}: {exc}") from exc

        self._file_ids[key] = saved.get("id", self._file_ids.get(key, ""))
        self.logger.info("store.saved", key=key, size=len(body), created=meta is None)
        return str(saved.get("version", ""))
