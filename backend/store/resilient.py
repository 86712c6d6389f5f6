"""
Resilient access to the durable store.

`load_document` is the single retrying read used by every ledger and cache
operation. `mutate_document` is the read-merge-write cycle: the mutator runs on
the freshly loaded document and the save is conditional on the version that was
read, so a concurrent writer is never silently overwritten.
"""

import copy
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_fixed

from core.errors import ConcurrentModificationError, StoreUnavailableError
from store.base import ABSENT, DurableStore, StoreReadError, StoreWriteError, StoredDocument, VersionConflictError

logger = structlog.get_logger()

T = TypeVar("T")

Mutator = Callable[[dict[str, Any]], T | Awaitable[T]]


def _log_retry(retry_state) -> None:
    logger.warning(
        "store.load_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


async def load_document(
    store: DurableStore,
    key: str,
    *,
    attempts: int = 3,
    wait_seconds: float = 1.0,
) -> StoredDocument | None:
    """
    Load a document, retrying read failures with a fixed wait.

    Returns None only when the document genuinely does not exist. After the last
    failed attempt raises StoreUnavailableError, so callers never continue from
    an empty state that would overwrite recorded data.
    """
    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(StoreReadError),
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_fixed(wait_seconds),
            before_sleep=_log_retry,
        ):
            with attempt:
                return await store.load(key)
    except RetryError as exc:
        cause = exc.last_attempt.exception()
        logger.error("store.load_failed", key=key, attempts=attempts, error=str(cause))
        raise StoreUnavailableError(
            f"Could not load '{key}' after {attempts} attempts",
            details={"key": key},
        ) from cause
    return None


async def mutate_document(
    store: DurableStore,
    key: str,
    mutator: Mutator,
    default_factory: Callable[[], dict[str, Any]] = dict,
    *,
    attempts: int = 3,
    wait_seconds: float = 1.0,
    conflict_retries: int = 3,
) -> T:
    """
    Read-merge-write a document and return whatever the mutator returns.

    The mutator edits the document in place (sync or async). Exceptions it
    raises abort the cycle before anything is written. On a version conflict the
    document is re-read and the mutator re-applied.
    """
    for conflict in range(max(0, conflict_retries) + 1):
        loaded = await load_document(store, key, attempts=attempts, wait_seconds=wait_seconds)
        if loaded is None:
            data, version = default_factory(), ABSENT
        else:
            data, version = copy.deepcopy(loaded.data), loaded.version

        result = mutator(data)
        if isinstance(result, Awaitable):
            result = await result

        try:
            await store.save(key, data, expected_version=version)
            return result
        except VersionConflictError as exc:
            logger.warning("store.version_conflict", key=key, retry=conflict + 1, actual=exc.actual)
        except StoreWriteError as exc:
            logger.error("store.save_failed", key=key, error=str(exc))
            raise StoreUnavailableError(f"Could not save '{key}'", details={"key": key}) from exc

    raise ConcurrentModificationError(
        f"'{key}' was modified concurrently; please retry",
        details={"key": key},
    )


def retry_options(settings) -> dict[str, Any]:
    """Keyword arguments for load_document/mutate_document taken from settings."""
    return {
        "attempts": settings.store_load_attempts,
        "wait_seconds": settings.store_load_retry_seconds,
    }
