"""
Security Utilities

JWT session tokens and the email allowlists that gate read and write access.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings


def _normalize(email: str | None) -> str:
    return (email or "").strip().lower()


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    runtime_settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=24))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, runtime_settings.jwt_secret, algorithm=runtime_settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a session token. Returns None when invalid or expired."""
    runtime_settings = get_settings()
    try:
        return jwt.decode(
            token,
            runtime_settings.jwt_secret,
            algorithms=[runtime_settings.jwt_algorithm],
        )
    except JWTError:
        return None


def is_allowed(email: str | None) -> bool:
    """Sign-in allowlist. An empty allowlist admits every authenticated email."""
    allowed = {_normalize(e) for e in get_settings().allowed_emails if e.strip()}
    if not allowed:
        return bool(_normalize(email))
    return _normalize(email) in allowed


def can_write(email: str | None) -> bool:
    """Write role: only emails on the write list may mutate ledgers and caches."""
    writers = {_normalize(e) for e in get_settings().write_emails if e.strip()}
    return _normalize(email) in writers
