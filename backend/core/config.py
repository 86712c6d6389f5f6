"""
Inbound Inventory Backend Configuration

Uses pydantic-settings for type-safe environment variable loading.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_JWT_SECRET = "dev-secret-change-in-production"

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Inbound Inventory"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Auth
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    allowed_emails: list[str] = []
    write_emails: list[str] = []
    cron_secret: str = ""

    # ── Durable store ────────────────────────────────────────────────
    # "local" keeps one JSON file per document; "drive" uses a Google shared drive.
    store_backend: str = "local"
    store_local_dir: str = ".cache/inventory"
    store_load_attempts: int = 3
    store_load_retry_seconds: float = 1.0
    store_conflict_retries: int = 3

    # Google Drive service account
    google_service_account_email: str = ""
    google_service_account_private_key: str = ""
    google_project_id: str = ""
    drive_shared_drive_name: str = "ProjectionsVsActual Cache"
    drive_folder_name: str = "Inventory-Cache"

    # Shopify
    shopify_shop_domain: str = ""
    shopify_access_token: str = ""
    shopify_api_version: str = "2024-10"
    # Mirror shipped and received transfer units onto Shopify stock levels.
    shopify_sync_transfers: bool = True

    # Slack
    slack_bot_token: str = ""
    slack_channel_transfers: str = ""
    slack_channel_production: str = ""
    slack_channel_alerts: str = ""

    # ── Business rules ───────────────────────────────────────────────
    transfer_strict_stock_check: bool = True
    low_stock_alert_location: str = "LA Office"
    production_receiving_location: str = "China WH"
    location_display_names: dict[str, str] = {
        "New LA Office": "LA Office",
        "DTLA Warehouse": "DTLA WH",
        "ShipBobFulfillment-343151": "ShipBob",
        "China Warehouse": "China WH",
    }
    location_order: list[str] = ["LA Office", "DTLA WH", "ShipBob", "China WH"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_security_guardrails(settings)
    return settings


def _enforce_security_guardrails(settings: Settings) -> None:
    env = settings.app_env.strip().lower()
    is_local = env in {"", "local", "dev", "development", "test"}
    if is_local:
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise ValueError("Refusing to start with default JWT secret outside local/dev/test")
    if settings.store_backend == "drive" and not (
        settings.google_service_account_email and settings.google_service_account_private_key
    ):
        raise ValueError("Refusing to start the drive store without service account credentials")
