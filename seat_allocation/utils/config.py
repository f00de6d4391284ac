"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_tuple(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    database_busy_timeout_seconds: float
    seed_demo_data: bool
    notification_webhook_url: str | None
    notification_timeout_seconds: float
    notification_admin_recipients: tuple[str, ...]
    notification_override_recipient: str | None
    notification_sender: str
    asset_id_pad_width: int
    asset_id_parse_strict: bool
    asset_id_max_ids: int
    request_number_prefix: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process; tests override with dataclasses.replace."""
    project_root = Path(__file__).resolve().parents[2]
    default_db = project_root / "data" / "seat_allocation.db"
    return Settings(
        app_name=os.getenv("APP_NAME", "Workstation Allocation Service"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("DATABASE_PATH", str(default_db))),
        database_busy_timeout_seconds=float(
            os.getenv("DATABASE_BUSY_TIMEOUT_SECONDS", "10")
        ),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        notification_webhook_url=os.getenv("NOTIFICATION_WEBHOOK_URL") or None,
        notification_timeout_seconds=float(
            os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5")
        ),
        notification_admin_recipients=_env_tuple("NOTIFICATION_ADMIN_RECIPIENTS"),
        notification_override_recipient=(
            os.getenv("NOTIFICATION_OVERRIDE_RECIPIENT") or None
        ),
        notification_sender=os.getenv(
            "NOTIFICATION_SENDER", "workstations@example.com"
        ),
        asset_id_pad_width=int(os.getenv("ASSET_ID_PAD_WIDTH", "3")),
        asset_id_parse_strict=_env_bool("ASSET_ID_PARSE_STRICT", False),
        asset_id_max_ids=int(os.getenv("ASSET_ID_MAX_IDS", "10000")),
        request_number_prefix=os.getenv("REQUEST_NUMBER_PREFIX", "REQ"),
    )
