from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from core.errors import ValidationError
from core.models import ExportSettings, UploadCredentials, parse_flag

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "nalda_sync_settings.json"
DEFAULT_EXPORT_DIR = "~/.nalda_sync/exports"

SCHEDULE_INTERVALS = {
    "every_10_minutes": 600,
    "hourly": 3600,
    "twicedaily": 43200,
    "daily": 86400,
}
DEFAULT_SCHEDULE = "hourly"

# settings key -> environment variable
ENV_OVERRIDES = {
    "country": "NALDA_COUNTRY",
    "currency": "NALDA_CURRENCY",
    "tax_rate": "NALDA_TAX_RATE",
    "return_days": "NALDA_RETURN_DAYS",
    "delivery_days": "NALDA_DELIVERY_DAYS",
    "condition": "NALDA_CONDITION",
    "default_brand": "NALDA_DEFAULT_BRAND",
    "require_gtin": "NALDA_REQUIRE_GTIN",
    "language": "NALDA_LANGUAGE",
    "export_dir": "NALDA_EXPORT_DIR",
    "schedule": "NALDA_SCHEDULE",
    "schedule_enabled": "NALDA_SCHEDULE_ENABLED",
    "ftp_enabled": "NALDA_FTP_ENABLED",
    "ftp_type": "NALDA_FTP_TYPE",
    "ftp_server": "NALDA_FTP_SERVER",
    "ftp_port": "NALDA_FTP_PORT",
    "ftp_username": "NALDA_FTP_USERNAME",
    "ftp_password": "NALDA_FTP_PASSWORD",
    "ftp_path": "NALDA_FTP_PATH",
    "ftp_ssl": "NALDA_FTP_SSL",
    "woocommerce_url": "WOOCOMMERCE_URL",
    "woocommerce_key": "WOOCOMMERCE_KEY",
    "woocommerce_secret": "WOOCOMMERCE_SECRET",
}


def get_settings_path() -> Path:
    """Return path to the settings JSON (NALDA_SYNC_SETTINGS overrides)."""
    override = os.getenv("NALDA_SYNC_SETTINGS")
    if override:
        return Path(override).expanduser()
    return Path("~/.nalda_sync").expanduser() / SETTINGS_FILENAME


def load_settings(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or get_settings_path()
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not read settings %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def apply_env_overrides(data: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    merged = dict(data)
    for key, env_name in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is not None and value != "":
            merged[key] = value
    return merged


@dataclass(frozen=True)
class SyncConfig:
    """Everything one export run needs, resolved once and passed explicitly."""

    settings: ExportSettings = field(default_factory=ExportSettings)
    credentials: UploadCredentials = field(default_factory=UploadCredentials)
    export_dir: Path = field(default_factory=lambda: Path(DEFAULT_EXPORT_DIR).expanduser())
    schedule: str = DEFAULT_SCHEDULE
    schedule_enabled: bool = False

    @property
    def schedule_interval(self) -> int:
        return SCHEDULE_INTERVALS[self.schedule]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SyncConfig":
        schedule = str(data.get("schedule") or DEFAULT_SCHEDULE).strip()
        if schedule not in SCHEDULE_INTERVALS:
            raise ValidationError(
                f"Unknown schedule {schedule!r}; expected one of {', '.join(SCHEDULE_INTERVALS)}"
            )
        export_dir = Path(str(data.get("export_dir") or DEFAULT_EXPORT_DIR)).expanduser()
        return cls(
            settings=ExportSettings.from_mapping(data),
            credentials=UploadCredentials.from_mapping(data),
            export_dir=export_dir,
            schedule=schedule,
            schedule_enabled=parse_flag(data.get("schedule_enabled")),
        )


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """Settings file + environment overrides -> SyncConfig snapshot."""
    return SyncConfig.from_mapping(apply_env_overrides(load_settings(path), environ))
