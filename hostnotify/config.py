"""Global configuration for hostnotify."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

DEFAULTS: dict[str, Any] = {
    "ip_rate_limit": 30,
    "reservation_rate_limit": 5,
    "rate_limit_window_seconds": 60,
    "event_rate_limit": 10,
    "event_rate_window_seconds": 300,
    "event_rate_max_keys": 200,
    "rate_prune_interval_minutes": 5,
    "notification_cooldown_seconds": 15,
    "provider_timeout_seconds": 8.0,
    "enable_scheduler": True,
    "base_url": "https://gopopera.ca",
    "email_from": "Popera <support@gopopera.ca>",
    "email_reply_to": "support@gopopera.ca",
    "resend_api_url": "https://api.resend.com/emails",
    "resend_api_key": "",
    "twilio_account_sid": "",
    "twilio_auth_token": "",
    "twilio_phone_number": "",
    "twilio_messaging_service_sid": "",
    "auth_secret": "",
    "auth_algorithm": "HS256",
    "auth_audience": "",
    "admin_email_allowlist": "",
    "fallback_admin_email": "eatezca@gmail.com",
    "app_host": "0.0.0.0",
    "app_port": 8000,
}

TYPE_CASTERS: dict[str, Callable[[Any], Any]] = {
    "ip_rate_limit": int,
    "reservation_rate_limit": int,
    "rate_limit_window_seconds": int,
    "event_rate_limit": int,
    "event_rate_window_seconds": int,
    "event_rate_max_keys": int,
    "rate_prune_interval_minutes": int,
    "notification_cooldown_seconds": int,
    "provider_timeout_seconds": float,
    "enable_scheduler": bool,
    "base_url": str,
    "email_from": str,
    "email_reply_to": str,
    "resend_api_url": str,
    "resend_api_key": str,
    "twilio_account_sid": str,
    "twilio_auth_token": str,
    "twilio_phone_number": str,
    "twilio_messaging_service_sid": str,
    "auth_secret": str,
    "auth_algorithm": str,
    "auth_audience": str,
    "admin_email_allowlist": str,
    "fallback_admin_email": str,
    "app_host": str,
    "app_port": int,
}

SECRET_KEYS = {
    "resend_api_key",
    "twilio_auth_token",
    "auth_secret",
}


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    data_dir: Path
    database_path: Path
    ip_rate_limit: int
    reservation_rate_limit: int
    rate_limit_window_seconds: int
    event_rate_limit: int
    event_rate_window_seconds: int
    event_rate_max_keys: int
    rate_prune_interval_minutes: int
    notification_cooldown_seconds: int
    provider_timeout_seconds: float
    enable_scheduler: bool
    base_url: str
    email_from: str
    email_reply_to: str
    resend_api_url: str
    resend_api_key: str
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str
    twilio_messaging_service_sid: str
    auth_secret: str
    auth_algorithm: str
    auth_audience: str
    admin_email_allowlist: str
    fallback_admin_email: str
    app_host: str
    app_port: int
    config_path: Path

    @property
    def notification_cooldown_ms(self) -> int:
        return self.notification_cooldown_seconds * 1000

    @property
    def admin_emails(self) -> list[str]:
        return [
            email.strip().lower()
            for email in self.admin_email_allowlist.split(",")
            if email.strip()
        ]

    @property
    def event_url_base(self) -> str:
        return self.base_url.rstrip("/")


def _boolify(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Cannot parse boolean value from {value!r}")


def _cast_value(key: str, value: Any) -> Any:
    if key not in TYPE_CASTERS:
        return value
    caster = TYPE_CASTERS[key]
    if caster is bool:
        return _boolify(value)
    return caster(value)


def _load_toml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        return tomllib.load(handle)


def _config_layered_value(key: str, *, toml_config: dict[str, Any]) -> Any:
    env_key = f"HOSTNOTIFY_{key.upper()}"
    if env_key in os.environ:
        return _cast_value(key, os.environ[env_key])
    if key in toml_config:
        return _cast_value(key, toml_config[key])
    return DEFAULTS[key]


def _resolve_paths(
    *,
    base_dir: Path,
    data_dir: str | Path | None,
    database_path: str | Path | None,
):
    resolved_base = Path(base_dir)
    resolved_data = Path(data_dir) if data_dir else resolved_base / "data"
    if not resolved_data.is_absolute():
        resolved_data = resolved_base / resolved_data
    resolved_db = (
        Path(database_path) if database_path else resolved_data / "hostnotify.db"
    )
    if not resolved_db.is_absolute():
        resolved_db = resolved_base / resolved_db
    return resolved_base, resolved_data, resolved_db


def load_settings(config_override: Path | None = None) -> Settings:
    base_dir = Path(os.getenv("HOSTNOTIFY_BASE_DIR", Path.cwd()))
    env_config = os.getenv("HOSTNOTIFY_CONFIG")
    config_path = Path(config_override or env_config or base_dir / "hostnotify.toml")
    toml_config = _load_toml_config(config_path)

    base_dir_value, data_dir_value, database_path_value = _resolve_paths(
        base_dir=base_dir,
        data_dir=os.getenv("HOSTNOTIFY_DATA_DIR", toml_config.get("data_dir")),
        database_path=os.getenv("HOSTNOTIFY_DB", toml_config.get("database_path")),
    )

    layered = {
        key: _config_layered_value(key, toml_config=toml_config) for key in DEFAULTS
    }
    settings = Settings(
        base_dir=base_dir_value,
        data_dir=data_dir_value,
        database_path=database_path_value,
        config_path=config_path,
        **layered,
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


def settings_as_dict(settings: Settings, *, reveal_secrets: bool = False) -> dict[str, Any]:
    """Return settings as plain values; secrets are masked unless requested."""
    values: dict[str, Any] = {
        "base_dir": str(settings.base_dir),
        "data_dir": str(settings.data_dir),
        "database_path": str(settings.database_path),
        "config_path": str(settings.config_path),
    }
    for key in DEFAULTS:
        value = getattr(settings, key)
        if key in SECRET_KEYS and value and not reveal_secrets:
            value = "***"
        values[key] = value
    return values


settings = load_settings()
