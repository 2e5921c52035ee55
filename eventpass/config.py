"""Configuration management for the registration service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigurationError

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class StaffEntry:
    """An allow-list entry loaded from configuration."""

    email: str
    name: Optional[str] = None

    @staticmethod
    def from_raw(data: object) -> "StaffEntry":
        """Create a :class:`StaffEntry` from a bare email or a mapping."""
        if isinstance(data, str):
            email, name = data, None
        elif isinstance(data, dict):
            if "email" not in data:
                raise ConfigurationError("Staff entries must define an 'email' field")
            email = str(data["email"])
            raw_name = data.get("name")
            name = str(raw_name).strip() or None if raw_name is not None else None
        else:
            raise ConfigurationError(f"Unsupported staff entry: {data!r}")

        normalized = email.strip().lower()
        if not normalized or "@" not in normalized:
            raise ConfigurationError(f"Invalid staff email address: {email!r}")
        return StaffEntry(email=normalized, name=name)


@dataclass(frozen=True)
class SMTPSettings:
    host: str = "smtp.gmail.com"
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    starttls: bool = True
    sender: Optional[str] = None
    sender_name: str = "ISTE Event Team"

    @property
    def from_address(self) -> Optional[str]:
        return self.sender or self.username


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment."""

    database_path: Path
    jwt_secret: Optional[str]
    google_client_id: Optional[str]
    smtp: SMTPSettings = field(default_factory=SMTPSettings)
    staff: Tuple[StaffEntry, ...] = ()
    environment: str = "production"
    cors_origins: Tuple[str, ...] = ("*",)
    token_ttl_hours: int = 24

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in {"development", "dev"}


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value {value!r}")


def _env_int(value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid integer value {value!r}") from exc


def _env_str(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _resolve_path(value: Optional[str], default: Path) -> Path:
    if value:
        return Path(value).expanduser().resolve(strict=False)
    return default.resolve(strict=False)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    return _resolve_path(env_value, _PROJECT_ROOT / "data" / "eventpass.sqlite3")


def resolve_staff_path(env_value: Optional[str]) -> Path:
    return _resolve_path(env_value, _PROJECT_ROOT / "config" / "staff.yaml")


def load_staff_file(path: Path) -> List[StaffEntry]:
    """Load allow-listed staff from a YAML file.

    A missing file yields an empty list so that the allow-list can also be
    provided purely through ``EVENTPASS_STAFF_EMAILS``.
    """
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must contain a mapping with a 'staff' key")
    entries = raw.get("staff") or []
    if not isinstance(entries, list):
        raise ConfigurationError(f"'staff' in {path} must be a list")
    return [StaffEntry.from_raw(item) for item in entries]


def merge_staff(*groups: List[StaffEntry]) -> Tuple[StaffEntry, ...]:
    """Merge allow-list sources, keeping the first name seen for an email."""
    merged: Dict[str, StaffEntry] = {}
    for group in groups:
        for entry in group:
            existing = merged.get(entry.email)
            if existing is None or (existing.name is None and entry.name):
                merged[entry.email] = entry
    return tuple(merged.values())


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from ``EVENTPASS_*`` environment variables."""

    env = os.environ if environ is None else environ

    staff_from_file = load_staff_file(resolve_staff_path(env.get("EVENTPASS_STAFF_FILE")))
    raw_emails = env.get("EVENTPASS_STAFF_EMAILS", "")
    staff_from_env = [StaffEntry.from_raw(item) for item in raw_emails.split(",") if item.strip()]

    smtp = SMTPSettings(
        host=_env_str(env.get("EVENTPASS_SMTP_HOST")) or "smtp.gmail.com",
        port=_env_int(env.get("EVENTPASS_SMTP_PORT"), 587),
        username=_env_str(env.get("EVENTPASS_SMTP_USERNAME")),
        password=env.get("EVENTPASS_SMTP_PASSWORD") or None,
        starttls=_env_bool(env.get("EVENTPASS_SMTP_STARTTLS"), True),
        sender=_env_str(env.get("EVENTPASS_MAIL_SENDER")),
        sender_name=_env_str(env.get("EVENTPASS_MAIL_SENDER_NAME")) or "ISTE Event Team",
    )

    origins = tuple(
        origin.strip() for origin in env.get("EVENTPASS_CORS_ORIGINS", "*").split(",") if origin.strip()
    )

    return Settings(
        database_path=resolve_database_path(env.get("EVENTPASS_DB_PATH")),
        jwt_secret=_env_str(env.get("EVENTPASS_JWT_SECRET")),
        google_client_id=_env_str(env.get("EVENTPASS_GOOGLE_CLIENT_ID")),
        smtp=smtp,
        staff=merge_staff(staff_from_file, staff_from_env),
        environment=_env_str(env.get("EVENTPASS_ENV")) or "production",
        cors_origins=origins or ("*",),
        token_ttl_hours=_env_int(env.get("EVENTPASS_TOKEN_TTL_HOURS"), 24),
    )


__all__ = [
    "SMTPSettings",
    "Settings",
    "StaffEntry",
    "load_settings",
    "load_staff_file",
    "merge_staff",
    "resolve_database_path",
    "resolve_staff_path",
]
