from __future__ import annotations

from pathlib import Path

import pytest

from eventpass.config import StaffEntry, load_settings, load_staff_file, merge_staff
from eventpass.errors import ConfigurationError


def _write_staff_file(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    return path


def test_load_staff_file_accepts_emails_and_mappings(tmp_path: Path) -> None:
    staff_file = _write_staff_file(
        tmp_path / "staff.yaml",
        "staff:\n"
        "  - Lead@Example.com\n"
        "  - email: crew@example.com\n"
        "    name: Crew Member\n",
    )

    entries = load_staff_file(staff_file)

    assert entries == [
        StaffEntry(email="lead@example.com"),
        StaffEntry(email="crew@example.com", name="Crew Member"),
    ]


def test_missing_staff_file_is_empty(tmp_path: Path) -> None:
    assert load_staff_file(tmp_path / "absent.yaml") == []


def test_invalid_staff_entries_raise(tmp_path: Path) -> None:
    staff_file = _write_staff_file(tmp_path / "staff.yaml", "staff:\n  - not-an-email\n")
    with pytest.raises(ConfigurationError):
        load_staff_file(staff_file)


def test_merge_staff_prefers_named_entries() -> None:
    merged = merge_staff(
        [StaffEntry("lead@example.com")],
        [StaffEntry("lead@example.com", name="Lead"), StaffEntry("crew@example.com")],
    )
    assert merged == (StaffEntry("lead@example.com", name="Lead"), StaffEntry("crew@example.com"))


def test_load_settings_reads_environment(tmp_path: Path) -> None:
    staff_file = _write_staff_file(tmp_path / "staff.yaml", "staff:\n  - lead@example.com\n")
    env = {
        "EVENTPASS_DB_PATH": str(tmp_path / "db.sqlite3"),
        "EVENTPASS_STAFF_FILE": str(staff_file),
        "EVENTPASS_STAFF_EMAILS": "crew@example.com, ",
        "EVENTPASS_JWT_SECRET": "secret",
        "EVENTPASS_GOOGLE_CLIENT_ID": "client.apps.googleusercontent.com",
        "EVENTPASS_SMTP_USERNAME": "events@example.com",
        "EVENTPASS_SMTP_PORT": "2525",
        "EVENTPASS_SMTP_STARTTLS": "no",
        "EVENTPASS_ENV": "development",
    }

    settings = load_settings(env)

    assert settings.database_path == (tmp_path / "db.sqlite3").resolve()
    assert [entry.email for entry in settings.staff] == ["lead@example.com", "crew@example.com"]
    assert settings.jwt_secret == "secret"
    assert settings.google_client_id == "client.apps.googleusercontent.com"
    assert settings.smtp.port == 2525
    assert settings.smtp.starttls is False
    assert settings.smtp.from_address == "events@example.com"
    assert settings.is_development is True
    assert settings.token_ttl_hours == 24


def test_invalid_numbers_raise_configuration_error(tmp_path: Path) -> None:
    env = {
        "EVENTPASS_STAFF_FILE": str(tmp_path / "absent.yaml"),
        "EVENTPASS_SMTP_PORT": "not-a-port",
    }
    with pytest.raises(ConfigurationError):
        load_settings(env)
