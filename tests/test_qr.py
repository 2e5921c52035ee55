from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from eventpass.errors import ValidationError
from eventpass.models import Registration
from eventpass.qr import PAYLOAD_VERSION, build_payload, encode_payload, parse_payload, render_png


def _registration(registration_id: int = 42) -> Registration:
    return Registration(
        id=registration_id,
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        phone="9876543210",
        year="2nd",
        branch="Computer Engineering",
        attended=False,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def test_build_payload_identifies_the_registrant() -> None:
    issued = datetime(2025, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
    payload = build_payload(_registration(), issued_at=issued)

    assert payload == {
        "v": PAYLOAD_VERSION,
        "id": 42,
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "timestamp": "2025-02-03T04:05:06+00:00",
    }


def test_encoded_payload_parses_back_to_the_id() -> None:
    assert parse_payload(encode_payload(build_payload(_registration(7)))) == 7


@pytest.mark.parametrize(
    "raw",
    [
        "42",
        " 42 ",
        '{"id": 42, "name": "Ada Lovelace", "email": "ada@example.com", "timestamp": "2025-01-01T00:00:00Z"}',
        '{"v": 1, "id": 42}',
        '{"id": "42"}',
    ],
)
def test_bare_and_json_formats_resolve_identically(raw: str) -> None:
    assert parse_payload(raw) == 42


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "abc",
        "42abc",
        "-3",
        "0",
        "[42]",
        '{"name": "no id"}',
        '{"id": null}',
        '{"id": true}',
        '{"id": 4.2}',
        '{"id": "x"}',
        '{"id": 0}',
        "\u00b2",
        "\u0664\u0662",
        "99999999999999999999999",
        '{"id": 99999999999999999999999}',
        '{"id": "\u00b2"}',
    ],
)
def test_malformed_payloads_are_rejected(raw: str) -> None:
    with pytest.raises(ValidationError):
        parse_payload(raw)


def test_unknown_payload_version_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_payload(json.dumps({"v": 2, "id": 42}))
    assert "version" in excinfo.value.message


def test_render_png_produces_png_bytes() -> None:
    image = render_png(encode_payload(build_payload(_registration())))
    assert image.startswith(b"\x89PNG\r\n\x1a\n")
    assert len(image) > 100
