"""QR payload encoding, decoding and PNG rendering."""
from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from .errors import ValidationError
from .models import Registration, parse_row_id

PAYLOAD_VERSION = 1

QR_FILL_COLOR = "#2c3e50"
QR_BACK_COLOR = "#ffffff"

_INVALID_FORMAT = "Invalid QR code format"


def build_payload(registration: Registration, *, issued_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Return the data encoded into a registrant's event pass."""

    timestamp = issued_at or datetime.now(timezone.utc)
    return {
        "v": PAYLOAD_VERSION,
        "id": registration.id,
        "name": registration.full_name,
        "email": registration.email,
        "timestamp": timestamp.isoformat(),
    }


def encode_payload(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


def _coerce_id(value: object) -> int:
    registration_id = parse_row_id(value)
    if registration_id is None:
        raise ValidationError(_INVALID_FORMAT, field="qrData")
    return registration_id


def parse_payload(raw: str) -> int:
    """Resolve scanned QR text to a registration id.

    Accepts the versioned JSON payload, the older unversioned JSON object and
    a bare decimal id. Everything else is rejected.
    """

    text = raw.strip() if isinstance(raw, str) else ""
    if not text:
        raise ValidationError("QR code data is required", field="qrData")

    if text.isascii() and text.isdigit():
        return _coerce_id(text)

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ValidationError(_INVALID_FORMAT, field="qrData") from exc

    if not isinstance(data, dict):
        raise ValidationError(_INVALID_FORMAT, field="qrData")

    version = data.get("v")
    if version is not None and version != PAYLOAD_VERSION:
        raise ValidationError(f"Unsupported QR code version: {version!r}", field="qrData")

    return _coerce_id(data.get("id"))


def render_png(data: str, *, box_size: int = 10, border: int = 2) -> bytes:
    """Render ``data`` as a PNG image and return the encoded bytes."""

    code = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    code.add_data(data)
    code.make(fit=True)
    image = code.make_image(fill_color=QR_FILL_COLOR, back_color=QR_BACK_COLOR)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


__all__ = ["PAYLOAD_VERSION", "build_payload", "encode_payload", "parse_payload", "render_png"]
