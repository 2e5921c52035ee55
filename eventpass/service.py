"""Registration, staff login and attendance workflows."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .database import Database
from .errors import AlreadyMarkedError, ForbiddenError, NotFoundError, ValidationError
from .mailer import ConfirmationMailer
from .models import MAX_ROW_ID, AttendanceStats, Registration, RegistrationPage, parse_row_id
from .qr import build_payload, encode_payload, parse_payload, render_png
from .security import IdentityVerifier, StaffClaims, TokenIssuer

logger = logging.getLogger("eventpass.service")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Upper bounds per form field, matching the registrations schema.
FIELD_LIMITS: Dict[str, int] = {
    "first_name": 100,
    "last_name": 100,
    "email": 255,
    "phone": 20,
    "year": 10,
    "branch": 100,
}

WIRE_NAMES: Dict[str, str] = {
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
    "phone": "phone",
    "year": "year",
    "branch": "branch",
}

MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class RegistrationForm:
    first_name: str
    last_name: str
    email: str
    phone: str
    year: str
    branch: str


def validate_registration(form: RegistrationForm) -> RegistrationForm:
    """Return a stripped copy of ``form`` or raise :class:`ValidationError`."""

    cleaned: Dict[str, str] = {}
    for field_name in FIELD_LIMITS:
        raw = getattr(form, field_name)
        value = raw.strip() if isinstance(raw, str) else ""
        if not value:
            raise ValidationError("All fields are required", field=WIRE_NAMES[field_name])
        cleaned[field_name] = value

    if not EMAIL_PATTERN.match(cleaned["email"]):
        raise ValidationError("Please enter a valid email address", field="email")

    for field_name, limit in FIELD_LIMITS.items():
        if len(cleaned[field_name]) > limit:
            raise ValidationError(
                f"{WIRE_NAMES[field_name]} must be at most {limit} characters",
                field=WIRE_NAMES[field_name],
            )

    return RegistrationForm(**cleaned)


class RegistrationService:
    """Persist sign-ups and email each registrant a QR-coded pass."""

    def __init__(self, database: Database, mailer: ConfirmationMailer) -> None:
        self._database = database
        self._mailer = mailer

    def register(self, form: RegistrationForm) -> Registration:
        cleaned = validate_registration(form)
        registration = self._database.create_registration(
            first_name=cleaned.first_name,
            last_name=cleaned.last_name,
            email=cleaned.email,
            phone=cleaned.phone,
            year=cleaned.year,
            branch=cleaned.branch,
        )
        logger.info("Registered %s (ID: %s)", registration.full_name, registration.id)

        qr_png = render_png(encode_payload(build_payload(registration)))
        # The row is kept when delivery fails; the caller sees the error.
        self._mailer.send_confirmation(registration, qr_png)
        return registration


class AuthService:
    """Exchange a Google credential for a staff session token."""

    def __init__(self, database: Database, verifier: IdentityVerifier, issuer: TokenIssuer) -> None:
        self._database = database
        self._verifier = verifier
        self._issuer = issuer

    def login(self, credential: Optional[str]) -> Tuple[str, StaffClaims]:
        if not credential or not credential.strip():
            raise ValidationError("Google credential is required", field="credential")

        identity = self._verifier(credential.strip())

        staff = self._database.get_staff_by_email(identity.email)
        if staff is None:
            logger.warning("Rejected login for %s: not on the allow-list", identity.email)
            raise ForbiddenError("Access denied. You are not part of the ISTE team.")

        if not staff.name and identity.name:
            staff = self._database.backfill_staff_name(staff.id, identity.name) or staff

        claims = StaffClaims(id=staff.id, email=staff.email, name=staff.name or identity.name)
        token = self._issuer.issue(claims)
        logger.info("Staff login for %s", staff.email)
        return token, claims


class AttendanceService:
    """Mark attendance and expose read-only registration views."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def mark_attended(self, registration_id: int) -> Registration:
        if parse_row_id(registration_id) is None:
            raise ValidationError("Invalid user ID", field="userId")

        registration, transitioned = self._database.mark_attended(registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")
        if not transitioned:
            raise AlreadyMarkedError(registration)

        logger.info("Attendance marked for registration #%s", registration.id)
        return registration

    def scan(self, qr_data: str) -> Registration:
        return self.mark_attended(parse_payload(qr_data))

    def get_registration(self, registration_id: int) -> Registration:
        if parse_row_id(registration_id) is None:
            raise NotFoundError("User not found")
        registration = self._database.get_registration(registration_id)
        if registration is None:
            raise NotFoundError("User not found")
        return registration

    def list_registrations(self, *, page: int = 1, limit: int = 50, search: str = "") -> RegistrationPage:
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
        if (page - 1) * limit > MAX_ROW_ID:
            raise ValidationError("page is out of range", field="page")
        return self._database.list_registrations(page=page, limit=limit, search=search)

    def stats(self) -> AttendanceStats:
        return self._database.attendance_stats()


__all__ = [
    "AttendanceService",
    "AuthService",
    "RegistrationForm",
    "RegistrationService",
    "validate_registration",
]
