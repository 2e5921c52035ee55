"""Domain models for registrations and the staff allow-list."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

# Largest value an SQLite INTEGER column can hold.
MAX_ROW_ID = 2**63 - 1

_DECIMAL = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class Registration:
    """A registrant row as stored in the database."""

    id: int
    first_name: str
    last_name: str
    email: str
    phone: str
    year: str
    branch: str
    attended: bool
    created_at: datetime

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class StaffMember:
    """An allow-listed team member permitted to use the scanner."""

    id: int
    email: str
    name: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class RegistrationPage:
    registrations: List[Registration]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit)


@dataclass(frozen=True)
class AttendanceStats:
    total_registrations: int
    total_attended: int
    total_not_attended: int
    attendance_percentage: Optional[float]


def parse_row_id(value: object) -> Optional[int]:
    """Return ``value`` as a storable positive row id, or ``None``.

    Strings must be plain ASCII decimals; booleans are never ids.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not _DECIMAL.fullmatch(text) or len(text.lstrip("0")) > len(str(MAX_ROW_ID)):
            return None
        value = int(text)
    if not isinstance(value, int) or value <= 0 or value > MAX_ROW_ID:
        return None
    return value


__all__ = [
    "AttendanceStats",
    "MAX_ROW_ID",
    "Registration",
    "RegistrationPage",
    "StaffMember",
    "parse_row_id",
]
