"""SQLite-backed persistence for registrations and the staff allow-list."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .config import StaffEntry
from .errors import DuplicateEmailError
from .models import AttendanceStats, Registration, RegistrationPage, StaffMember


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Database:
    """Simple wrapper around SQLite for registrations and allow-listed staff."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS registrations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    phone TEXT NOT NULL,
                    year TEXT NOT NULL,
                    branch TEXT NOT NULL,
                    attended INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS staff (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_registrations_created_at ON registrations(created_at);
                """
            )

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------
    def create_registration(
        self,
        *,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        year: str,
        branch: str,
    ) -> Registration:
        """Insert a registrant. Raises :class:`DuplicateEmailError` on a reused email."""

        created_at = _current_timestamp()
        normalized_email = email.strip().lower()
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO registrations (
                        first_name, last_name, email, phone, year, branch, attended, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, 0, ?)
                    """,
                    (
                        first_name,
                        last_name,
                        normalized_email,
                        phone,
                        year,
                        branch,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateEmailError() from exc
            registration_id = cursor.lastrowid

        return Registration(
            id=int(registration_id),
            first_name=first_name,
            last_name=last_name,
            email=normalized_email,
            phone=phone,
            year=year,
            branch=branch,
            attended=False,
            created_at=created_at,
        )

    def get_registration(self, registration_id: int) -> Optional[Registration]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM registrations WHERE id = ?",
                (registration_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_registration(row)

    def get_registration_by_email(self, email: str) -> Optional[Registration]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM registrations WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_registration(row)

    def count_registrations(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM registrations").fetchone()
        return int(row["total"])

    def mark_attended(self, registration_id: int) -> Tuple[Optional[Registration], bool]:
        """Flip ``attended`` to true if it is not already set.

        Returns ``(registration, True)`` when this call performed the
        transition, ``(registration, False)`` when attendance was already
        recorded and ``(None, False)`` when no such registration exists. The
        transition is a single conditional ``UPDATE`` so only one of several
        concurrent callers can observe ``True``.
        """

        with self._connect() as conn:
            # fetchall() drains the RETURNING cursor before the commit.
            updated = conn.execute(
                """
                UPDATE registrations
                   SET attended = 1
                 WHERE id = ? AND attended = 0
                RETURNING *
                """,
                (registration_id,),
            ).fetchall()
            if updated:
                return self._row_to_registration(updated[0]), True

            existing = conn.execute(
                "SELECT * FROM registrations WHERE id = ?",
                (registration_id,),
            ).fetchone()

        if existing is None:
            return None, False
        return self._row_to_registration(existing), False

    def list_registrations(self, *, page: int = 1, limit: int = 50, search: str = "") -> RegistrationPage:
        """Return one page of registrations, newest first."""

        where = ""
        params: List[object] = []
        term = search.strip()
        if term:
            pattern = f"%{_escape_like(term)}%"
            where = (
                " WHERE first_name LIKE ? ESCAPE '\\'"
                " OR last_name LIKE ? ESCAPE '\\'"
                " OR email LIKE ? ESCAPE '\\'"
            )
            params = [pattern, pattern, pattern]

        offset = (page - 1) * limit
        with self._connect() as conn:
            total_row = conn.execute(f"SELECT COUNT(*) AS total FROM registrations{where}", params).fetchone()
            rows = conn.execute(
                f"SELECT * FROM registrations{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()

        return RegistrationPage(
            registrations=[self._row_to_registration(row) for row in rows],
            total=int(total_row["total"]),
            page=page,
            limit=limit,
        )

    def attendance_stats(self) -> AttendanceStats:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_registrations,
                    COALESCE(SUM(CASE WHEN attended = 1 THEN 1 ELSE 0 END), 0) AS total_attended,
                    COALESCE(SUM(CASE WHEN attended = 0 THEN 1 ELSE 0 END), 0) AS total_not_attended,
                    ROUND(
                        SUM(CASE WHEN attended = 1 THEN 1 ELSE 0 END) * 100.0 / NULLIF(COUNT(*), 0),
                        2
                    ) AS attendance_percentage
                FROM registrations
                """
            ).fetchone()

        percentage = row["attendance_percentage"]
        return AttendanceStats(
            total_registrations=int(row["total_registrations"]),
            total_attended=int(row["total_attended"]),
            total_not_attended=int(row["total_not_attended"]),
            attendance_percentage=float(percentage) if percentage is not None else None,
        )

    # ------------------------------------------------------------------
    # Staff allow-list
    # ------------------------------------------------------------------
    def seed_staff(self, entries: Iterable[StaffEntry]) -> int:
        """Insert allow-list entries that are not yet present.

        Existing rows keep their email; a configured name only fills in a
        missing one. Returns the number of newly inserted rows.
        """

        inserted = 0
        created_at = _serialize_datetime(_current_timestamp())
        with self._connect() as conn:
            for entry in entries:
                cursor = conn.execute(
                    "INSERT INTO staff (email, name, created_at) VALUES (?, ?, ?) ON CONFLICT(email) DO NOTHING",
                    (entry.email, entry.name, created_at),
                )
                inserted += cursor.rowcount
                if cursor.rowcount == 0 and entry.name:
                    conn.execute(
                        "UPDATE staff SET name = ? WHERE email = ? AND name IS NULL",
                        (entry.name, entry.email),
                    )
        return inserted

    def add_staff(self, email: str, name: Optional[str] = None) -> StaffMember:
        normalized_email = email.strip().lower()
        if not normalized_email:
            raise ValueError("Email must not be empty")
        normalized_name = name.strip() if name and name.strip() else None

        created_at = _current_timestamp()
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO staff (email, name, created_at) VALUES (?, ?, ?)",
                    (normalized_email, normalized_name, _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("A staff member with that email already exists") from exc
            staff_id = cursor.lastrowid

        return StaffMember(id=int(staff_id), email=normalized_email, name=normalized_name, created_at=created_at)

    def get_staff_by_email(self, email: str) -> Optional[StaffMember]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM staff WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_staff(row)

    def list_staff(self) -> List[StaffMember]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM staff ORDER BY email").fetchall()
        return [self._row_to_staff(row) for row in rows]

    def backfill_staff_name(self, staff_id: int, name: str) -> Optional[StaffMember]:
        """Set the display name of a staff member whose name is still empty."""

        with self._connect() as conn:
            conn.execute(
                "UPDATE staff SET name = ? WHERE id = ? AND (name IS NULL OR name = '')",
                (name, staff_id),
            )
            row = conn.execute("SELECT * FROM staff WHERE id = ?", (staff_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_staff(row)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_registration(self, row: sqlite3.Row) -> Registration:
        return Registration(
            id=int(row["id"]),
            first_name=str(row["first_name"]),
            last_name=str(row["last_name"]),
            email=str(row["email"]),
            phone=str(row["phone"]),
            year=str(row["year"]),
            branch=str(row["branch"]),
            attended=bool(row["attended"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_staff(self, row: sqlite3.Row) -> StaffMember:
        return StaffMember(
            id=int(row["id"]),
            email=str(row["email"]),
            name=row["name"],
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database"]
