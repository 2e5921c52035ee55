from __future__ import annotations

import threading
from pathlib import Path

import pytest

from eventpass.config import StaffEntry
from eventpass.database import Database
from eventpass.errors import DuplicateEmailError


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db_path = tmp_path / "eventpass.sqlite3"
    db = Database(db_path)
    db.initialize()
    return db


def _register(database: Database, email: str = "ada@example.com", first_name: str = "Ada"):
    return database.create_registration(
        first_name=first_name,
        last_name="Lovelace",
        email=email,
        phone="9876543210",
        year="2nd",
        branch="Computer Engineering",
    )


def test_new_registration_is_not_attended(database: Database) -> None:
    registration = _register(database)

    stored = database.get_registration(registration.id)
    assert stored is not None
    assert stored.attended is False
    assert stored.email == "ada@example.com"
    assert stored.full_name == "Ada Lovelace"


def test_duplicate_email_is_rejected_case_insensitively(database: Database) -> None:
    _register(database, email="ada@example.com")

    with pytest.raises(DuplicateEmailError):
        _register(database, email="ADA@Example.com")

    assert database.count_registrations() == 1


def test_mark_attended_transitions_exactly_once(database: Database) -> None:
    registration = _register(database)

    updated, transitioned = database.mark_attended(registration.id)
    assert transitioned is True
    assert updated is not None and updated.attended is True

    again, transitioned_again = database.mark_attended(registration.id)
    assert transitioned_again is False
    assert again is not None and again.attended is True


def test_mark_attended_unknown_registration(database: Database) -> None:
    assert database.mark_attended(999) == (None, False)


def test_concurrent_marks_allow_a_single_transition(database: Database) -> None:
    registration = _register(database)
    barrier = threading.Barrier(4)
    outcomes = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        _, transitioned = database.mark_attended(registration.id)
        with lock:
            outcomes.append(transitioned)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == [False, False, False, True]


def test_list_registrations_searches_and_paginates(database: Database) -> None:
    for index in range(5):
        _register(database, email=f"student{index}@example.com", first_name=f"Student{index}")
    _register(database, email="grace@navy.mil", first_name="Grace")

    first_page = database.list_registrations(page=1, limit=4)
    assert first_page.total == 6
    assert first_page.total_pages == 2
    assert len(first_page.registrations) == 4
    # newest first
    assert first_page.registrations[0].first_name == "Grace"

    second_page = database.list_registrations(page=2, limit=4)
    assert len(second_page.registrations) == 2

    found = database.list_registrations(search="NAVY")
    assert found.total == 1
    assert found.registrations[0].email == "grace@navy.mil"


def test_search_treats_wildcards_literally(database: Database) -> None:
    _register(database, email="plain@example.com")

    assert database.list_registrations(search="%").total == 0
    assert database.list_registrations(search="_").total == 0


def test_attendance_stats(database: Database) -> None:
    empty = database.attendance_stats()
    assert empty.total_registrations == 0
    assert empty.attendance_percentage is None

    first = _register(database, email="one@example.com")
    _register(database, email="two@example.com")
    _register(database, email="three@example.com")
    database.mark_attended(first.id)

    stats = database.attendance_stats()
    assert stats.total_registrations == 3
    assert stats.total_attended == 1
    assert stats.total_not_attended == 2
    assert stats.attendance_percentage == pytest.approx(33.33)


def test_seed_staff_is_idempotent_and_fills_missing_names(database: Database) -> None:
    inserted = database.seed_staff([StaffEntry("lead@example.com"), StaffEntry("crew@example.com")])
    assert inserted == 2

    inserted_again = database.seed_staff([StaffEntry("lead@example.com", name="Team Lead")])
    assert inserted_again == 0

    lead = database.get_staff_by_email("LEAD@example.com")
    assert lead is not None
    assert lead.name == "Team Lead"
    assert [member.email for member in database.list_staff()] == ["crew@example.com", "lead@example.com"]


def test_backfill_staff_name_keeps_existing_name(database: Database) -> None:
    member = database.add_staff("crew@example.com")

    filled = database.backfill_staff_name(member.id, "Crew Member")
    assert filled is not None and filled.name == "Crew Member"

    unchanged = database.backfill_staff_name(member.id, "Someone Else")
    assert unchanged is not None and unchanged.name == "Crew Member"


def test_add_staff_rejects_duplicates(database: Database) -> None:
    database.add_staff("crew@example.com")
    with pytest.raises(ValueError):
        database.add_staff(" Crew@Example.com ")
