import random
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from itweek.errors import NotFoundError, ValidationError
from itweek.ledger import (
    ScanAction,
    ScanStatus,
    find_person_by_badge,
    format_duration,
    logbook_for_role,
    logbook_stats,
    parse_action,
    person_attendance,
    process_scan,
    process_scan_batch,
)
from itweek.models import AuditLogEntry, LogbookEntry, LogbookKind, Person, PersonRole, StaffLogbookEntry, Team


async def _person(session, *, role: str = "student", team: str | None = "Alpha", name: str = "Ana Cruz") -> Person:
    if team and (await session.execute(select(Team).where(Team.name == team))).scalar() is None:
        session.add(Team(name=team, score=150))
    person = Person(full_name=name, team_name=team, role=role)
    session.add(person)
    await session.commit()
    return person


async def _count(session, model, person_id: int, *, open_only: bool = False) -> int:
    stmt = select(func.count(model.id)).where(model.person_id == person_id)
    if open_only:
        stmt = stmt.where(model.time_out.is_(None))
    return int((await session.execute(stmt)).scalar_one())


def test_parse_action_accepts_aliases() -> None:
    assert parse_action("check-in") == ScanAction.CHECK_IN
    assert parse_action("time-out") == ScanAction.CHECK_OUT
    assert parse_action(" IN ") == ScanAction.CHECK_IN
    with pytest.raises(ValidationError):
        parse_action("sideways")


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        (PersonRole.STUDENT, LogbookKind.GENERAL),
        (PersonRole.LEADER, LogbookKind.STAFF),
        (PersonRole.FACILITATOR, LogbookKind.STAFF),
        (PersonRole.EXECUTIVE, LogbookKind.STAFF),
        (PersonRole.OFFICER, LogbookKind.STAFF),
        ("unknown-role", LogbookKind.GENERAL),
    ],
)
def test_logbook_for_role(role, expected) -> None:
    assert logbook_for_role(role) == expected


def test_format_duration() -> None:
    start = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
    assert format_duration(start, start + timedelta(minutes=12)) == "12m"
    assert format_duration(start, start + timedelta(hours=1, minutes=5)) == "1h 5m"
    assert format_duration(start, None) is None


def test_check_in_twice_is_duplicate_with_one_row(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            person = await _person(session)
            first = await process_scan(session, person.badge_uuid, "check-in")
            second = await process_scan(session, person.badge_uuid, "check-in")
            return first.status, second.status, await _count(session, LogbookEntry, person.id)

    first, second, rows = run_db(scenario)
    assert (first, second) == (ScanStatus.OK, ScanStatus.DUPLICATE)
    assert rows == 1


def test_open_session_index_rejects_second_open_row(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            person = await _person(session)
            person_id = person.id
            now = datetime.now(timezone.utc)
            session.add(LogbookEntry(person_id=person_id, time_in=now, time_out=None))
            await session.commit()
            session.add(LogbookEntry(person_id=person_id, time_in=now, time_out=None))
            with pytest.raises(IntegrityError):
                await session.commit()
            await session.rollback()
            # Closed rows sit outside the index.
            session.add(LogbookEntry(person_id=person_id, time_in=now, time_out=now))
            await session.commit()
            return await _count(session, LogbookEntry, person_id, open_only=True)

    assert run_db(scenario) == 1


def test_check_in_race_on_insert_is_duplicate(run_db, monkeypatch) -> None:
    async def never_open(*args, **kwargs):
        return False

    async def scenario(factory):
        async with factory() as session:
            person = await _person(session)
            person_id = person.id
            first = await process_scan(session, person.badge_uuid, "check-in")
            # A concurrent scanner passed the pre-check too; the insert decides.
            monkeypatch.setattr("itweek.ledger._has_session", never_open)
            second = await process_scan(session, person.badge_uuid, "check-in")
            return first.status, second, await _count(session, LogbookEntry, person_id, open_only=True)

    first, second, open_rows = run_db(scenario)
    assert first == ScanStatus.OK
    assert second.status == ScanStatus.DUPLICATE
    assert second.full_name == "Ana Cruz"
    assert open_rows == 1


def test_check_out_twice_reports_not_checked_in(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            person = await _person(session)
            await process_scan(session, person.badge_uuid, "check-in")
            first = await process_scan(session, person.badge_uuid, "check-out")
            second = await process_scan(session, person.badge_uuid, "check-out")
            closed = await _count(session, LogbookEntry, person.id) - await _count(
                session, LogbookEntry, person.id, open_only=True
            )
            return first.status, second.status, closed

    first, second, closed = run_db(scenario)
    assert (first, second) == (ScanStatus.OK, ScanStatus.NOT_CHECKED_IN)
    assert closed == 1


def test_check_out_without_any_session_is_no_active_session(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            person = await _person(session)
            return (await process_scan(session, person.badge_uuid, "check-out")).status

    assert run_db(scenario) == ScanStatus.NO_ACTIVE_SESSION


def test_unknown_badge_is_missing(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            return await process_scan(session, "not-a-badge", "check-in")

    outcome = run_db(scenario)
    assert outcome.status == ScanStatus.MISSING
    assert outcome.person_id is None


@pytest.mark.parametrize("role", [r.value for r in PersonRole])
def test_role_routing_writes_only_to_the_matching_logbook(run_db, role: str) -> None:
    async def scenario(factory):
        async with factory() as session:
            person = await _person(session, role=role)
            outcome = await process_scan(session, person.badge_uuid, "check-in")
            general = await _count(session, LogbookEntry, person.id)
            staff = await _count(session, StaffLogbookEntry, person.id)
            return outcome, general, staff

    outcome, general, staff = run_db(scenario)
    assert outcome.status == ScanStatus.OK
    if role == PersonRole.STUDENT.value:
        assert (general, staff) == (1, 0)
        assert outcome.logbook == LogbookKind.GENERAL
    else:
        assert (general, staff) == (0, 1)
        assert outcome.logbook == LogbookKind.STAFF


def test_open_session_invariant_under_random_replay(run_db) -> None:
    rng = random.Random(2026)
    actions = [rng.choice(["check-in", "check-out"]) for _ in range(60)]

    async def scenario(factory):
        async with factory() as session:
            person = await _person(session, role="officer", team=None)
            checked_in = False
            for action in actions:
                outcome = await process_scan(session, person.badge_uuid, action)
                if action == "check-in":
                    expected = ScanStatus.DUPLICATE if checked_in else ScanStatus.OK
                    checked_in = True
                else:
                    expected = ScanStatus.OK if checked_in else outcome.status
                    assert outcome.status in (ScanStatus.OK, ScanStatus.NOT_CHECKED_IN, ScanStatus.NO_ACTIVE_SESSION)
                    checked_in = False
                assert outcome.status == expected
                assert await _count(session, StaffLogbookEntry, person.id, open_only=True) in (0, 1)
            return await _count(session, LogbookEntry, person.id)

    assert run_db(scenario) == 0


def test_successful_scans_are_audited(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            person = await _person(session)
            await process_scan(session, person.badge_uuid, "check-in", actor="scanner-1")
            await process_scan(session, person.badge_uuid, "check-in", actor="scanner-1")
            await process_scan(session, person.badge_uuid, "check-out", actor="scanner-1", batch=True)
            rows = (await session.execute(select(AuditLogEntry).order_by(AuditLogEntry.id))).scalars().all()
            return [(r.action, r.actor, r.person_id == person.id) for r in rows]

    assert run_db(scenario) == [("SCAN_IN", "scanner-1", True), ("BATCH_SCAN_OUT", "scanner-1", True)]


def test_batch_skips_blank_ids_and_keeps_going(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            ana = await _person(session, name="Ana Cruz")
            ben = await _person(session, name="Ben Reyes")
            await process_scan(session, ben.badge_uuid, "check-in")
            outcomes = await process_scan_batch(
                session, [ana.badge_uuid, "  ", "ghost", ben.badge_uuid, None], "time-in"
            )
            return [(o.badge_id, o.status) for o in outcomes], ana.badge_uuid, ben.badge_uuid

    results, ana_badge, ben_badge = run_db(scenario)
    assert results == [
        (ana_badge, ScanStatus.OK),
        ("ghost", ScanStatus.MISSING),
        (ben_badge, ScanStatus.DUPLICATE),
    ]


def test_batch_database_error_is_isolated_to_one_id(run_db, monkeypatch) -> None:
    async def flaky_lookup(session, badge_id):
        if badge_id == "broken":
            raise OperationalError("SELECT people", {}, Exception("database is locked"))
        return await find_person_by_badge(session, badge_id)

    async def scenario(factory):
        async with factory() as session:
            ana = await _person(session, name="Ana Cruz")
            ben = await _person(session, name="Ben Reyes")
            ben_id = ben.id
            monkeypatch.setattr("itweek.ledger.find_person_by_badge", flaky_lookup)
            outcomes = await process_scan_batch(session, [ana.badge_uuid, "broken", ben.badge_uuid], "time-in")
            return outcomes, await _count(session, LogbookEntry, ben_id, open_only=True)

    outcomes, ben_open = run_db(scenario)
    assert [o.status for o in outcomes] == [ScanStatus.OK, ScanStatus.ERROR, ScanStatus.OK]
    assert outcomes[1].badge_id == "broken"
    assert "database is locked" in outcomes[1].message
    assert ben_open == 1


def test_student_end_to_end(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            person = await _person(session, role="student", team="Alpha")
            statuses = [
                (await process_scan(session, person.badge_uuid, action)).status
                for action in ("check-in", "check-in", "check-out", "check-out")
            ]
            entries = (
                await session.execute(select(LogbookEntry).where(LogbookEntry.person_id == person.id))
            ).scalars().all()
            return statuses, [(e.time_in is not None, e.time_out is not None) for e in entries]

    statuses, entries = run_db(scenario)
    assert statuses == [ScanStatus.OK, ScanStatus.DUPLICATE, ScanStatus.OK, ScanStatus.NOT_CHECKED_IN]
    assert entries == [(True, True)]


def test_person_attendance_and_stats(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            person = await _person(session)
            await process_scan(session, person.badge_uuid, "check-in")
            attendance = await person_attendance(session, person.badge_uuid)
            with pytest.raises(NotFoundError):
                await person_attendance(session, "nobody")
            return attendance

    attendance = run_db(scenario)
    assert attendance["logbook"] == "general"
    assert attendance["checked_in"] is True
    assert len(attendance["items"]) == 1

    now = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
    rows = [
        {"time_in": now - timedelta(hours=1), "time_out": None},
        {"time_in": now - timedelta(days=1), "time_out": now - timedelta(days=1, minutes=-30)},
    ]
    assert logbook_stats(rows, today=now) == {
        "total": 2,
        "currently_in": 1,
        "checked_out": 1,
        "today_check_ins": 1,
    }
