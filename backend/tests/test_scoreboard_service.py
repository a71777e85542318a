import pytest
from sqlalchemy import select

from itweek.errors import InvalidTransition, ValidationError
from itweek.models import AuditLogEntry, Team
from itweek.score_service import apply_delta
from itweek.scoreboard_service import (
    get_settings,
    public_board,
    reset_reveal,
    reveal_winner,
    start_countdown,
    tick_countdown,
    update_settings,
)
from itweek.workers.reveal import _run_reveal_countdown


async def _teams(session, scores: list[int]) -> list[Team]:
    teams = [Team(name=f"Team {i + 1}", score=s) for i, s in enumerate(scores)]
    session.add_all(teams)
    await session.commit()
    return teams


async def _actions(session) -> list[str]:
    return list((await session.execute(select(AuditLogEntry.action).order_by(AuditLogEntry.id))).scalars().all())


def test_settings_singleton_is_created_once(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            first = await get_settings(session)
            second = await get_settings(session)
            return first.id, second.id, first.reveal_state

    assert run_db(scenario) == (1, 1, "idle")


def test_full_reveal_sequence_freezes_the_winner(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            teams = await _teams(session, [50, 90, 90, 10])
            await start_countdown(session, 3, actor="host")
            await tick_countdown(session, actor="host")
            await tick_countdown(session, 0, actor="host")
            row = await reveal_winner(session, actor="host")
            frozen = (row.winner_team_id, row.winner_team_name, row.winner_score)

            # A later score change does not move the revealed winner.
            await apply_delta(session, teams[3].id, 500, "Late surge")
            board = await public_board(session)
            actions = await _actions(session)
            await reset_reveal(session, actor="host")
            after_reset = await public_board(session)
            return teams[1].id, frozen, board, actions, after_reset

    second_id, frozen, board, actions, after_reset = run_db(scenario)
    assert frozen == (second_id, "Team 2", 90)
    assert board["winner"]["name"] == "Team 2"
    assert board["winner"]["count_up"][-1] == 90
    assert board["teams"][0]["name"] == "Team 4"
    # Ticks are not audited; the other transitions are.
    assert actions.count("REVEAL_TRANSITION") == 2
    assert after_reset["winner"] is None
    assert after_reset["settings"]["reveal_state"] == "idle"


def test_invalid_transitions_are_rejected(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            await _teams(session, [10])
            with pytest.raises(InvalidTransition):
                await reveal_winner(session)
            await start_countdown(session, 2)
            with pytest.raises(InvalidTransition):
                await tick_countdown(session, 5)
            with pytest.raises(InvalidTransition):
                await start_countdown(session, -1)
            return (await get_settings(session)).countdown

    assert run_db(scenario) == 2


def test_update_settings_audits_only_changes(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            await _teams(session, [10, 20, 30])
            await update_settings(session, {"hide_top2": True}, actor="host")
            await update_settings(session, {"hide_top2": True}, actor="host")
            with pytest.raises(ValidationError):
                await update_settings(session, {"hide_everything": True})
            board = await public_board(session)
            audits = (await session.execute(select(AuditLogEntry))).scalars().all()
            return board, [(a.action, a.details) for a in audits]

    board, audits = run_db(scenario)
    assert [r["name"] for r in board["teams"]] == [None, None, "Team 1"]
    assert audits == [("SCOREBOARD_SETTINGS", {"hide_top2": {"old": False, "new": True}})]


def test_hide_all_also_hides_the_revealed_winner(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            await _teams(session, [40, 70])
            await start_countdown(session, 1)
            await tick_countdown(session, 0)
            await reveal_winner(session)
            await update_settings(session, {"hide_all": True})
            hidden = await public_board(session)
            await update_settings(session, {"hide_all": False})
            shown = await public_board(session)
            return hidden, shown

    hidden, shown = run_db(scenario)
    assert hidden["teams"] == []
    assert hidden["winner"] is None
    assert hidden["settings"]["reveal_state"] == "winner"
    assert shown["winner"]["name"] == "Team 2"


def test_reveal_worker_ticks_down_and_reveals(run_db, monkeypatch) -> None:
    async def scenario(factory):
        monkeypatch.setattr("itweek.workers.reveal.async_session_factory", factory)
        async with factory() as session:
            await _teams(session, [30, 70])
            await start_countdown(session, 2)
        final_state = await _run_reveal_countdown(2, "host", tick_s=0)
        async with factory() as session:
            row = await get_settings(session)
            return final_state, row.winner_team_name, row.countdown

    assert run_db(scenario) == ("winner", "Team 2", 0)


def test_reveal_worker_stops_after_abort(run_db, monkeypatch) -> None:
    async def scenario(factory):
        monkeypatch.setattr("itweek.workers.reveal.async_session_factory", factory)
        async with factory() as session:
            await _teams(session, [30])
            await start_countdown(session, 2)
            await reset_reveal(session)
        return await _run_reveal_countdown(2, tick_s=0)

    assert run_db(scenario) == "idle"
