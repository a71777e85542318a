from sqlalchemy import func, select, text

from itweek.audit import list_audit_logs, record_audit
from itweek.models import AuditAction, AuditLogEntry, ScoreLogEntry, Team
from itweek.score_service import apply_delta


def test_record_audit_defaults_actor_and_wraps_text_details(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            ok = await record_audit(session, action=AuditAction.RESET_SCORES, details="all teams back to base")
            row = (await session.execute(select(AuditLogEntry))).scalar_one()
            return ok, row.actor, row.action, row.details

    assert run_db(scenario) == (True, "system", "RESET_SCORES", {"message": "all teams back to base"})


def test_failed_audit_write_does_not_undo_the_mutation(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            team = Team(name="Alpha", score=150)
            session.add(team)
            await session.commit()
            team_id = team.id

            await session.execute(text("DROP TABLE audit_logs"))
            await session.commit()
            change = await apply_delta(session, team_id, 10, "Quiz")

            score = (await session.execute(select(Team.score).where(Team.id == team_id))).scalar_one()
            entries = (await session.execute(select(func.count(ScoreLogEntry.id)))).scalar_one()
            return change.new_score, score, entries

    assert run_db(scenario) == (160, 160, 1)


def test_list_audit_logs_filters(run_db) -> None:
    async def scenario(factory):
        async with factory() as session:
            await record_audit(session, action=AuditAction.CREATE_TEAM, actor="admin", target_name="Alpha")
            await record_audit(session, action=AuditAction.CREATE_TEAM, actor="admin", target_name="Beta")
            await record_audit(session, action=AuditAction.REGISTER, actor="Ana Cruz", target_name="Ana Cruz")
            newest = await list_audit_logs(session)
            by_action = await list_audit_logs(session, action="CREATE_TEAM")
            searched = await list_audit_logs(session, search="ANA")
            return (
                [r.target_name for r in newest],
                [r.target_name for r in by_action],
                [r.target_name for r in searched],
            )

    newest, by_action, searched = run_db(scenario)
    assert newest == ["Ana Cruz", "Beta", "Alpha"]
    assert by_action == ["Beta", "Alpha"]
    assert searched == ["Ana Cruz"]
