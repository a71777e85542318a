"""Models package — re-export all ORM classes so metadata sees every table."""
from itweek.models.person import Person, PersonRole  # noqa: F401
from itweek.models.team import Team  # noqa: F401
from itweek.models.logbook import LogbookEntry, LogbookKind, StaffLogbookEntry  # noqa: F401
from itweek.models.score_log import ScoreLogEntry  # noqa: F401
from itweek.models.scoring_event import ScoringEvent  # noqa: F401
from itweek.models.audit import AuditAction, AuditLogEntry  # noqa: F401
from itweek.models.scoreboard import RevealState, ScoreboardSettings  # noqa: F401
