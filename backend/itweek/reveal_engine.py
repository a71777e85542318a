"""Scoreboard reveal state machine and rank-based visibility rules.

Pure logic, no persistence: transitions are validated here and applied by
`scoreboard_service`.

    idle ──start──▶ countdown ──tick(n-1)──▶ countdown ──reveal──▶ winner ──reset──▶ idle
                        └──────────────abort──────────────▶ idle
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Sequence

from itweek.errors import InvalidTransition
from itweek.models.scoreboard import RevealState

_ALLOWED: dict[RevealState, frozenset[RevealState]] = {
    RevealState.IDLE: frozenset({RevealState.COUNTDOWN}),
    RevealState.COUNTDOWN: frozenset({RevealState.COUNTDOWN, RevealState.WINNER, RevealState.IDLE}),
    RevealState.WINNER: frozenset({RevealState.IDLE}),
}


class ScoredTeam(Protocol):
    id: int
    name: str
    score: int


class VisibilityToggles(Protocol):
    hide_names: bool
    hide_scores: bool
    hide_bars: bool
    hide_top2: bool
    hide_rank_3: bool
    hide_rank_4: bool
    hide_all: bool


@dataclass(frozen=True, slots=True)
class RowVisibility:
    name_hidden: bool
    score_hidden: bool
    bar_hidden: bool

    @property
    def fully_redacted(self) -> bool:
        return self.name_hidden and self.score_hidden


def state_name(value: RevealState | str) -> str:
    if isinstance(value, RevealState):
        return value.value
    raw = str(value)
    if raw.startswith("RevealState."):
        return raw.split(".", 1)[1].lower()
    return raw


def coerce_state(value: RevealState | str) -> RevealState:
    try:
        return RevealState(state_name(value))
    except ValueError:
        raise InvalidTransition(f"Unknown reveal state: {value!r}")


def validate_transition(
    current: RevealState | str,
    target: RevealState | str,
    *,
    current_countdown: int = 0,
    new_countdown: Optional[int] = None,
) -> RevealState:
    """Return the target state if the move is legal, else raise `InvalidTransition`.

    A countdown → countdown move is a tick and must strictly decrease the value.
    """
    src = coerce_state(current)
    dst = coerce_state(target)
    if dst not in _ALLOWED[src]:
        raise InvalidTransition(f"Cannot go from {src.value} to {dst.value}")
    if dst == RevealState.COUNTDOWN:
        if new_countdown is None or new_countdown < 0:
            raise InvalidTransition("Countdown value must be a non-negative integer")
        if src == RevealState.COUNTDOWN and new_countdown >= current_countdown:
            raise InvalidTransition(
                f"Countdown must decrease (current {current_countdown}, got {new_countdown})"
            )
    return dst


def rank_teams(teams: Iterable[ScoredTeam]) -> list[ScoredTeam]:
    """Descending by score. `sorted` is stable, so ties keep input order."""
    return sorted(teams, key=lambda t: int(t.score or 0), reverse=True)


def select_winner(teams: Sequence[ScoredTeam]) -> ScoredTeam | None:
    """argmax(score); on a tie the first team in input order wins."""
    winner: ScoredTeam | None = None
    for team in teams:
        if winner is None or int(team.score or 0) > int(winner.score or 0):
            winner = team
    return winner


def rank_hidden(settings: VisibilityToggles, rank_index: int) -> bool:
    """Rank-specific redaction by 0-based position after sorting."""
    if settings.hide_top2 and rank_index < 2:
        return True
    if settings.hide_rank_3 and rank_index == 2:
        return True
    if settings.hide_rank_4 and rank_index == 3:
        return True
    return False


def row_visibility(settings: VisibilityToggles, rank_index: int) -> RowVisibility:
    by_rank = rank_hidden(settings, rank_index)
    return RowVisibility(
        name_hidden=bool(settings.hide_names) or by_rank,
        score_hidden=bool(settings.hide_scores) or by_rank,
        bar_hidden=bool(settings.hide_bars),
    )


def redact_board(teams: Iterable[ScoredTeam], settings: VisibilityToggles) -> list[dict[str, Any]]:
    """Ranked rows as a viewer may see them. Hidden values are replaced by `None`."""
    if settings.hide_all:
        return []
    ranked = rank_teams(teams)
    top = max([int(t.score or 0) for t in ranked] + [1])
    rows = []
    for index, team in enumerate(ranked):
        vis = row_visibility(settings, index)
        rows.append(
            {
                "rank": index + 1,
                "team_id": None if vis.name_hidden else team.id,
                "name": None if vis.name_hidden else team.name,
                "score": None if vis.score_hidden else int(team.score or 0),
                "bar_pct": None if vis.bar_hidden else round(100.0 * int(team.score or 0) / top, 1),
                "name_hidden": vis.name_hidden,
                "score_hidden": vis.score_hidden,
                "bar_hidden": vis.bar_hidden,
            }
        )
    return rows


def count_up_frames(target: int, steps: int = 60) -> list[int]:
    """Displayed values for the winner count-up, from 0 to `target` inclusive."""
    target = max(0, int(target))
    if target == 0:
        return [0]
    step = max(1, math.ceil(target / max(1, steps)))
    frames = list(range(0, target, step))
    frames.append(target)
    return frames
