"""Person model — one registered individual and their badge identifier."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from itweek.db import Base


class PersonRole(str, enum.Enum):
    """Registration roles. Everything except STUDENT is staff."""

    STUDENT = "student"
    LEADER = "leader"
    FACILITATOR = "facilitator"
    EXECUTIVE = "executive"
    OFFICER = "officer"


STAFF_ROLES = frozenset(
    {PersonRole.LEADER, PersonRole.FACILITATOR, PersonRole.EXECUTIVE, PersonRole.OFFICER}
)


def new_badge_uuid() -> str:
    return str(uuid.uuid4())


class Person(Base):
    """Participant or staff member. `badge_uuid` is what the QR code encodes."""

    __tablename__ = "people"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    badge_uuid: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, default=new_badge_uuid
    )
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    team_name: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=PersonRole.STUDENT.value)
    edit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Person id={self.id} role={self.role} name={self.full_name!r}>"
