from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

ROLE_OWNER = "owner"
ROLE_MEMBER = "member"

STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"


class CalendarMembership(SQLModel, table=True):
    """Calendar membership; a pending row is an invitation."""

    __tablename__ = "calendar_memberships"
    __table_args__ = (
        UniqueConstraint("calendar_id", "user_id", name="uq_calendar_memberships_calendar_user"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    calendar_id: UUID = Field(foreign_key="calendars.id", nullable=False, index=True)
    user_id: UUID = Field(foreign_key="users.id", nullable=False, index=True)
    role: str = Field(default=ROLE_MEMBER, max_length=32)
    status: str = Field(default=STATUS_PENDING, max_length=32, index=True)
    invited_by: Optional[UUID] = Field(default=None, foreign_key="users.id", nullable=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    def touch(self) -> None:
        self.updated_at = datetime.utcnow()
