from __future__ import annotations

import datetime as dt
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

PRIORITY_HIGH = "high"
PRIORITY_MEDIUM = "medium"
PRIORITY_LOW = "low"


class Task(SQLModel, table=True):
    """Dated to-do item inside a calendar."""

    __tablename__ = "todos"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    calendar_id: UUID = Field(foreign_key="calendars.id", nullable=False, index=True)
    user_id: UUID = Field(foreign_key="users.id", nullable=False, index=True)
    created_by_username: str = Field(max_length=50)
    title: str = Field(max_length=500)
    # "date" shadows the type name inside the class body, hence the dt alias
    date: dt.date = Field(nullable=False, index=True)
    completed: bool = Field(default=False)
    priority: str = Field(default=PRIORITY_MEDIUM, max_length=16)
    position: int = Field(default=0)
    reminder_time: Optional[dt.time] = Field(default=None, nullable=True)
    reminder_date: Optional[dt.date] = Field(default=None, nullable=True)
    is_monthly_recurring: bool = Field(default=False)
    created_at: dt.datetime = Field(default_factory=dt.datetime.utcnow, nullable=False)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow, nullable=False)

    def touch(self) -> None:
        self.updated_at = dt.datetime.utcnow()
