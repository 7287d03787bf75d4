from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Priority = Literal["high", "medium", "low"]


class NoReminderSpec(BaseModel):
    kind: Literal["none"] = "none"


class TimeOfDayReminderSpec(BaseModel):
    kind: Literal["time"] = "time"
    time: dt.time


class FixedDateReminderSpec(BaseModel):
    kind: Literal["date"] = "date"
    date: dt.date


class MonthlyReminderSpec(BaseModel):
    kind: Literal["monthly"] = "monthly"
    # 0 means the last day of the month
    day: int = Field(ge=0, le=31)
    time: Optional[dt.time] = None


ReminderSpec = Annotated[
    Union[NoReminderSpec, TimeOfDayReminderSpec, FixedDateReminderSpec, MonthlyReminderSpec],
    Field(discriminator="kind"),
]


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    # Computed from the reminder day for monthly tasks
    date: Optional[dt.date] = None
    priority: Priority = "medium"
    reminder: Optional[ReminderSpec] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @model_validator(mode="after")
    def check_date(self) -> "TaskCreate":
        if self.date is None and not isinstance(self.reminder, MonthlyReminderSpec):
            raise ValueError("date is required unless the reminder is monthly")
        return self


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    priority: Optional[Priority] = None
    reminder: Optional[ReminderSpec] = None


class TaskRead(BaseModel):
    id: UUID
    calendar_id: UUID
    user_id: UUID
    created_by_username: str
    title: str
    date: dt.date
    completed: bool
    priority: Priority
    position: int
    reminder_time: Optional[dt.time] = None
    reminder_date: Optional[dt.date] = None
    is_monthly_recurring: bool
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class ToggleResult(BaseModel):
    task: TaskRead
    spawned: Optional[TaskRead] = None


class ReorderRequest(BaseModel):
    date: dt.date
    task_ids: list[UUID]


class ReorderResult(BaseModel):
    persisted: list[UUID]
    skipped: list[UUID]
