from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CalendarCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class CalendarRead(BaseModel):
    id: UUID
    name: str
    created_by: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CalendarReadWithRole(CalendarRead):
    current_user_role: Optional[str] = None


class MembershipRead(BaseModel):
    id: UUID
    calendar_id: UUID
    user_id: UUID
    username: Optional[str] = None
    role: Literal["owner", "member"]
    status: Literal["pending", "active"]
    invited_by: Optional[UUID] = None
    created_at: datetime


class PendingRequestRead(BaseModel):
    id: UUID
    calendar_id: UUID
    calendar_name: str
    invited_by: Optional[UUID] = None
    inviter_username: Optional[str] = None
    created_at: datetime


class InviteCreate(BaseModel):
    username: str = Field(min_length=1, max_length=50)


class BootstrapRead(BaseModel):
    state: Literal["idle", "loading", "retrying", "ready", "failed"]
    attempts: int
    calendars: list[CalendarRead] = []
    error: Optional[str] = None
