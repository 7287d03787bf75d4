from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import Field, SQLModel


class Profile(SQLModel, table=True):
    """Public identity of a user inside shared calendars."""

    __tablename__ = "profiles"

    user_id: UUID = Field(foreign_key="users.id", primary_key=True, nullable=False)
    username: str = Field(index=True, unique=True, max_length=50)
    avatar_seed: str = Field(max_length=64)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    def touch(self) -> None:
        self.updated_at = datetime.utcnow()
