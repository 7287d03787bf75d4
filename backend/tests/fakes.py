# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from todocal.services.reminders import PERMISSION_GRANTED


@dataclass(slots=True)
class ShownNotification:
    title: str
    body: str


class FakeNotifier:
    """LocalNotifier that records what would have been shown."""

    def __init__(self, permission: str = PERMISSION_GRANTED, fail: bool = False) -> None:
        self.permission = permission
        self.fail = fail
        self.shown: list[ShownNotification] = []
        self.permission_requests = 0

    async def request_permission(self) -> str:
        self.permission_requests += 1
        return self.permission

    async def show(self, title: str, body: str) -> None:
        if self.fail:
            raise RuntimeError("notification backend unavailable")
        self.shown.append(ShownNotification(title=title, body=body))


class FakeClipboard:
    def __init__(self, ok: bool = True, error: Exception | None = None) -> None:
        self.ok = ok
        self.error = error
        self.writes: list[str] = []

    async def write_text(self, text: str) -> bool:
        if self.error is not None:
            raise self.error
        self.writes.append(text)
        return self.ok


@dataclass(slots=True)
class FakeSocket:
    """Collects JSON messages a workspace session sends to its client."""

    sent: list[dict[str, Any]] = field(default_factory=list)

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message.get("type") == kind]
