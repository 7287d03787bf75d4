"""
Per-connection realtime workspace.

A WorkspaceSession owns the in-memory task list of one open calendar for
one user. Change feed callbacks never touch that state: they only enqueue
Invalidate or Toast messages, and handle() performs the refetch and pushes
the new snapshot to the client. Feed callbacks may run in request worker
threads, so enqueueing goes through the event loop.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol, Union
from uuid import UUID

from todocal.core.config import settings
from todocal.db import SessionFactory
from todocal.models import Task
from todocal.schemas import CalendarRead, TaskRead
from todocal.services import memberships, task_store, views
from todocal.services.change_feed import (
    TABLE_MEMBERSHIPS,
    TABLE_PROFILES,
    TABLE_TODOS,
    ChangeEvent,
    ChangeFeed,
    EventType,
    Subscription,
    change_feed,
)
from todocal.services.reminders import (
    PERMISSION_DEFAULT,
    LocalNotifier,
    ReminderScheduler,
)
from todocal.services.views import Clipboard

logger = logging.getLogger(__name__)

SCOPE_TASKS = "tasks"
SCOPE_PROFILES = "profiles"
SCOPE_CALENDARS = "calendars"


@dataclass(frozen=True, slots=True)
class Invalidate:
    scope: str


@dataclass(frozen=True, slots=True)
class Toast:
    text: str


SessionMessage = Union[Invalidate, Toast]


class MessageSink(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


@dataclass(frozen=True, slots=True)
class CurrentUser:
    id: UUID
    username: str


class _ClientRequests:
    """Request/response round trips to the browser over the socket."""

    def __init__(self, sink: MessageSink, timeout: float) -> None:
        self._sink = sink
        self._timeout = timeout
        self._pending: dict[str, asyncio.Future] = {}

    async def ask(self, kind: str, payload: dict[str, Any], default: Any) -> Any:
        loop = asyncio.get_running_loop()
        if kind in self._pending and not self._pending[kind].done():
            self._pending[kind].cancel()
        future = loop.create_future()
        self._pending[kind] = future
        await self._sink.send_json({"type": kind, **payload})
        try:
            return await asyncio.wait_for(future, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.debug("Client did not answer %s within %ss", kind, self._timeout)
            return default
        finally:
            self._pending.pop(kind, None)

    async def send(self, message: dict[str, Any]) -> None:
        await self._sink.send_json(message)

    def answer(self, kind: str, value: Any) -> bool:
        future = self._pending.get(kind)
        if future is None or future.done():
            return False
        future.set_result(value)
        return True


class WebSocketNotifier:
    """LocalNotifier backed by the browser Notification API."""

    def __init__(self, requests: _ClientRequests) -> None:
        self._requests = requests

    async def request_permission(self) -> str:
        return await self._requests.ask("notification_permission", {}, PERMISSION_DEFAULT)

    async def show(self, title: str, body: str) -> None:
        await self._requests.send({"type": "reminder", "title": title, "body": body})


class WebSocketClipboard:
    """Clipboard backed by navigator.clipboard on the client."""

    def __init__(self, requests: _ClientRequests) -> None:
        self._requests = requests

    async def write_text(self, text: str) -> bool:
        return bool(await self._requests.ask("clipboard_write", {"text": text}, False))


class WorkspaceSession:
    def __init__(
        self,
        user: CurrentUser,
        calendar_id: UUID,
        session_factory: SessionFactory,
        sink: MessageSink,
        *,
        feed: ChangeFeed | None = None,
        notifier: LocalNotifier | None = None,
        clipboard: Clipboard | None = None,
        clock: Callable[[], datetime] = datetime.now,
        client_timeout: float = 30.0,
    ) -> None:
        self._user = user
        self.calendar_id = calendar_id
        self._session_factory = session_factory
        self._sink = sink
        self._feed = feed or change_feed
        self._clock = clock
        self._requests = _ClientRequests(sink, client_timeout)
        self.notifier = notifier or WebSocketNotifier(self._requests)
        self.clipboard = clipboard or WebSocketClipboard(self._requests)

        self.tasks: list[Task] = []
        self.watched_user_ids: set[UUID] = {user.id}
        self.queue: asyncio.Queue[SessionMessage] = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscriptions: list[Subscription] = []
        self._background: set[asyncio.Task] = set()
        self._pending_scopes: set[str] = set()
        self.scheduler = ReminderScheduler(
            lambda: self.tasks,
            self.notifier,
            interval_seconds=settings.REMINDER_SCAN_INTERVAL_SECONDS,
            default_hour=settings.REMINDER_DEFAULT_HOUR,
            clock=clock,
        )

    def current_user(self) -> CurrentUser:
        return self._user

    # Loading

    def _fetch_tasks(self) -> list[Task]:
        with self._session_factory() as session:
            return task_store.list_tasks(session, self.calendar_id, self._user.id)

    def _fetch_partners(self) -> set[UUID]:
        with self._session_factory() as session:
            return memberships.partner_ids_of(session, self._user.id)

    def _fetch_calendars(self) -> list[dict[str, Any]]:
        with self._session_factory() as session:
            return [
                CalendarRead.model_validate(calendar).model_dump(mode="json")
                for calendar in memberships.list_calendars(session, self._user.id)
            ]

    async def reload_tasks(self) -> None:
        # Full refetch and replace
        self.tasks = await asyncio.to_thread(self._fetch_tasks)
        await self.send_tasks()

    async def reload_partners(self) -> None:
        partners = await asyncio.to_thread(self._fetch_partners)
        self.watched_user_ids = {self._user.id} | partners

    async def send_tasks(self) -> None:
        await self._sink.send_json(
            {
                "type": "tasks",
                "calendar_id": str(self.calendar_id),
                "tasks": [TaskRead.model_validate(t).model_dump(mode="json") for t in self.tasks],
                "colors": views.username_color_map(self.tasks),
            }
        )

    # Feed callbacks

    def _enqueue(self, message: SessionMessage) -> None:
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._put, message)

    def _put(self, message: SessionMessage) -> None:
        # One pending reload per scope; runs on the event loop
        if isinstance(message, Invalidate):
            if message.scope in self._pending_scopes:
                return
            self._pending_scopes.add(message.scope)
        self.queue.put_nowait(message)

    def _toast_for(self, event: ChangeEvent) -> None:
        if event.actor_id is None or event.actor_id == self._user.id:
            return
        row = event.row
        title = row.get("title")
        who = row.get("created_by_username") or "A member"
        if event.event_type is EventType.INSERT:
            text = f"{who} added “{title}”"
        elif event.event_type is EventType.DELETE:
            text = f"“{title}” was deleted"
        else:
            text = f"“{title}” was updated"
        self._enqueue(Toast(text))

    def on_todo_change(self, event: ChangeEvent) -> None:
        self._enqueue(Invalidate(SCOPE_TASKS))
        self._toast_for(event)

    def on_profile_change(self, event: ChangeEvent) -> None:
        user_id = event.row.get("user_id")
        if user_id is None or UUID(str(user_id)) not in self.watched_user_ids:
            return
        # Usernames are denormalized onto task rows
        self._enqueue(Invalidate(SCOPE_PROFILES))

    def on_membership_change(self, event: ChangeEvent) -> None:
        self._enqueue(Invalidate(SCOPE_CALENDARS))

    # Message loop

    async def handle(self, message: SessionMessage) -> None:
        if isinstance(message, Toast):
            await self._sink.send_json({"type": "toast", "text": message.text})
            return

        self._pending_scopes.discard(message.scope)
        if message.scope == SCOPE_TASKS:
            await self.reload_tasks()
        elif message.scope == SCOPE_PROFILES:
            await self.reload_partners()
            await self.reload_tasks()
        elif message.scope == SCOPE_CALENDARS:
            await self.reload_partners()
            calendars = await asyncio.to_thread(self._fetch_calendars)
            await self._sink.send_json({"type": "calendars", "calendars": calendars})
            if not any(c["id"] == str(self.calendar_id) for c in calendars):
                logger.info("User %s lost access to calendar %s", self._user.id, self.calendar_id)
                await self._sink.send_json({"type": "calendar_removed", "calendar_id": str(self.calendar_id)})
        else:
            logger.warning("Unknown invalidation scope %r", message.scope)

    async def drain(self) -> int:
        """Handle every message queued so far; used when no pump is running."""
        # Let call_soon_threadsafe callbacks land in the queue
        await asyncio.sleep(0)
        handled = 0
        while not self.queue.empty():
            await self.handle(self.queue.get_nowait())
            handled += 1
        return handled

    async def _pump(self) -> None:
        while True:
            message = await self.queue.get()
            try:
                await self.handle(message)
            except Exception as exc:
                logger.error("Workspace message %r failed: %s", message, exc, exc_info=True)

    async def open(self) -> None:
        """Load the calendar and subscribe to its changes.

        Raises NotFoundError/AccessDeniedError when the user is not an
        active member.
        """
        self._loop = asyncio.get_running_loop()
        await self.reload_partners()
        await self.reload_tasks()

        self._subscriptions = [
            self._feed.subscribe(TABLE_TODOS, {"calendar_id": self.calendar_id}, self.on_todo_change),
            self._feed.subscribe(TABLE_PROFILES, None, self.on_profile_change),
            self._feed.subscribe(TABLE_MEMBERSHIPS, {"user_id": self._user.id}, self.on_membership_change),
            self._feed.subscribe(
                TABLE_MEMBERSHIPS, {"calendar_id": self.calendar_id}, self.on_membership_change
            ),
        ]
        logger.info("Workspace opened user=%s calendar=%s tasks=%s", self._user.id, self.calendar_id, len(self.tasks))

    def start(self) -> None:
        """Run the message pump and the reminder scheduler in the background."""
        self._spawn(self._pump())
        self._spawn(self.scheduler.start())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def receive(self, data: dict[str, Any]) -> None:
        """Handle a message sent by the client."""
        kind = data.get("type")
        if kind == "ping":
            await self._sink.send_json({"type": "pong"})
        elif kind == "notification_permission":
            self._requests.answer(kind, data.get("permission", PERMISSION_DEFAULT))
        elif kind == "clipboard_write":
            self._requests.answer(kind, bool(data.get("ok")))
        elif kind == "export_weekly_report":
            self._spawn(self.export_weekly_report())
        elif kind == "reload":
            await self.reload_tasks()
        else:
            logger.debug("Ignoring client message %r", kind)

    async def export_weekly_report(self) -> str:
        report = views.weekly_report(self.tasks, self._user.id, self._clock())
        text = await views.export_weekly_report(report, self.clipboard)
        await self._sink.send_json({"type": "toast", "text": text})
        return text

    async def close(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        await self.scheduler.stop()
        background = list(self._background)
        for task in background:
            task.cancel()
        for task in background:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._background.clear()
        self._pending_scopes.clear()
        logger.info("Workspace closed user=%s calendar=%s", self._user.id, self.calendar_id)
