"""
Calendar bootstrap.

Loads the signed-in user's calendars when a workspace opens. The fetch is
raced against a timeout; on timeout or error a personal calendar is
provisioned and the fetch retried, up to a fixed number of times.

    Idle -> Loading -> Retrying(n) -> Ready | Failed
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Generic, Optional, TypeVar

from todocal.core.errors import TransientFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BootstrapState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RETRYING = "retrying"
    READY = "ready"
    FAILED = "failed"


class CalendarBootstrap(Generic[T]):
    def __init__(
        self,
        loader: Callable[[], Awaitable[Sequence[T]]],
        provisioner: Callable[[], Awaitable[object]],
        *,
        timeout_seconds: float = 5.0,
        max_retries: int = 1,
    ) -> None:
        self._loader = loader
        self._provisioner = provisioner
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self.state = BootstrapState.IDLE
        self.attempts = 0
        self.calendars: list[T] = []
        self.error: Optional[str] = None

    def _transition(self, state: BootstrapState) -> None:
        logger.debug("Calendar bootstrap %s -> %s (attempt %s)", self.state.value, state.value, self.attempts)
        self.state = state

    async def _fetch(self) -> list[T]:
        try:
            return list(await asyncio.wait_for(self._loader(), timeout=self._timeout))
        except asyncio.TimeoutError as exc:
            raise TransientFetchError(
                f"Calendar list did not load within {self._timeout:g}s"
            ) from exc

    async def run(self) -> BootstrapState:
        if self.state in (BootstrapState.LOADING, BootstrapState.RETRYING):
            return self.state

        self.attempts = 0
        self.error = None
        self._transition(BootstrapState.LOADING)

        while True:
            self.attempts += 1
            try:
                calendars = await self._fetch()
            except Exception as exc:
                self.error = getattr(exc, "detail", None) or str(exc)
                logger.warning("Calendar bootstrap attempt %s failed: %s", self.attempts, self.error)
            else:
                if calendars:
                    self.calendars = calendars
                    self.error = None
                    self._transition(BootstrapState.READY)
                    return self.state
                self.error = "No calendars available"

            if self.attempts > self._max_retries:
                self._transition(BootstrapState.FAILED)
                logger.error("Calendar bootstrap failed after %s attempts: %s", self.attempts, self.error)
                return self.state

            self._transition(BootstrapState.RETRYING)
            try:
                await self._provisioner()
            except Exception as exc:
                logger.warning("Personal calendar provisioning failed: %s", exc)

    async def retry(self) -> BootstrapState:
        """Restart from Idle after a failure."""
        if self.state is not BootstrapState.FAILED:
            return self.state
        self._transition(BootstrapState.IDLE)
        return await self.run()
