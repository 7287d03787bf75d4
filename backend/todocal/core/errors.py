"""Domain errors raised by the service layer.

Each error carries the HTTP status the API maps it to.
"""
from __future__ import annotations

from fastapi import status


class TodoCalendarError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be completed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class DuplicateError(TodoCalendarError):
    """Unique constraint violation (duplicate invite, taken username)."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already exists"


class NotFoundError(TodoCalendarError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class SelfInviteError(TodoCalendarError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "You cannot invite yourself"


class AccessDeniedError(TodoCalendarError):
    """Row-level access denial."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Access to calendar denied"


class InvalidTransitionError(TodoCalendarError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Membership cannot change from its current state"


class TransientFetchError(TodoCalendarError):
    """Network, timeout or database failure while loading calendars."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Calendars could not be loaded, try again"
