"""WebSocket endpoint for realtime calendar workspaces."""

import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from todocal.api.deps import user_id_from_token
from todocal.core.errors import TodoCalendarError
from todocal.db import SessionFactory, get_session_factory
from todocal.models import User
from todocal.services.profiles import ensure_profile
from todocal.services.websocket_manager import manager
from todocal.services.workspace_session import CurrentUser, WorkspaceSession

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve_user(session_factory: SessionFactory, user_id: UUID) -> CurrentUser | None:
    with session_factory() as session:
        user = session.get(User, user_id)
        if user is None or not user.is_active:
            return None
        profile = ensure_profile(session, user)
        return CurrentUser(id=user.id, username=profile.username)


@router.websocket("/calendars/{calendar_id}")
async def calendar_workspace(
    websocket: WebSocket,
    calendar_id: UUID,
    token: str = Query(...),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    """
    Realtime workspace for one calendar.

    Client connects with: /api/v1/ws/calendars/{calendar_id}?token=JWT_TOKEN

    Server messages: tasks, calendars, calendar_removed, toast, reminder,
    notification_permission, clipboard_write, pong, error.
    Client messages: ping, reload, export_weekly_report,
    notification_permission {permission}, clipboard_write {ok}.
    """
    try:
        user_id = user_id_from_token(token)
    except ValueError as e:
        logger.warning("WebSocket auth error: %s", e)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user = await asyncio.to_thread(_resolve_user, session_factory, user_id)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(websocket, user.id)
    workspace = WorkspaceSession(user, calendar_id, session_factory, websocket)
    try:
        try:
            await workspace.open()
        except TodoCalendarError as e:
            await websocket.send_json({"type": "error", "status": e.status_code, "detail": e.detail})
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        workspace.start()
        while True:
            try:
                data = await websocket.receive_json()
            except WebSocketDisconnect:
                logger.info("WebSocket disconnected gracefully for user %s", user.id)
                break
            if isinstance(data, dict):
                await workspace.receive(data)

    except Exception as e:
        logger.error("WebSocket error for user %s: %s", user.id, e, exc_info=True)

    finally:
        await workspace.close()
        await manager.disconnect(websocket, user.id)
