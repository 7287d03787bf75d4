from fastapi import APIRouter

from todocal.api.v1 import auth, calendars, health, notifications, profiles, tasks, views, websocket


api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(profiles.router, prefix="/profiles", tags=["profiles"])
api_router.include_router(calendars.router, prefix="/calendars", tags=["calendars"])
api_router.include_router(tasks.router, prefix="", tags=["tasks"])
api_router.include_router(views.router, prefix="/calendars", tags=["views"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(websocket.router, prefix="/ws", tags=["websocket"])
