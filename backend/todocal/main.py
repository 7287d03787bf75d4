import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from todocal.api.router import api_router
from todocal.core.config import settings
from todocal.core.errors import TodoCalendarError
from todocal.db import init_db
from todocal.services.redis_pubsub import change_relay

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_application() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.PROJECT_NAME, version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.debug("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(TodoCalendarError)
    async def domain_exception_handler(request: Request, exc: TodoCalendarError):
        if exc.status_code >= 500:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": jsonable_errors(exc)},
        )

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.on_event("startup")
    async def _startup() -> None:
        init_db()
        if settings.REALTIME_REDIS_ENABLED:
            try:
                await change_relay.connect()
            except Exception as exc:
                logger.error("Realtime relay unavailable, changes stay in-process: %s", exc)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        if change_relay.connected:
            await change_relay.disconnect()

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold the raised exception instance
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


app = create_application()
