import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .users import routers as user_router
from .chat import routers as chat_router
from .groups import routers as group_router

from .core.config import Settings, get_settings
from .core.database import Database
from .core.errors import (
    ChatError,
    ConflictError,
    DeadlineExceededError,
    InvalidArgumentError,
    NotAdminError,
    NotFoundError,
    NotMemberError,
)
from .core.middleware import logging_middleware
from .utils.logging_config import setup_logging


logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS = [
    (NotMemberError, 403),
    (NotAdminError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidArgumentError, 400),
    (DeadlineExceededError, 504),
]


def status_for(error: ChatError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


async def chat_error_handler(request: Request, exc: ChatError):
    status_code = status_for(exc)
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[REQ {request_id}] {type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Build the API application.

    The storage handle is created here (or injected, in tests), kept on
    ``app.state`` and disposed when the application shuts down.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.database.dispose()
        logger.info("database_disposed")

    if database is None:
        database = Database(settings.database_url, echo=settings.database_echo)
        database.create_schema()

    app = FastAPI(title="Group chat API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database

    app.include_router(user_router.router, tags=["Users"])
    app.include_router(chat_router.router, tags=["Conversations"])
    app.include_router(group_router.router, prefix="/groups", tags=["Groups"])

    app.add_exception_handler(ChatError, chat_error_handler)
    app.middleware("http")(logging_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        max_age=1,
    )

    @app.get("/liveness")
    def liveness():
        try:
            app.state.database.ping()
        except Exception:
            logger.exception("liveness_check_failed")
            return Response(status_code=500)
        return Response(status_code=200)

    return app
