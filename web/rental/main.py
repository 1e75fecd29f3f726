"""Main application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

# Rate limiting
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .core import BaseError, Settings, get_settings
from .deps import SessionDep
from .infrastructure import BackgroundTaskSet, Mailer, NotificationBus, build_mailer, build_session_factory
from .infrastructure.database import engine as default_engine
from .models import Base
from .services import BookingEmailService
from .api.v1.api import api_v1_router, cron_router
from .api.v1.middleware import exception_handler, base_error_handler, validation_exception_handler

logger = logging.getLogger(__name__)

# Seconds to let in-flight emails and deliveries finish on shutdown
SHUTDOWN_DRAIN_SECONDS = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    async with app.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    # Shutdown
    await app.state.tasks.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    await app.state.tasks.cancel_all()


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[AsyncEngine] = None,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    """Build the API with its process-wide collaborators on ``app.state``."""
    settings = settings or get_settings()
    engine = engine or default_engine

    app = FastAPI(
        title="Rental API",
        description="Booking lifecycle and scheduled reconciliation for shared rental items",
        version="1.0.0",
        lifespan=lifespan
    )

    # Constructed once and handed to dependencies by reference
    tasks = BackgroundTaskSet()
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.tasks = tasks
    app.state.bus = NotificationBus(tasks)
    app.state.mailer = mailer or build_mailer(settings)
    app.state.emails = BookingEmailService(app.state.mailer, settings)

    # Attach rate-limiter
    app.state.limiter = Limiter(key_func=get_remote_address, default_limits=[settings.RATE_LIMIT_DEFAULT])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    # Rate limiting
    async def ratelimit_handler(request: Request, exc: RateLimitExceeded):
        return PlainTextResponse("Too many requests", status_code=429)

    app.add_exception_handler(RateLimitExceeded, ratelimit_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Exception handling
    app.add_exception_handler(BaseError, base_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.middleware("http")(exception_handler)

    app.include_router(api_v1_router, prefix="/api/v1")
    app.include_router(cron_router, prefix="/api/cron")

    @app.get("/healthz")
    async def healthz(sess: SessionDep):
        """Health check endpoint."""
        status = {"db": "ok", "background_tasks": len(tasks)}
        try:
            await sess.scalar(select(1))
        except Exception:
            logger.exception("Health check database query failed")
            status["db"] = "error"
        return status

    return app


app = create_app()
