"""
Main FastAPI application entry point.
"""
import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from livequiz.api import admin, leaderboard, quiz, realtime, session
from livequiz.core.clock import Clock, utcnow
from livequiz.core.config import Settings, get_settings
from livequiz.core.database import build_engine, build_session_factory, init_db
from livequiz.core.errors import QuizError
from livequiz.core.logging_config import configure_logging
from livequiz.realtime.hub import ConnectionHub
from livequiz.realtime.notifier import Notifier
from livequiz.services.quiz_engine import QuizEngine
from livequiz.services.seeder import seed_quizzes

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    db_engine: Optional[Engine] = None,
    clock: Clock = utcnow,
    rng: Optional[random.Random] = None,
    seed: Optional[bool] = None,
) -> FastAPI:
    """Build the application; tests pass their own engine, clock and random source."""
    settings = settings or get_settings()
    db_engine = db_engine or build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    session_factory = build_session_factory(db_engine)
    should_seed = settings.SEED_ON_STARTUP if seed is None else seed

    hub = ConnectionHub()
    notifier = Notifier(
        hub,
        session_factory,
        leaderboard_size=settings.LEADERBOARD_SIZE,
        maxsize=settings.NOTIFIER_QUEUE_SIZE,
        clock=clock,
    )
    quiz_engine = QuizEngine(publisher=notifier.publish, clock=clock, rng=rng)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        configure_logging(settings)
        logger.info("Starting %s %s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)

        init_db(db_engine)
        if should_seed:
            with session_factory() as db:
                seed_quizzes(db)

        await notifier.start()

        yield

        # Shutdown
        logger.info("Shutting down %s...", settings.APP_NAME)
        await notifier.stop()
        await hub.close_all()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        docs_url=None if settings.is_production() else "/docs",
        redoc_url=None if settings.is_production() else "/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db_engine = db_engine
    app.state.session_factory = session_factory
    app.state.clock = clock
    app.state.hub = hub
    app.state.notifier = notifier
    app.state.quiz_engine = quiz_engine

    # credentials are required for the session cookie, so origins must be explicit
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(QuizError)
    async def quiz_error_handler(request: Request, exc: QuizError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "message": exc.detail,
                    "type": "http_error",
                    "status_code": exc.status_code,
                }
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        error = {"message": "An internal error occurred", "type": "internal_error"}
        if not settings.is_production():
            error = {"message": str(exc), "type": "internal_error", "debug": True}
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": error})

    prefix = settings.API_PREFIX
    app.include_router(session.router, prefix=f"{prefix}/session", tags=["session"])
    app.include_router(quiz.router, prefix=f"{prefix}/quiz", tags=["quiz"])
    app.include_router(leaderboard.router, prefix=f"{prefix}/leaderboard", tags=["leaderboard"])
    app.include_router(admin.router, prefix=f"{prefix}/admin", tags=["admin"])
    app.include_router(realtime.router, tags=["realtime"])

    # Health check endpoints
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": None if settings.is_production() else "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "livequiz.main:app",
        host=_settings.HOST,
        port=_settings.PORT,
        reload=_settings.RELOAD,
        log_level=_settings.LOG_LEVEL.lower(),
    )
