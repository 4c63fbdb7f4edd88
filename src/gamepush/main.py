"""FastAPI application factory.

Learn: create_app() returns a configured FastAPI instance. The lifespan
owns the AppContext: anything before `yield` runs at startup (credential
checks, Firebase connection, watcher attachment), after `yield` at
shutdown (close feeds, wait for in-flight dispatches).

A ConfigurationError during startup is logged and re-raised, so uvicorn
exits instead of serving without watchers.
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from gamepush import __version__
from gamepush.api import api_router
from gamepush.config import ConfigurationError, Settings, settings
from gamepush.context import AppContext, build_context
from gamepush.dispatcher import SubscriberReadError
from gamepush.logging_config import configure_logging
from gamepush.middleware.request_id import RequestIdMiddleware

logger = structlog.get_logger()

ContextFactory = Callable[[Settings], AppContext]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    configure_logging(debug=settings.debug, json_logs=settings.log_json)
    logger.info(
        "gamepush.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    try:
        context = app.state.context_factory(settings)
    except ConfigurationError as e:
        logger.error("gamepush.configuration_error", error=str(e))
        raise

    await context.start()
    app.state.context = context

    yield

    logger.info("gamepush.shutdown")
    app.state.context = None
    await context.stop()


async def subscriber_read_error_handler(request: Request, exc: SubscriberReadError):
    logger.error("http.subscriber_read_failed", path=request.url.path, error=str(exc))
    return PlainTextResponse("Could not read subscribers.", status_code=503)


def create_app(context_factory: Optional[ContextFactory] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="gamepush",
        description="Web Push notifications for daily game numbers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context_factory = context_factory or build_context
    app.state.context = None

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SubscriberReadError, subscriber_read_error_handler)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: gamepush.main:app)
app = create_app()
