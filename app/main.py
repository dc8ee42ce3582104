from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.messages import router as messages_router
from app.config import settings
from app.core.bulk import BulkIngestionPipeline
from app.core.dispatcher import MessageDispatcher
from app.core.errors import DispatchError, ParseError
from app.discord.client import DiscordTransport
from app.discord.gate import ReadinessGate
from app.middleware.error_handler import (
    dispatch_error_handler,
    global_exception_handler,
    http_exception_handler,
    parse_error_handler,
    validation_exception_handler,
)
from app.middleware.logging import LoggingMiddleware


logger = structlog.get_logger()


def configure_logging():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.dev.ConsoleRenderer()
                if settings.APP_ENV == "development"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("app.startup", env=settings.APP_ENV, discord_enabled=settings.DISCORD_ENABLED)

    gate = ReadinessGate()
    transport = DiscordTransport(
        settings.DISCORD_BOT_TOKEN,
        gate,
        members_intent=settings.DISCORD_MEMBERS_INTENT,
    )
    dispatcher = MessageDispatcher(transport, gate, ready_timeout=settings.DISCORD_READY_TIMEOUT)

    app.state.gate = gate
    app.state.dispatcher = dispatcher
    app.state.bulk_pipeline = BulkIngestionPipeline(
        dispatcher, concurrency=settings.BULK_CONCURRENCY
    )

    if settings.DISCORD_ENABLED:
        await transport.start()
    else:
        gate.mark_faulted("Discord transport is disabled (DISCORD_ENABLED=false)")

    yield

    # Shutdown
    if settings.DISCORD_ENABLED:
        await transport.shutdown()
    logger.info("app.shutdown")


app = FastAPI(title="Discord Dispatch", lifespan=lifespan)

# Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(LoggingMiddleware)

# Exception handlers
app.add_exception_handler(DispatchError, dispatch_error_handler)
app.add_exception_handler(ParseError, parse_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Routes
app.include_router(messages_router)
