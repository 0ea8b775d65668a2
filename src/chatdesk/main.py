"""FastAPI application entry point for the chatdesk service."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatdesk import __version__
from chatdesk.config import (
    AssistantConfig,
    AssistantConfigStore,
    ConfigLoadError,
    get_settings,
    load_assistant_config,
)
from chatdesk.observability import configure_audit_logging
from chatdesk.presence import PresenceTracker
from chatdesk.realtime import ChannelManager
from chatdesk.responder import build_responder
from chatdesk.routing import ConversationRouter, compile_handoff_pattern
from chatdesk.session import SessionStore

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.value),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _load_initial_assistant_config(config_path: str | None) -> AssistantConfig:
    if not config_path:
        return AssistantConfig()
    try:
        config = load_assistant_config(config_path)
        logger.info("Loaded assistant defaults from %s", config_path)
        return config
    except ConfigLoadError as e:
        logger.error("Failed to load assistant defaults, using built-in defaults: %s", e)
        return AssistantConfig()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    settings = get_settings()
    logger.info("Starting chatdesk v%s", __version__)

    configure_audit_logging(settings.audit_log_level)

    if not settings.operator_tokens:
        logger.warning(
            "No operator tokens configured; operator endpoints will reject every request"
        )

    initial_config = _load_initial_assistant_config(settings.assistant_config_path)
    app.state.assistant_config = AssistantConfigStore(initial_config)
    logger.info(
        "Assistant %s (provider=%s, model=%s)",
        "enabled" if initial_config.is_enabled else "disabled",
        initial_config.provider,
        initial_config.model,
    )

    responder = build_responder(settings)
    handoff_pattern = (
        compile_handoff_pattern(settings.handoff_phrases)
        if settings.handoff_phrase_detection
        else None
    )
    app.state.router = ConversationRouter(
        store=SessionStore(),
        config_store=app.state.assistant_config,
        channels=ChannelManager(),
        presence=PresenceTracker(typing_timeout=settings.typing_timeout_seconds),
        responder=responder,
        history_window=settings.history_window,
        handoff_pattern=handoff_pattern,
        audit_enabled=settings.audit_enabled,
    )
    logger.info("Conversation router initialized")

    yield

    # Cleanup
    await app.state.router.aclose()
    await responder.close()
    app.state.router = None
    logger.info("Shutting down chatdesk")


app = FastAPI(
    title="Chatdesk",
    description=(
        "Support chat service that routes visitor messages to an automated "
        "assistant or a human operator, with live handoff between the two"
    ),
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers import app state accessors only (import here to keep startup order explicit)
from chatdesk.api.endpoint import api_router  # noqa: E402
from chatdesk.realtime.endpoint import realtime_router  # noqa: E402

app.include_router(api_router)
app.include_router(realtime_router)


@app.get("/", response_class=JSONResponse)
async def root() -> dict:
    """API metadata endpoint."""
    return {
        "name": "chatdesk",
        "version": __version__,
        "description": "Support chat with assistant and human operator handoff",
    }


@app.get("/health/live", response_class=JSONResponse)
async def liveness() -> dict:
    """Kubernetes liveness probe endpoint."""
    return {"status": "ok"}


@app.get("/health/ready", response_class=JSONResponse)
async def readiness() -> JSONResponse:
    """Kubernetes readiness probe endpoint."""
    if getattr(app.state, "router", None) is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not ready", "reason": "router not initialized"},
        )
    return JSONResponse(content={"status": "ok"})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
