"""REST endpoints for sessions, message history and assistant settings."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from chatdesk.api.auth import require_operator
from chatdesk.api.schemas import (
    AssistantConfigUpdate,
    CreateSessionRequest,
    MarkReadResponse,
    MessageView,
    SessionView,
    ToggleRequest,
)
from chatdesk.config import AssistantConfig, AssistantConfigStore
from chatdesk.errors import SessionExistsError, SessionNotFoundError, StoreError
from chatdesk.observability import AuditLogger
from chatdesk.realtime.models import EventName
from chatdesk.routing import ConversationRouter

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api", tags=["Chat API"])

OperatorToken = Annotated[str, Depends(require_operator)]


def get_router(request: Request) -> ConversationRouter:
    """Get the conversation router from app state.

    Raises:
        HTTPException: If the router is not initialized.
    """
    router = getattr(request.app.state, "router", None)
    if router is None:
        raise HTTPException(status_code=503, detail="Chat router not initialized")
    return router


def get_config_store(request: Request) -> AssistantConfigStore:
    """Get the assistant config store from app state.

    Raises:
        HTTPException: If the store is not initialized.
    """
    store = getattr(request.app.state, "assistant_config", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Assistant configuration not loaded")
    return store


RouterDep = Annotated[ConversationRouter, Depends(get_router)]
ConfigStoreDep = Annotated[AssistantConfigStore, Depends(get_config_store)]


@api_router.post(
    "/chats",
    status_code=201,
    response_model=SessionView,
    response_model_by_alias=True,
)
async def create_chat(
    request: Request,
    payload: CreateSessionRequest,
    router: RouterDep,
) -> SessionView:
    """Create a visitor session. Must precede the first message."""
    ip_address = payload.ip_address or (request.client.host if request.client else None)
    try:
        session = await router.create_session(payload.session_id, ip_address)
    except SessionExistsError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except StoreError as e:
        logger.error("Failed to create session: %s", e)
        raise HTTPException(status_code=503, detail="Session store unavailable") from e
    return SessionView.from_session(session)


@api_router.get("/chats", response_model=list[SessionView], response_model_by_alias=True)
async def list_chats(router: RouterDep, _: OperatorToken) -> list[SessionView]:
    """List sessions, most recently active first."""
    try:
        sessions = router.store.list_sessions()
    except StoreError as e:
        logger.error("Failed to list sessions: %s", e)
        raise HTTPException(status_code=503, detail="Session store unavailable") from e
    return [SessionView.from_session(s) for s in sessions]


@api_router.get("/chats/{session_id}", response_model=SessionView, response_model_by_alias=True)
async def read_chat(session_id: str, router: RouterDep, _: OperatorToken) -> SessionView:
    """Get one session with its history."""
    try:
        session = router.store.get_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="Session not found") from e
    except StoreError as e:
        logger.error("Failed to read session %s: %s", session_id, e)
        raise HTTPException(status_code=503, detail="Session store unavailable") from e
    return SessionView.from_session(session)


@api_router.get(
    "/messages/{session_id}",
    response_model=list[MessageView],
    response_model_by_alias=True,
)
async def list_messages(session_id: str, router: RouterDep) -> list[MessageView]:
    """Get a session's history.

    Visitors use this to catch up after reconnecting; the session id is the
    visitor's only credential.
    """
    try:
        messages = router.store.list_messages(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="Session not found") from e
    except StoreError as e:
        logger.error("Failed to list messages for %s: %s", session_id, e)
        raise HTTPException(status_code=503, detail="Session store unavailable") from e
    return [MessageView.from_message(m) for m in messages]


@api_router.post(
    "/messages/{session_id}/read",
    response_model=MarkReadResponse,
    response_model_by_alias=True,
)
async def mark_messages_read(
    session_id: str,
    router: RouterDep,
    _: OperatorToken,
) -> MarkReadResponse:
    """Mark a session's visitor messages as read."""
    try:
        marked = router.store.mark_read(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="Session not found") from e
    except StoreError as e:
        logger.error("Failed to mark messages read for %s: %s", session_id, e)
        raise HTTPException(status_code=503, detail="Session store unavailable") from e

    if marked:
        await router.channels.broadcast_global(EventName.CHAT_LIST_UPDATE.value, {})
    return MarkReadResponse(session_id=session_id, marked=marked)


@api_router.get("/ai/config", response_model=AssistantConfig, response_model_by_alias=True)
async def read_assistant_config(config_store: ConfigStoreDep, _: OperatorToken) -> AssistantConfig:
    """Get the current assistant configuration."""
    return config_store.get()


@api_router.put("/ai/config", response_model=AssistantConfig, response_model_by_alias=True)
async def update_assistant_config(
    payload: AssistantConfigUpdate,
    config_store: ConfigStoreDep,
    _: OperatorToken,
) -> AssistantConfig:
    """Update provider, model, prompt, temperature or output length."""
    changes = payload.model_dump(exclude_none=True)
    config = config_store.update(**changes)
    AuditLogger().log_config_updated(sorted(changes), config.is_enabled)
    return config


@api_router.post("/ai/toggle", response_model=AssistantConfig, response_model_by_alias=True)
async def toggle_assistant(
    config_store: ConfigStoreDep,
    _: OperatorToken,
    payload: ToggleRequest | None = None,
) -> AssistantConfig:
    """Enable or disable the assistant. An empty body flips the flag."""
    is_enabled = payload.is_enabled if payload is not None else None
    config = config_store.toggle(is_enabled)
    AuditLogger().log_config_updated(["is_enabled"], config.is_enabled)
    return config
