"""WebSocket endpoints for the live channel.

Visitors connect to ``/ws`` and operators to ``/ws/operator``. Each inbound
frame is validated and dispatched to the ConversationRouter; the router
does all fan-out through the ChannelManager.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, WebSocket, status
from pydantic import ValidationError as PayloadValidationError
from starlette.websockets import WebSocketDisconnect

from chatdesk.api.auth import extract_bearer, verify_operator_token
from chatdesk.errors import AuthorizationError, StoreError, ValidationError
from chatdesk.observability import AuditLogger
from chatdesk.presence import Party
from chatdesk.realtime.channels import WebSocketConnection
from chatdesk.realtime.models import (
    ChatMessageEvent,
    ConnectEvent,
    EventName,
    Frame,
    SessionEvent,
    TypingEvent,
    error_payload,
)
from chatdesk.routing import ConversationRouter

logger = logging.getLogger(__name__)

realtime_router = APIRouter(tags=["Live channel"])


def get_router(websocket: WebSocket) -> ConversationRouter | None:
    """Get the conversation router from app state."""
    return getattr(websocket.app.state, "router", None)


@realtime_router.websocket("/ws")
async def visitor_socket(websocket: WebSocket) -> None:
    """Live channel for site visitors."""
    router = get_router(websocket)
    if router is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket, Party.VISITOR)
    await _serve(websocket, connection, router, _dispatch_visitor)


@realtime_router.websocket("/ws/operator")
async def operator_socket(websocket: WebSocket) -> None:
    """Live channel for operators. Requires a bearer credential.

    The credential is read from the ``token`` query parameter (browsers
    cannot set headers on WebSocket upgrades) or the Authorization header.
    """
    token = websocket.query_params.get("token") or extract_bearer(
        websocket.headers.get("authorization")
    )
    try:
        verify_operator_token(token)
    except AuthorizationError as e:
        logger.warning("Rejected operator socket: %s", e)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    router = get_router(websocket)
    if router is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()
    connection = WebSocketConnection(websocket, Party.OPERATOR)
    router.on_operator_connect(connection)
    await _serve(websocket, connection, router, _dispatch_operator)


async def _serve(
    websocket: WebSocket,
    connection: WebSocketConnection,
    router: ConversationRouter,
    dispatch: Callable[[ConversationRouter, WebSocketConnection, Frame], Awaitable[None]],
) -> None:
    audit = AuditLogger()
    audit.log_connection("opened", connection.role.value, connection.id)
    try:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            try:
                frame = Frame.model_validate(json.loads(raw))
            except (ValueError, PayloadValidationError):
                await _send_error(connection, "Frame must be JSON {event, data}")
                continue

            try:
                await dispatch(router, connection, frame)
            except PayloadValidationError as e:
                await _send_error(connection, _first_error(e), frame.event)
            except ValidationError as e:
                await _send_error(connection, str(e), frame.event)
            except StoreError as e:
                logger.error("Dropped %s: store unavailable: %s", frame.event, e)
    finally:
        router.on_disconnect(connection)
        audit.log_connection("closed", connection.role.value, connection.id)


async def _dispatch_visitor(
    router: ConversationRouter,
    connection: WebSocketConnection,
    frame: Frame,
) -> None:
    event = frame.event
    if event == EventName.USER_CONNECTED.value:
        payload = ConnectEvent.model_validate(frame.data)
        await router.on_visitor_connect(connection, payload.session_id, payload.ip_address)
    elif event == EventName.USER_MESSAGE.value:
        payload = ChatMessageEvent.model_validate(frame.data)
        await _ensure_member(router, connection, payload.session_id)
        await router.on_visitor_message(payload.session_id, payload.message, payload.timestamp)
    elif event == EventName.USER_TYPING.value:
        payload = TypingEvent.model_validate(frame.data)
        await _ensure_member(router, connection, payload.session_id)
        await router.on_typing_signal(payload.session_id, Party.VISITOR, payload.is_typing)
    elif event == EventName.REQUEST_HUMAN.value:
        payload = SessionEvent.model_validate(frame.data)
        await _ensure_member(router, connection, payload.session_id)
        await router.on_handoff_request(payload.session_id)
    else:
        raise ValidationError(f"Unsupported event: {event}")


async def _dispatch_operator(
    router: ConversationRouter,
    connection: WebSocketConnection,
    frame: Frame,
) -> None:
    event = frame.event
    if event == EventName.ADMIN_JOIN.value:
        payload = SessionEvent.model_validate(frame.data)
        await router.on_operator_view(connection, payload.session_id)
    elif event == EventName.ADMIN_LEAVE.value:
        payload = SessionEvent.model_validate(frame.data)
        router.on_operator_leave(connection, payload.session_id)
    elif event == EventName.ADMIN_REPLY.value:
        payload = ChatMessageEvent.model_validate(frame.data)
        await router.on_operator_reply(payload.session_id, payload.message, payload.timestamp)
    elif event == EventName.ADMIN_TYPING.value:
        payload = TypingEvent.model_validate(frame.data)
        await router.on_typing_signal(payload.session_id, Party.OPERATOR, payload.is_typing)
    else:
        raise ValidationError(f"Unsupported event: {event}")


async def _ensure_member(
    router: ConversationRouter,
    connection: WebSocketConnection,
    session_id: str,
) -> None:
    """Visitors that skip ``user-connected`` are subscribed on first use."""
    if session_id not in router.channels.sessions_of(connection):
        await router.on_visitor_connect(connection, session_id)


async def _send_error(
    connection: WebSocketConnection,
    detail: str,
    event: str | None = None,
) -> None:
    try:
        await connection.send(EventName.ERROR.value, error_payload(detail, event))
    except Exception as e:
        logger.debug("Could not deliver error frame to %s: %s", connection.id, e)


def _first_error(error: PayloadValidationError) -> str:
    errors: list[dict[str, Any]] = error.errors()
    if not errors:
        return "Invalid payload"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid')}" if location else first.get("msg", "invalid")
