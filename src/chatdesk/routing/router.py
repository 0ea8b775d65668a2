"""Conversation router: assistant-versus-human routing and event fan-out.

Every inbound event for a session runs inside that session's lane, so state
changes and the broadcasts they cause are observed in processing order.
Assistant generation runs outside the lane; only persisting its result
re-enters the lane, which keeps the session open to operator replies and
typing signals while the responder is working.
"""

import asyncio
import logging
import re
import time
from collections.abc import Sequence
from datetime import UTC, datetime

from chatdesk.config import AssistantConfig, AssistantConfigStore
from chatdesk.errors import ChatDeskError, EmptyMessageError, SessionNotFoundError
from chatdesk.observability import AuditLogger
from chatdesk.presence import Party, PresenceTracker
from chatdesk.realtime.channels import ChannelManager, Connection
from chatdesk.realtime.models import (
    EventName,
    handoff_payload,
    message_payload,
    thinking_payload,
    typing_payload,
)
from chatdesk.responder import Responder, ResponderError
from chatdesk.routing.handoff import detect_handoff_request
from chatdesk.routing.lanes import SessionLanes
from chatdesk.session import HandoffReason, Message, SenderKind, Session, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 20


class ConversationRouter:
    """Routes visitor, operator and presence events for every session.

    For each visitor message the router persists it, clears visitor typing,
    fans it out, then decides who answers:

    1. Session already handed off -> nothing more, a human will answer
    2. Visitor asked for a human -> hand off and alert operators
    3. Assistant enabled -> request a reply from the responder
    4. Otherwise -> hand off and alert operators

    Responder failures are logged and swallowed: no placeholder is stored
    and the session stays open for a human.
    """

    def __init__(
        self,
        store: SessionStore,
        config_store: AssistantConfigStore,
        channels: ChannelManager,
        presence: PresenceTracker,
        responder: Responder,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        handoff_pattern: re.Pattern[str] | None = None,
        audit_enabled: bool = True,
    ) -> None:
        """Initialize the router.

        Args:
            store: Session and message persistence.
            config_store: Holder of the current AssistantConfig.
            channels: Live-channel subscription registry.
            presence: Typing and thinking tracker.
            responder: Automated reply generator.
            history_window: Most recent messages sent to the responder.
            handoff_pattern: Compiled handoff phrases, or None to disable
                free-text detection.
            audit_enabled: Whether to emit audit events.
        """
        self._store = store
        self._config_store = config_store
        self._channels = channels
        self._presence = presence
        self._responder = responder
        self._history_window = history_window
        self._handoff_pattern = handoff_pattern
        self._audit_enabled = audit_enabled
        self._lanes = SessionLanes()
        self._generations: set[asyncio.Task] = set()
        self._background: set[asyncio.Task] = set()

        self._presence.set_on_expire(self._on_typing_expired)

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def channels(self) -> ChannelManager:
        return self._channels

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    @property
    def pending_generations(self) -> int:
        """Number of assistant replies still being generated."""
        return len(self._generations)

    # ------------------------------------------------------------------
    # Sessions and subscriptions
    # ------------------------------------------------------------------

    async def create_session(self, session_id: str, ip_address: str | None = None) -> Session:
        """Create a session and tell operators the list changed.

        Raises:
            SessionExistsError: If the identifier is already in use.
        """
        session = self._store.create_session(session_id, ip_address)
        self._audit(session_id).log_session_created(ip_address)
        logger.info("Session created (session_id=%s)", session_id)
        await self._channels.broadcast_global(EventName.CHAT_LIST_UPDATE.value, {})
        return session

    async def on_visitor_connect(
        self,
        connection: Connection,
        session_id: str,
        ip_address: str | None = None,
    ) -> bool:
        """Subscribe a visitor connection to its session. Idempotent.

        A reported IP address is kept only if the session has none yet.

        Returns:
            True if a new subscription was made.

        Raises:
            SessionNotFoundError: If the session was never created.
        """
        self._require_session(session_id)
        if ip_address and self._store.record_ip_address(session_id, ip_address):
            logger.debug("Recorded visitor address (session_id=%s)", session_id)
        joined = self._channels.join(connection, session_id)
        if joined:
            logger.info(
                "Visitor connected (session_id=%s, connection=%s)", session_id, connection.id
            )
        return joined

    def on_operator_connect(self, connection: Connection) -> None:
        """Add an operator connection to the global operator group."""
        self._channels.add_operator(connection)
        logger.info("Operator connected (connection=%s)", connection.id)

    async def on_operator_view(self, connection: Connection, session_id: str) -> bool:
        """Subscribe an operator to a session they are viewing.

        The operator is brought up to date with presence that is already
        active, since only changes are broadcast.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        self._require_session(session_id)
        async with self._lanes.hold(session_id):
            joined = self._channels.join(connection, session_id)
            if not joined:
                return False
            state = self._presence.snapshot(session_id)
            if state.visitor_typing:
                await connection.send(
                    EventName.USER_TYPING.value, typing_payload(session_id, True)
                )
            if state.assistant_thinking:
                await connection.send(
                    EventName.AI_THINKING.value, thinking_payload(session_id, True)
                )
        return True

    def on_operator_leave(self, connection: Connection, session_id: str) -> bool:
        """Stop delivering a session's events to an operator."""
        return self._channels.leave(connection, session_id)

    def on_disconnect(self, connection: Connection) -> None:
        """Drop a connection from every group.

        In-flight persistence and generation are left untouched.
        """
        left = self._channels.disconnect(connection)
        logger.info(
            "Connection closed (connection=%s, role=%s, groups=%d)",
            connection.id,
            connection.role.value,
            left,
        )

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def on_visitor_message(
        self,
        session_id: str,
        body: str,
        timestamp: datetime | None = None,
    ) -> Message:
        """Handle a visitor message.

        Raises:
            EmptyMessageError: If the body is blank.
            SessionNotFoundError: If the session does not exist.
            StoreError: If persistence fails.
        """
        text = _clean_body(body)
        audit = self._audit(session_id)

        async with self._lanes.hold(session_id):
            message = self._store.append_message(
                session_id, text, SenderKind.VISITOR, _arrival_time(timestamp)
            )
            audit.log_message_persisted(message.id, message.sender.value, len(text))
            if self._presence.set_typing(session_id, Party.VISITOR, False):
                await self._broadcast_typing(session_id, Party.VISITOR, False)

            await self._channels.broadcast(
                session_id, EventName.USER_MESSAGE.value, message_payload(message)
            )
            await self._channels.broadcast_global(EventName.CHAT_LIST_UPDATE.value, {})

            await self._route_visitor_message(session_id, text, audit)

        return message

    async def on_operator_reply(
        self,
        session_id: str,
        body: str,
        timestamp: datetime | None = None,
    ) -> Message:
        """Handle an operator reply. The session becomes handed off.

        Raises:
            EmptyMessageError: If the body is blank.
            SessionNotFoundError: If the session does not exist.
            StoreError: If persistence fails.
        """
        text = _clean_body(body)
        audit = self._audit(session_id)

        async with self._lanes.hold(session_id):
            message = self._store.append_message(
                session_id, text, SenderKind.OPERATOR, _arrival_time(timestamp)
            )
            audit.log_message_persisted(message.id, message.sender.value, len(text))
            if self._presence.set_typing(session_id, Party.OPERATOR, False):
                await self._broadcast_typing(session_id, Party.OPERATOR, False)

            await self._channels.broadcast(
                session_id, EventName.ADMIN_REPLY.value, message_payload(message)
            )
            await self._channels.broadcast_global(EventName.CHAT_LIST_UPDATE.value, {})

        return message

    async def on_typing_signal(self, session_id: str, who: Party, is_typing: bool) -> None:
        """Update a typing flag and notify the other party if it changed.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        self._require_session(session_id)
        async with self._lanes.hold(session_id):
            if self._presence.set_typing(session_id, who, is_typing):
                await self._broadcast_typing(session_id, who, is_typing)

    async def on_handoff_request(self, session_id: str) -> None:
        """Handle an explicit visitor request for a human.

        Operators are alerted every time, even if the session was already
        handed off.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        audit = self._audit(session_id)
        async with self._lanes.hold(session_id):
            audit.log_routing_decision("handoff", reason=HandoffReason.VISITOR_REQUEST.value)
            await self._hand_off(
                session_id, HandoffReason.VISITOR_REQUEST, audit, always_alert=True
            )

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def _route_visitor_message(self, session_id: str, text: str, audit: AuditLogger) -> None:
        # A typed request alerts operators just like request-human, handed off or not.
        phrase = detect_handoff_request(text, self._handoff_pattern)
        if phrase is not None:
            logger.info("Visitor asked for a human (session_id=%s, phrase=%r)", session_id, phrase)
            audit.log_routing_decision("handoff", reason=HandoffReason.VISITOR_REQUEST.value)
            await self._hand_off(
                session_id, HandoffReason.VISITOR_REQUEST, audit, always_alert=True
            )
            return

        if self._store.is_handed_off(session_id):
            audit.log_routing_decision("human", reason="handed-off")
            return

        config = self._config_store.get()
        if config.is_enabled:
            audit.log_routing_decision("assistant")
            await self._start_assistant(session_id, config, audit)
            return

        audit.log_routing_decision("handoff", reason=HandoffReason.ASSISTANT_DISABLED.value)
        await self._hand_off(session_id, HandoffReason.ASSISTANT_DISABLED, audit)

    async def _hand_off(
        self,
        session_id: str,
        reason: HandoffReason,
        audit: AuditLogger,
        always_alert: bool = False,
    ) -> None:
        changed = self._store.mark_handed_off(session_id, reason)
        if changed:
            audit.log_handoff(reason.value)
            logger.info("Session handed off (session_id=%s, reason=%s)", session_id, reason.value)
        if changed or always_alert:
            await self._channels.broadcast_global(
                EventName.HANDOFF_REQUESTED.value,
                handoff_payload(session_id, reason.value),
            )

    # ------------------------------------------------------------------
    # Assistant invocation
    # ------------------------------------------------------------------

    async def _start_assistant(
        self,
        session_id: str,
        config: AssistantConfig,
        audit: AuditLogger,
    ) -> None:
        history = self._store.list_messages(session_id, limit=self._history_window)
        if self._presence.set_thinking(session_id, True):
            await self._channels.broadcast(
                session_id, EventName.AI_THINKING.value, thinking_payload(session_id, True)
            )
        audit.log_assistant_requested(config.provider, config.model, len(history))

        task = asyncio.create_task(
            self._generate(session_id, history, config),
            name=f"assistant-reply-{session_id}",
        )
        self._generations.add(task)
        task.add_done_callback(self._generations.discard)

    async def _generate(
        self,
        session_id: str,
        history: Sequence[Message],
        config: AssistantConfig,
    ) -> None:
        audit = self._audit(session_id)
        started = time.monotonic()
        reply: str | None = None
        try:
            reply = await self._responder.generate(history, config)
        except ResponderError as e:
            logger.warning("Assistant reply skipped (session_id=%s): %s", session_id, e)
            audit.log_assistant_failed(type(e).__name__, str(e))
        except Exception as e:
            logger.exception("Unexpected responder failure (session_id=%s)", session_id)
            audit.log_assistant_failed(type(e).__name__, str(e))
        finally:
            await self._finish_assistant(session_id, reply, audit, started)

    async def _finish_assistant(
        self,
        session_id: str,
        reply: str | None,
        audit: AuditLogger,
        started: float,
    ) -> None:
        async with self._lanes.hold(session_id):
            message: Message | None = None
            try:
                if reply is not None:
                    message = self._store.append_message(session_id, reply, SenderKind.ASSISTANT)
            except ChatDeskError as e:
                logger.error("Failed to persist assistant reply (session_id=%s): %s", session_id, e)
            finally:
                if self._presence.set_thinking(session_id, False):
                    await self._channels.broadcast(
                        session_id, EventName.AI_THINKING.value, thinking_payload(session_id, False)
                    )

            if message is None:
                return

            audit.log_message_persisted(message.id, message.sender.value, len(message.body))
            audit.log_assistant_reply(message.id, (time.monotonic() - started) * 1000)
            await self._channels.broadcast(
                session_id, EventName.AI_REPLY.value, message_payload(message)
            )
            await self._channels.broadcast_global(EventName.CHAT_LIST_UPDATE.value, {})

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    async def _broadcast_typing(self, session_id: str, who: Party, is_typing: bool) -> None:
        if who is Party.VISITOR:
            event, audience = EventName.USER_TYPING, Party.OPERATOR
        else:
            event, audience = EventName.ADMIN_TYPING, Party.VISITOR
        await self._channels.broadcast(
            session_id, event.value, typing_payload(session_id, is_typing), role=audience
        )

    def _on_typing_expired(self, session_id: str, party: Party) -> None:
        task = asyncio.create_task(self._announce_typing_expired(session_id, party))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _announce_typing_expired(self, session_id: str, party: Party) -> None:
        async with self._lanes.hold(session_id):
            # A fresh signal may have arrived while waiting for the lane
            if not self._presence.is_typing(session_id, party):
                await self._broadcast_typing(session_id, party, False)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until no generation or presence broadcast is outstanding."""
        while self._generations or self._background:
            await asyncio.gather(*self._generations, *self._background, return_exceptions=True)

    async def aclose(self, timeout: float = 10.0) -> None:
        """Let in-flight generations finish, then stop presence timers."""
        pending = list(self._generations)
        if pending:
            logger.info("Waiting for %d in-flight assistant replies", len(pending))
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
        self._presence.close()
        for task in list(self._background):
            task.cancel()

    def _require_session(self, session_id: str) -> None:
        if not self._store.exists(session_id):
            raise SessionNotFoundError(session_id)

    def _audit(self, session_id: str) -> AuditLogger:
        return AuditLogger(session_id=session_id, enabled=self._audit_enabled)


def _clean_body(body: str | None) -> str:
    text = body.strip() if body else ""
    if not text:
        raise EmptyMessageError()
    return text


def _arrival_time(timestamp: datetime | None) -> datetime:
    """Use the client's timestamp when it is not in the future."""
    now = datetime.now(UTC)
    if timestamp is None:
        return now
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return min(timestamp, now)
