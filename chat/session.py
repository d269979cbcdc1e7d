from __future__ import annotations
from typing import Callable, List, Optional, Tuple

from common.errors import DecodeError, InvalidEndpointError, TransportError
from common.log import get_logger, log_chat_message
from common.message import DEFAULT_USERNAME, Message
from common.utils import is_uuid_v4

from .connection import ConnectionManager
from .state import ChatSnapshot, ConnectionState

logger = get_logger(__name__)

SnapshotListener = Callable[[ChatSnapshot], None]


def is_own_message(message: Message, local_username: str) -> bool:
    """
    A message is "own" iff its user equals the local username.

    Plain string equality: two people who pick the same name cannot be told apart.
    """
    return message.user == local_username


class MessageSession:
    """
    Single-room chat session on top of a ConnectionManager.

    Holds the ordered message log, appends outgoing messages optimistically and
    rolls them back by id when the transport rejects them. Inbound frames are
    decoded and appended in arrival order; undecodable frames are dropped.
    """

    def __init__(self, connection: ConnectionManager, username: str = DEFAULT_USERNAME) -> None:
        self.connection = connection
        self.username = username if username.strip() else DEFAULT_USERNAME
        self.draft = ""
        self._log: List[Message] = []
        self._subscribers: List[SnapshotListener] = []

        connection.on_frame(self.on_inbound_frame)
        connection.add_listener(self._notify)

    # ---- read-only views ----

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._log)

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def last_error(self) -> Optional[str]:
        return self.connection.last_error

    def snapshot(self) -> ChatSnapshot:
        return ChatSnapshot(
            state=self.connection.state,
            last_error=self.connection.last_error,
            username=self.username,
            draft=self.draft,
            messages=tuple(self._log),
        )

    def status(self) -> dict:
        return {
            **self.connection.status(),
            "username": self.username,
            "messages": len(self._log),
            "own_messages": sum(1 for m in self._log if self.is_own(m)),
        }

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot after every change. Returns an unsubscribe function."""
        self._subscribers.append(listener)

        def _unsubscribe() -> None:
            if listener in self._subscribers:
                self._subscribers.remove(listener)

        return _unsubscribe

    def is_own(self, message: Message, username: Optional[str] = None) -> bool:
        return is_own_message(message, self.username if username is None else username)

    # ---- intents ----

    async def start(self, url: Optional[str] = None) -> None:
        await self.connection.connect(url)

    async def retry_connect(self) -> None:
        """Clear the last error and reconnect to the configured endpoint."""
        self.connection.record_error(None)
        try:
            await self.connection.connect()
        except InvalidEndpointError as e:
            logger.warning("Retry failed: %s", e)

    def set_username(self, name: str) -> None:
        self.username = name.strip() or DEFAULT_USERNAME
        self._notify()

    def set_draft(self, text: str) -> None:
        self.draft = text
        self._notify()

    async def close(self) -> None:
        await self.connection.disconnect()

    async def submit(self, text: Optional[str] = None, username: Optional[str] = None) -> Optional[Message]:
        """
        Send ``text`` (or the current draft) as a new message.

        Does nothing when the trimmed text is empty or the connection is not up.
        The message is appended before the send completes; if the send fails it
        is removed again and ``last_error`` describes the failure. ``draft`` is
        only touched when it was the source: cleared on submit, restored on failure.
        """
        original = self.draft if text is None else text
        body = original.strip()
        if not body:
            logger.debug("Ignoring empty submit")
            return None
        if self.connection.state is not ConnectionState.CONNECTED:
            logger.debug("Ignoring submit while %s", self.connection.state.value)
            return None

        from_draft = text is None
        message = Message.create(user=username or self.username, text=body)
        if from_draft:
            self.draft = ""
        self._append(message)

        try:
            await self.connection.send(message.to_json())
        except TransportError as e:
            if from_draft:
                self.draft = original
            self._remove(message.id)
            log_chat_message(logger, "warning", f"Send failed, rolled back: {e}", message=message)
            self.connection.record_error(f"Send failed: {e}")
            return None

        log_chat_message(logger, "debug", "Sent", message=message)
        return message

    def on_inbound_frame(self, raw: str) -> None:
        try:
            message = Message.from_json(raw)
        except DecodeError as e:
            logger.debug("Dropping undecodable frame: %s", e)
            return
        if not is_uuid_v4(message.id):
            log_chat_message(logger, "debug", "Peer sent a non-UUID message id", message=message)
        self._append(message)
        log_chat_message(logger, "debug", "Received", message=message)

    # ---- log mutation ----

    def _append(self, message: Message) -> None:
        self._log.append(message)
        self._notify()

    def _remove(self, message_id: str) -> None:
        self._log = [m for m in self._log if m.id != message_id]
        self._notify()

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for listener in list(self._subscribers):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session subscriber %r failed", listener)
