"""Best-effort change propagation between storage instances ("tabs").

Messages are pushed, unordered, with no delivery guarantee. Receivers apply a
peer's mutation locally without re-broadcasting it, which is what keeps two
instances on the same channel from echoing each other forever.
"""

import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

import msgspec

from tierstore.models import now_ms

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    WRITE = "write"
    DELETE = "delete"
    CLEAR = "clear"
    IMPORT = "import"


class SyncMessage(msgspec.Struct, frozen=True, kw_only=True):
    """One outbound mutation notice.

    ``payload`` holds normalized (JSON-native) data so any transport can carry
    it unchanged.
    """

    type: MessageType
    origin_id: str
    timestamp: int
    payload: dict[str, Any] = msgspec.field(default_factory=dict)


MessageHandler = Callable[[SyncMessage], Awaitable[None] | None]


class Transport(Protocol):
    """What a storage instance needs from a sync channel."""

    async def post(self, message: SyncMessage) -> None: ...

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]: ...


def new_origin_id() -> str:
    return uuid.uuid4().hex[:12]


def make_message(
    type: MessageType, origin_id: str, timestamp: int | None = None, **payload: Any
) -> SyncMessage:
    return SyncMessage(
        type=type,
        origin_id=origin_id,
        timestamp=now_ms() if timestamp is None else timestamp,
        payload=payload,
    )


class LocalChannel:
    """In-process broadcast channel shared by several storage instances.

    Every message is delivered to every subscriber, the sender included;
    receivers drop their own messages by ``origin_id``.
    """

    def __init__(self, name: str = "tierstore"):
        self.name = name
        self._handlers: list[MessageHandler] = []
        self.sent: list[SyncMessage] = []

    async def post(self, message: SyncMessage) -> None:
        """Deliver a message to each subscriber in turn."""
        self.sent.append(message)
        for handler in list(self._handlers):
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Sync handler failed on %s message", message.type.value)

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        """Register a handler, returning a function that removes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._handlers)
