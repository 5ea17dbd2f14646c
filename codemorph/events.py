"""Append-only activity log shared by the migration stages."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, Iterator, List, Optional, Sequence

from .logging import get_logger
from .models import AgentMessage, AgentRole, MessageType

MessageListener = Callable[[AgentMessage], None]

_LEVEL_BY_TYPE = {
    MessageType.INFO: logging.INFO,
    MessageType.SUCCESS: logging.INFO,
    MessageType.WARNING: logging.WARNING,
    MessageType.ERROR: logging.ERROR,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class EventLog:
    """Ordered record of agent activity.

    Entries are never mutated or removed. Timestamps are clamped so they never
    go backwards, even if the wall clock does. Every entry is mirrored to the
    ``codemorph.events`` logger.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or _now_ms
        self._messages: List[AgentMessage] = []
        self._listeners: List[MessageListener] = []
        self._lock = threading.Lock()
        self._last_timestamp = 0
        self.logger = get_logger("events")

    def append(
        self,
        role: AgentRole,
        text: str,
        type: MessageType = MessageType.INFO,
    ) -> AgentMessage:
        """Record a message and notify listeners."""
        with self._lock:
            timestamp = max(self._clock(), self._last_timestamp)
            self._last_timestamp = timestamp
            message = AgentMessage(
                id=uuid.uuid4().hex[:9],
                role=role,
                text=text,
                timestamp=timestamp,
                type=type,
            )
            self._messages.append(message)
            listeners = list(self._listeners)

        self.logger.log(_LEVEL_BY_TYPE[type], "%s: %s", role.value, text)
        for listener in listeners:
            listener(message)
        return message

    def info(self, role: AgentRole, text: str) -> AgentMessage:
        return self.append(role, text, MessageType.INFO)

    def success(self, role: AgentRole, text: str) -> AgentMessage:
        return self.append(role, text, MessageType.SUCCESS)

    def warning(self, role: AgentRole, text: str) -> AgentMessage:
        return self.append(role, text, MessageType.WARNING)

    def error(self, role: AgentRole, text: str) -> AgentMessage:
        return self.append(role, text, MessageType.ERROR)

    def subscribe(self, listener: MessageListener) -> Callable[[], None]:
        """Register ``listener`` for future messages; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    @property
    def messages(self) -> Sequence[AgentMessage]:
        with self._lock:
            return tuple(self._messages)

    def filter(
        self,
        *,
        role: Optional[AgentRole] = None,
        type: Optional[MessageType] = None,
    ) -> List[AgentMessage]:
        return [
            message
            for message in self.messages
            if (role is None or message.role == role)
            and (type is None or message.type == type)
        ]

    def __iter__(self) -> Iterator[AgentMessage]:
        return iter(self.messages)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)


__all__ = ["EventLog", "MessageListener"]
