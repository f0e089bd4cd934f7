"""Conversation Messages - Ordered, clearable message log.

Messages are immutable once created. Ordering is by insertion position;
created_at is only used for HH:MM display. Ids combine the creation
millisecond with a per-log sequence number, so a local message and a
simulated reply created in the same millisecond never collide.
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator

from pairchat.config.constants import CHAT


class MessageOrigin(Enum):
    """Who authored a message."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class Message:
    """A single chat message."""

    id: str
    text: str
    origin: MessageOrigin
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_local(self) -> bool:
        """Whether the user authored this message."""
        return self.origin is MessageOrigin.LOCAL

    @property
    def display_time(self) -> str:
        """Creation time as 24-hour HH:MM."""
        return self.created_at.strftime(CHAT.TIME_FORMAT)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "text": self.text,
            "origin": self.origin.value,
            "created_at": self.created_at.isoformat(),
            "display_time": self.display_time,
        }


class MessageLog:
    """Ordered message sequence for the active pairing.

    The log itself has no notion of phases; the state machine and the
    exchange simulator decide when appends and clears are allowed.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._sequence = itertools.count(1)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    @property
    def messages(self) -> tuple[Message, ...]:
        """Snapshot of the log in insertion order."""
        return tuple(self._messages)

    def _next_id(self, now: datetime) -> str:
        epoch_ms = int(now.timestamp() * 1000)
        return f"{epoch_ms}-{next(self._sequence)}"

    def append(self, text: str, origin: MessageOrigin) -> Message:
        """Create a message and append it to the log.

        Args:
            text: Message body (already validated by the caller)
            origin: Local or remote author

        Returns:
            The appended Message
        """
        now = datetime.now()
        message = Message(
            id=self._next_id(now),
            text=text,
            origin=origin,
            created_at=now,
        )
        self._messages.append(message)
        return message

    def clear(self) -> int:
        """Drop every message.

        Returns:
            Number of messages removed
        """
        count = len(self._messages)
        self._messages.clear()
        return count
