"""Chat Constants - Timing and content contracts for the session core.

All timing values in milliseconds unless otherwise noted.
"""

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class ChatConstants:
    """Immutable session contract values."""

    # Matchmaking: connecting phase lasts a uniform 2-5 seconds
    CONNECT_DELAY_MIN_MS: Final[int] = 2000
    CONNECT_DELAY_MAX_MS: Final[int] = 5000

    # Simulated counterpart replies
    REPLY_DELAY_MIN_MS: Final[int] = 1000
    REPLY_DELAY_MAX_MS: Final[int] = 3000
    REPLY_PROBABILITY: Final[float] = 0.7

    # Messages
    MAX_MESSAGE_LENGTH: Final[int] = 1000  # Locally authored text cap
    GREETING_TEXT: Final[str] = "Hi there! 👋"
    TIME_FORMAT: Final[str] = "%H:%M"  # 24-hour display

    # State machine
    MAX_TRANSITION_HISTORY: Final[int] = 100


# Singleton instance for import convenience
CHAT = ChatConstants()
