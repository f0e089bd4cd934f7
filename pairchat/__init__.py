"""PairChat - One-on-one ephemeral video/text chat session core."""

__version__ = "1.0.0"

from pairchat.exceptions import (
    PairChatError,
    SessionError,
    SessionStateError,
    MediaError,
    MediaAcquisitionError,
    ConfigurationError,
    InvalidConfigError,
)

__all__ = [
    "__version__",
    # Base
    "PairChatError",
    # Session
    "SessionError",
    "SessionStateError",
    # Media
    "MediaError",
    "MediaAcquisitionError",
    # Configuration
    "ConfigurationError",
    "InvalidConfigError",
]
