"""PairChat errors and when they surface.

    PairChatError
    ├── SessionError
    │   └── SessionStateError
    ├── MediaError
    │   └── MediaAcquisitionError
    └── ConfigurationError
        └── InvalidConfigError

User actions (start, next, end, send, toggles) never raise: an action the
current phase does not permit, or one overtaken by a concurrent action, is
logged as ignored and returns None. Only direct calls to transition_to()
raise SessionStateError. A failed camera or microphone is recoverable and
leaves the session running without local media. Configuration errors stop
startup.
"""

from typing import Any


class PairChatError(Exception):
    """Root of every error the chat core raises on purpose.

    `details` is merged into the structured log event, and `recoverable`
    tells the caller whether the session is still usable afterwards.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})
        self.recoverable = recoverable

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message} ({self.details})"

    def to_dict(self) -> dict[str, Any]:
        """Log/API payload: type name, message, details and recoverability."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(PairChatError):
    """A chat session refused an operation; `session_id` names which one."""

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        merged = dict(details or {})
        if session_id:
            merged["session_id"] = session_id
        super().__init__(message, merged, recoverable)
        self.session_id = session_id


class SessionStateError(SessionError):
    """transition_to() was asked for a move it cannot make.

    Either the pair is missing from the transition table, or another
    transition changed the phase while exit callbacks were running (the
    message then starts with "Transition superseded"). The phase is left
    as the winning transition set it.
    """

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        current_state: str | None = None,
        target_state: str | None = None,
    ) -> None:
        phases = {
            key: value
            for key, value in (("current_state", current_state), ("target_state", target_state))
            if value
        }
        super().__init__(message, session_id, phases, recoverable=False)
        self.current_state = current_state
        self.target_state = target_state


# =============================================================================
# Media Errors
# =============================================================================


class MediaError(PairChatError):
    """Local camera or microphone capture went wrong."""

    pass


class MediaAcquisitionError(MediaError):
    """Raised when the host denies or lacks a capture device.

    Non-fatal: the session continues without local media and the user may
    retry with a fresh acquire.
    """

    def __init__(self, device: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to acquire media from {device}: {reason}",
            details={"device": device, "reason": reason},
            recoverable=True,
        )
        self.device = device
        self.reason = reason


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PairChatError):
    """Error in settings or session configuration."""

    pass


class InvalidConfigError(ConfigurationError):
    """A setting holds a value the chat core cannot run with."""

    def __init__(
        self,
        config_key: str,
        value: Any,
        reason: str,
    ) -> None:
        super().__init__(
            message=f"Invalid configuration for {config_key}: {reason}",
            details={
                "config_key": config_key,
                "value": str(value),
                "reason": reason,
            },
            recoverable=False,
        )
