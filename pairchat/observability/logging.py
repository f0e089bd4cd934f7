"""Structured Logging - structlog event loggers for the chat core.

Every event carries a dotted `event_type` ("session.state_change",
"media.acquired", ...) next to the event name, plus the session_id the
logger was bound to. Production renders JSON lines; other environments
use the colored console renderer.
"""

import logging
import sys
from typing import Any

import structlog

# Settings spell it WARN; the stdlib wants WARNING
_LEVEL_ALIASES = {"WARN": "WARNING"}


def _level_number(level: str) -> int:
    name = level.upper()
    return getattr(logging, _LEVEL_ALIASES.get(name, name))


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: DEBUG, INFO, WARN/WARNING or ERROR
        json_format: JSON lines if True, console rendering otherwise
    """
    threshold = _level_number(level)
    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and other stdlib loggers
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=threshold)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structlog logger, usually named after the calling module."""
    return structlog.get_logger(name)


class _EventLogger:
    """Session-bound logger that stamps each event with its event_type."""

    channel = "pairchat"

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id
        self._log = get_logger(self.channel).bind(session_id=session_id)

    def _event(self, level: str, event: str, event_type: str, **fields: Any) -> None:
        getattr(self._log, level)(event, event_type=event_type, **fields)


class SessionLogger(_EventLogger):
    """Session lifecycle, message and timer events."""

    channel = "session"

    def session_opened(self, metadata: dict[str, Any] | None = None) -> None:
        self._event("info", "session_opened", "session.opened", **(metadata or {}))

    def session_closed(self, reason: str, connections: int) -> None:
        self._event(
            "info",
            "session_closed",
            "session.closed",
            reason=reason,
            connections=connections,
        )

    def state_change(
        self,
        old_state: str,
        new_state: str,
        reason: str,
        t_ms: int,
    ) -> None:
        self._event(
            "info",
            "state_change",
            "session.state_change",
            old_state=old_state,
            new_state=new_state,
            reason=reason,
            t_ms=t_ms,
        )

    def action_ignored(self, action: str, state: str) -> None:
        """A user action arrived in a phase that does not permit it."""
        self._event(
            "debug",
            "action_ignored",
            "session.action_ignored",
            action=action,
            state=state,
        )

    def callback_failed(self, callback: str, error: str) -> None:
        self._event(
            "error",
            "callback_failed",
            "session.callback_failed",
            callback=callback,
            error=error,
        )

    def message_appended(self, message_id: str, origin: str, length: int) -> None:
        # Length only; message text stays out of the logs
        self._event(
            "debug",
            "message_appended",
            "message.appended",
            message_id=message_id,
            origin=origin,
            length=length,
        )

    def reply_scheduled(self, delay_ms: int, generation: int) -> None:
        self._event(
            "debug",
            "reply_scheduled",
            "message.reply_scheduled",
            delay_ms=delay_ms,
            generation=generation,
        )

    def stale_timer_discarded(
        self,
        task: str,
        generation: int,
        current_generation: int,
    ) -> None:
        """A deferred task woke up after its generation was superseded."""
        self._event(
            "debug",
            "stale_timer_discarded",
            "timer.stale_discarded",
            task=task,
            generation=generation,
            current_generation=current_generation,
        )


class MediaLogger(_EventLogger):
    """Local capture events."""

    channel = "media"

    def media_acquired(self, tracks: list[str]) -> None:
        self._event("info", "media_acquired", "media.acquired", tracks=tracks)

    def acquisition_failed(self, device: str, reason: str) -> None:
        """Non-fatal: the session continues without local media."""
        self._event(
            "warning",
            "media_acquisition_failed",
            "media.acquisition_failed",
            device=device,
            reason=reason,
        )

    def track_toggled(self, kind: str, enabled: bool) -> None:
        self._event("info", "track_toggled", "media.track_toggled", kind=kind, enabled=enabled)

    def media_released(self, tracks: int) -> None:
        self._event("info", "media_released", "media.released", tracks=tracks)


def init_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Configure logging once at application startup."""
    configure_logging(level=level, json_format=json_format)
