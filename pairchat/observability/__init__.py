"""Observability module - structured logging and Prometheus metrics."""

from pairchat.observability.logging import (
    MediaLogger,
    SessionLogger,
    configure_logging,
    get_logger,
    init_logging,
)

__all__ = [
    "MediaLogger",
    "SessionLogger",
    "configure_logging",
    "get_logger",
    "init_logging",
]
