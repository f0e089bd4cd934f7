"""Prometheus Metrics - Session core observability.

Exports:
- Pairing counts and wait times
- Skip / end counts
- Message counts by origin
- Stale timer discards
- Media acquisition failures
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# -----------------------------------------------------------------------------
# Histograms
# -----------------------------------------------------------------------------

# Connecting phase duration (start/next -> connected), 2-5s by contract
CONNECT_WAIT_HISTOGRAM = Histogram(
    "pairchat_connect_wait_seconds",
    "Time spent in the connecting phase before a pairing completes",
    buckets=[0.5, 1.0, 2.0, 2.5, 3.0, 3.5, 4.0, 4.5, 5.0, 6.0],
)

# -----------------------------------------------------------------------------
# Counters
# -----------------------------------------------------------------------------

SESSIONS_OPENED = Counter(
    "pairchat_sessions_opened_total",
    "Total chat sessions opened",
)

SESSIONS_CLOSED = Counter(
    "pairchat_sessions_closed_total",
    "Total chat sessions closed",
    ["reason"],  # normal, shutdown
)

CONNECTIONS = Counter(
    "pairchat_connections_total",
    "Pairings that reached the connected phase",
)

SKIPS = Counter(
    "pairchat_skips_total",
    "Pairings skipped with next",
)

CALLS_ENDED = Counter(
    "pairchat_calls_ended_total",
    "End-call actions",
    ["from_state"],  # idle, connecting, connected
)

MESSAGES = Counter(
    "pairchat_messages_total",
    "Messages appended to the conversation",
    ["origin"],  # local, remote
)

REPLIES_SCHEDULED = Counter(
    "pairchat_replies_scheduled_total",
    "Simulated replies scheduled",
)

STALE_TIMERS = Counter(
    "pairchat_stale_timers_total",
    "Deferred tasks discarded because their generation was superseded",
    ["task"],  # connect, reply
)

MEDIA_ACQUISITION_FAILURES = Counter(
    "pairchat_media_acquisition_failures_total",
    "Local media acquisition failures",
)

# -----------------------------------------------------------------------------
# Gauges
# -----------------------------------------------------------------------------

SESSIONS_BY_STATE = Gauge(
    "pairchat_sessions_by_state",
    "Sessions in each connection phase",
    ["state"],  # idle, connecting, connected
)

# -----------------------------------------------------------------------------
# Info
# -----------------------------------------------------------------------------

BUILD_INFO = Info(
    "pairchat_build",
    "Build information",
)


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def record_session_open(state: str = "idle") -> None:
    """Record session open."""
    SESSIONS_OPENED.inc()
    SESSIONS_BY_STATE.labels(state=state).inc()


def record_session_close(reason: str = "normal", state: str = "idle") -> None:
    """Record session close."""
    SESSIONS_CLOSED.labels(reason=reason).inc()
    SESSIONS_BY_STATE.labels(state=state).dec()


def record_connection(wait_ms: float) -> None:
    """Record a completed pairing and its connecting wait in milliseconds."""
    CONNECTIONS.inc()
    CONNECT_WAIT_HISTOGRAM.observe(wait_ms / 1000.0)


def record_skip() -> None:
    """Record a next/skip action."""
    SKIPS.inc()


def record_call_ended(from_state: str) -> None:
    """Record an end-call action."""
    CALLS_ENDED.labels(from_state=from_state).inc()


def record_message(origin: str) -> None:
    """Record an appended message."""
    MESSAGES.labels(origin=origin).inc()


def record_reply_scheduled() -> None:
    """Record a scheduled simulated reply."""
    REPLIES_SCHEDULED.inc()


def record_stale_timer(task: str) -> None:
    """Record a discarded stale deferred task."""
    STALE_TIMERS.labels(task=task).inc()


def record_media_failure() -> None:
    """Record a media acquisition failure."""
    MEDIA_ACQUISITION_FAILURES.inc()


def update_session_state(old_state: str, new_state: str) -> None:
    """Move one session between phase gauges."""
    SESSIONS_BY_STATE.labels(state=old_state).dec()
    SESSIONS_BY_STATE.labels(state=new_state).inc()


def set_build_info(version: str) -> None:
    """Set build information."""
    BUILD_INFO.info({"version": version})
