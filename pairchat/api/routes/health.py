"""Probe and metrics endpoints.

- /healthz: process liveness
- /readyz: readiness; 503 until the chat session is open
- /health: both, with per-component detail
- /metrics: Prometheus exposition

Only the chat session gates readiness. A missing camera or microphone is
reported under components but leaves the service ready.
"""

from fastapi import APIRouter, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

router = APIRouter(tags=["health"])

COMPONENTS = ("chat_session", "local_media")
CRITICAL_COMPONENTS = ("chat_session",)

_ready = False
_components: dict[str, bool] = dict.fromkeys(COMPONENTS, False)


class ReadinessResponse(BaseModel):
    status: str
    components: dict[str, bool]


class HealthResponse(ReadinessResponse):
    ready: bool


def set_ready(ready: bool) -> None:
    """Flip the service-level ready flag (set by the app lifespan)."""
    global _ready
    _ready = ready


def set_component_health(component: str, healthy: bool) -> None:
    """Record a component's health. Unknown names are ignored."""
    if component in _components:
        _components[component] = healthy


def get_component_health() -> dict[str, bool]:
    return dict(_components)


def is_ready() -> bool:
    """Ready flag set and every critical component healthy."""
    return _ready and all(_components[name] for name in CRITICAL_COMPONENTS)


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/readyz", response_model=ReadinessResponse)
async def readyz(response: Response) -> ReadinessResponse:
    ready = is_ready()
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="ready" if ready else "not_ready",
        components=get_component_health(),
    )


@router.get("/health", response_model=HealthResponse)
async def health(response: Response) -> HealthResponse:
    ready = is_ready()
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(
        status="healthy" if ready else "degraded",
        ready=_ready,
        components=get_component_health(),
    )


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus text format for the default registry."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
