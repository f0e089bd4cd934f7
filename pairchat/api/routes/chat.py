"""Chat API Routes - User actions on the application-lifetime session.

Provides REST endpoints mapping 1:1 to the session's user actions:
- Start, next, end
- Send message
- Toggle camera / microphone, retry media acquisition

Actions requested in a phase that does not permit them are ignored and
return the unchanged state, mirroring disabled buttons in a UI.
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from pairchat.config.settings import get_settings
from pairchat.media.devices import create_media_devices
from pairchat.orchestrator.session import ChatSession, SessionConfig

router = APIRouter(
    prefix="/chat",
    tags=["chat"],
)

# Global session (created on startup)
_chat_session: ChatSession | None = None


def create_chat_session() -> ChatSession:
    """Replace the global session with a fresh one built from settings."""
    global _chat_session
    settings = get_settings()
    _chat_session = ChatSession(
        config=SessionConfig.from_settings(settings),
        media_devices=create_media_devices(settings),
    )
    return _chat_session


def get_chat_session() -> ChatSession:
    """Get global chat session."""
    if _chat_session is None:
        return create_chat_session()
    return _chat_session


# Request/Response models
class MessageResponse(BaseModel):
    """A single chat message."""

    id: str
    text: str
    origin: str
    created_at: str
    display_time: str


class SessionStateResponse(BaseModel):
    """Observable session state."""

    session_id: str
    phase: str
    status_text: str
    is_online: bool
    connection_count: int
    messages: list[MessageResponse]
    video_enabled: bool
    audio_enabled: bool
    has_stream: bool
    media_error: str | None = None


class SendMessageRequest(BaseModel):
    """Outgoing chat message."""

    text: str = Field(..., description="Message text (trimmed, up to 1000 chars)")


class SendMessageResponse(BaseModel):
    """Result of sending a message."""

    accepted: bool
    message: MessageResponse | None = None
    state: SessionStateResponse


class ToggleResponse(BaseModel):
    """Result of a media toggle."""

    kind: str
    enabled: bool | None = Field(
        None, description="New track flag, or null when there is no stream"
    )
    state: SessionStateResponse


def _state(session: ChatSession) -> SessionStateResponse:
    return SessionStateResponse(**session.snapshot().to_dict())


# Endpoints
@router.get("", response_model=SessionStateResponse)
async def get_state() -> SessionStateResponse:
    """Get current session state."""
    return _state(get_chat_session())


@router.post("/start", response_model=SessionStateResponse)
async def start_chat() -> SessionStateResponse:
    """Start looking for a counterpart."""
    session = get_chat_session()
    await session.start_chat()
    return _state(session)


@router.post("/next", response_model=SessionStateResponse)
async def next_chat() -> SessionStateResponse:
    """Skip to a new counterpart."""
    session = get_chat_session()
    await session.next()
    return _state(session)


@router.post("/end", response_model=SessionStateResponse)
async def end_call() -> SessionStateResponse:
    """End the current pairing."""
    session = get_chat_session()
    await session.end_call()
    return _state(session)


@router.post("/messages", response_model=SendMessageResponse)
async def send_message(request: SendMessageRequest) -> SendMessageResponse:
    """Send a message to the counterpart."""
    session = get_chat_session()
    message = await session.send_message(request.text)
    return SendMessageResponse(
        accepted=message is not None,
        message=MessageResponse(**message.to_dict()) if message else None,
        state=_state(session),
    )


@router.post("/media/video", response_model=ToggleResponse)
async def toggle_video() -> ToggleResponse:
    """Mute or unmute the camera."""
    session = get_chat_session()
    enabled = await session.toggle_video()
    return ToggleResponse(kind="video", enabled=enabled, state=_state(session))


@router.post("/media/audio", response_model=ToggleResponse)
async def toggle_audio() -> ToggleResponse:
    """Mute or unmute the microphone."""
    session = get_chat_session()
    enabled = await session.toggle_audio()
    return ToggleResponse(kind="audio", enabled=enabled, state=_state(session))


@router.post("/media/acquire", response_model=SessionStateResponse)
async def acquire_media() -> SessionStateResponse:
    """Retry local media acquisition."""
    session = get_chat_session()
    await session.acquire_media()
    return _state(session)
