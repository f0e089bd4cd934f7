"""Chat Session - Orchestrates one user's pairing lifecycle.

Coordinates all components for the application-lifetime chat session:
- State machine (IDLE / CONNECTING / CONNECTED)
- Message log and exchange simulator
- Cancellation controller (generation-guarded timers)
- Local media controller

Presentation layers call the user actions and read snapshot(); they never
mutate session state directly.
"""

import random
import uuid
from dataclasses import dataclass

from pairchat.config.constants import CHAT
from pairchat.config.settings import Settings, get_settings
from pairchat.media.controller import LocalMediaController
from pairchat.media.devices import LocalMediaStream, MediaDevices, create_media_devices
from pairchat.observability.logging import SessionLogger
from pairchat.observability.metrics import (
    record_call_ended,
    record_connection,
    record_session_close,
    record_session_open,
    record_skip,
    update_session_state,
)
from pairchat.orchestrator.cancellation import CancellationController
from pairchat.orchestrator.exchange import MessageExchangeSimulator
from pairchat.orchestrator.messages import Message, MessageLog
from pairchat.orchestrator.state_machine import (
    ConnectionPhase,
    SessionStateMachine,
    StateTransition,
)

STATUS_TEXT: dict[ConnectionPhase, str] = {
    ConnectionPhase.IDLE: "Waiting for connection...",
    ConnectionPhase.CONNECTING: "Connecting...",
    ConnectionPhase.CONNECTED: "Connected",
}


@dataclass
class SessionConfig:
    """Configuration for a chat session."""

    connect_delay_min_ms: int = CHAT.CONNECT_DELAY_MIN_MS
    connect_delay_max_ms: int = CHAT.CONNECT_DELAY_MAX_MS
    reply_delay_min_ms: int = CHAT.REPLY_DELAY_MIN_MS
    reply_delay_max_ms: int = CHAT.REPLY_DELAY_MAX_MS
    reply_probability: float = CHAT.REPLY_PROBABILITY
    max_message_length: int = CHAT.MAX_MESSAGE_LENGTH
    greeting_text: str = CHAT.GREETING_TEXT
    random_seed: int | None = None
    enable_metrics: bool = True

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SessionConfig":
        """Build a session config from application settings."""
        settings = settings or get_settings()
        return cls(
            connect_delay_min_ms=settings.connect_delay_min_ms,
            connect_delay_max_ms=settings.connect_delay_max_ms,
            reply_delay_min_ms=settings.reply_delay_min_ms,
            reply_delay_max_ms=settings.reply_delay_max_ms,
            reply_probability=settings.reply_probability,
            max_message_length=settings.max_message_length,
            greeting_text=settings.greeting_text,
            random_seed=settings.random_seed,
            enable_metrics=settings.metrics_enabled,
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of session state for presentation layers."""

    session_id: str
    phase: ConnectionPhase
    connection_count: int
    messages: tuple[Message, ...]
    video_enabled: bool
    audio_enabled: bool
    has_stream: bool
    media_error: str | None = None

    @property
    def status_text(self) -> str:
        return STATUS_TEXT[self.phase]

    @property
    def is_online(self) -> bool:
        return self.phase is ConnectionPhase.CONNECTED

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "session_id": self.session_id,
            "phase": self.phase.value,
            "status_text": self.status_text,
            "is_online": self.is_online,
            "connection_count": self.connection_count,
            "messages": [m.to_dict() for m in self.messages],
            "video_enabled": self.video_enabled,
            "audio_enabled": self.audio_enabled,
            "has_stream": self.has_stream,
            "media_error": self.media_error,
        }


class ChatSession:
    """One-on-one chat session container.

    Usage:
        session = ChatSession(media_devices=MockMediaDevices())
        await session.open()            # acquire local media

        await session.start_chat()      # CONNECTING, 2-5s to CONNECTED
        await session.send_message("hi")
        await session.next()            # skip to a new counterpart
        await session.end_call()        # back to IDLE

        await session.close()           # release local media
    """

    def __init__(
        self,
        session_id: str | None = None,
        config: SessionConfig | None = None,
        media_devices: MediaDevices | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._session_id = session_id or str(uuid.uuid4())
        self._config = config or SessionConfig()
        self._rng = rng or random.Random(self._config.random_seed)

        # Core components
        self._messages = MessageLog()
        self._cancellation = CancellationController(self._session_id)
        self._state_machine = SessionStateMachine(
            session_id=self._session_id,
            messages=self._messages,
            cancellation=self._cancellation,
            rng=self._rng,
            connect_delay_ms=(
                self._config.connect_delay_min_ms,
                self._config.connect_delay_max_ms,
            ),
            greeting_text=self._config.greeting_text,
        )
        self._exchange = MessageExchangeSimulator(
            session_id=self._session_id,
            messages=self._messages,
            cancellation=self._cancellation,
            is_connected=lambda: self.phase is ConnectionPhase.CONNECTED,
            rng=self._rng,
            reply_probability=self._config.reply_probability,
            reply_delay_ms=(
                self._config.reply_delay_min_ms,
                self._config.reply_delay_max_ms,
            ),
            max_length=self._config.max_message_length,
        )
        self._media = LocalMediaController(
            self._session_id,
            media_devices or create_media_devices(),
        )

        self._open: bool = False
        self._logger = SessionLogger(self._session_id)
        self._state_machine.on_state_change(self._on_transition)

    @property
    def session_id(self) -> str:
        """Session identifier."""
        return self._session_id

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def is_open(self) -> bool:
        """Whether open() has run without a matching close()."""
        return self._open

    @property
    def phase(self) -> ConnectionPhase:
        """Current connection phase."""
        return self._state_machine.state

    @property
    def connection_count(self) -> int:
        return self._state_machine.connection_count

    @property
    def messages(self) -> tuple[Message, ...]:
        """Conversation in insertion order."""
        return self._messages.messages

    @property
    def video_enabled(self) -> bool:
        return self._media.video_enabled

    @property
    def audio_enabled(self) -> bool:
        return self._media.audio_enabled

    @property
    def stream(self) -> LocalMediaStream | None:
        """Local capture handle, opaque to the core (rendering only)."""
        return self._media.stream

    @property
    def media(self) -> LocalMediaController:
        return self._media

    @property
    def state_machine(self) -> SessionStateMachine:
        return self._state_machine

    @property
    def cancellation(self) -> CancellationController:
        return self._cancellation

    async def open(self) -> None:
        """Open the session and acquire local media.

        Media failure is non-fatal; see media.last_error.
        """
        if self._open:
            return

        await self._media.acquire()
        self._open = True

        if self._config.enable_metrics:
            record_session_open(self.phase.value)

        self._logger.session_opened({
            "has_stream": self._media.stream is not None,
            "connect_delay_ms": [
                self._config.connect_delay_min_ms,
                self._config.connect_delay_max_ms,
            ],
        })

    async def close(self, reason: str = "normal") -> None:
        """End any pairing, settle timers and release local media."""
        if not self._open:
            return

        await self._state_machine.end()
        await self._cancellation.drain()
        self._media.release()
        self._open = False

        if self._config.enable_metrics:
            record_session_close(reason, self.phase.value)

        self._logger.session_closed(reason=reason, connections=self.connection_count)

    async def acquire_media(self) -> bool:
        """Retry local media acquisition (e.g. after a denied prompt)."""
        return await self._media.acquire()

    async def start_chat(self) -> StateTransition | None:
        """Start looking for a counterpart. Ignored unless IDLE."""
        return await self._state_machine.start()

    async def next(self) -> StateTransition | None:
        """Skip to a new counterpart. Ignored unless CONNECTED."""
        transition = await self._state_machine.next()
        if transition and self._config.enable_metrics:
            record_skip()
        return transition

    async def end_call(self) -> StateTransition | None:
        """End the pairing from any phase."""
        from_state = self.phase
        transition = await self._state_machine.end()
        if self._config.enable_metrics:
            record_call_ended(from_state.value)
        return transition

    async def send_message(self, text: str) -> Message | None:
        """Send a local message. Ignored unless CONNECTED with valid text."""
        message = self._exchange.send_local(text)
        if message is None:
            self._logger.action_ignored("send_message", self.phase.value)
        return message

    async def toggle_video(self) -> bool | None:
        """Mute/unmute the camera. No-op without a stream."""
        return self._media.toggle_video()

    async def toggle_audio(self) -> bool | None:
        """Mute/unmute the microphone. No-op without a stream."""
        return self._media.toggle_audio()

    async def settle(self) -> None:
        """Wait for all pending timers (connect, replies) to finish."""
        await self._cancellation.drain()

    def snapshot(self) -> SessionSnapshot:
        """Current observable state."""
        error = self._media.last_error
        return SessionSnapshot(
            session_id=self._session_id,
            phase=self.phase,
            connection_count=self.connection_count,
            messages=self.messages,
            video_enabled=self.video_enabled,
            audio_enabled=self.audio_enabled,
            has_stream=self.stream is not None,
            media_error=error.message if error else None,
        )

    def _on_transition(self, transition: StateTransition) -> None:
        self._logger.state_change(
            old_state=transition.old_state.value,
            new_state=transition.new_state.value,
            reason=transition.reason,
            t_ms=transition.t_ms,
        )

        if not self._config.enable_metrics:
            return

        if self._open:
            update_session_state(
                transition.old_state.value, transition.new_state.value
            )
        if transition.new_state is ConnectionPhase.CONNECTED:
            record_connection(transition.metadata.get("wait_ms", 0))
