"""Local Media Controller - Camera/microphone ownership and toggles.

The controller exclusively owns the capture stream for the session's
lifetime: it acquires it once, flips track enabled flags, and releases it
exactly once. Acquisition failure is non-fatal; the session runs without
local media until the user acquires again.
"""

from dataclasses import dataclass

from pairchat.exceptions import MediaAcquisitionError
from pairchat.media.devices import LocalMediaStream, MediaDevices
from pairchat.observability.logging import MediaLogger
from pairchat.observability.metrics import record_media_failure


@dataclass
class MediaState:
    """Local media flags mirrored from the stream's tracks.

    The enabled flags are meaningless while `stream` is None.
    """

    stream: LocalMediaStream | None = None
    video_enabled: bool = True
    audio_enabled: bool = True

    @property
    def has_stream(self) -> bool:
        return self.stream is not None


class LocalMediaController:
    """Acquires, toggles and releases the local capture stream.

    Usage:
        media = LocalMediaController("session-123", MockMediaDevices())
        if not await media.acquire():
            print(media.last_error)
        media.toggle_video()
        media.release()
    """

    def __init__(self, session_id: str, devices: MediaDevices) -> None:
        self._devices = devices
        self._state = MediaState()
        self._last_error: MediaAcquisitionError | None = None
        self._logger = MediaLogger(session_id)

    @property
    def state(self) -> MediaState:
        return self._state

    @property
    def stream(self) -> LocalMediaStream | None:
        return self._state.stream

    @property
    def video_enabled(self) -> bool:
        return self._state.video_enabled

    @property
    def audio_enabled(self) -> bool:
        return self._state.audio_enabled

    @property
    def last_error(self) -> MediaAcquisitionError | None:
        """Error from the most recent failed acquire, cleared on success."""
        return self._last_error

    async def acquire(self) -> bool:
        """Request one combined audio+video stream from the host.

        No retries: a failure is final for this attempt.

        Returns:
            True if a stream is held after the call
        """
        if self._state.stream is not None:
            return True

        try:
            stream = await self._devices.get_user_media(audio=True, video=True)
        except MediaAcquisitionError as e:
            self._last_error = e
            self._logger.acquisition_failed(device=e.device, reason=e.reason)
            record_media_failure()
            return False

        self._last_error = None
        self._state = MediaState(stream=stream, video_enabled=True, audio_enabled=True)
        self._logger.media_acquired([t.kind for t in stream.tracks])
        return True

    def toggle_video(self) -> bool | None:
        """Flip the video track(s). Returns the new flag, or None if no-op."""
        enabled = self._toggle("video")
        if enabled is not None:
            self._state.video_enabled = enabled
        return enabled

    def toggle_audio(self) -> bool | None:
        """Flip the audio track(s). Returns the new flag, or None if no-op."""
        enabled = self._toggle("audio")
        if enabled is not None:
            self._state.audio_enabled = enabled
        return enabled

    def _toggle(self, kind: str) -> bool | None:
        stream = self._state.stream
        if stream is None:
            return None

        tracks = stream.video_tracks if kind == "video" else stream.audio_tracks
        if not tracks:
            return None

        enabled = not tracks[0].enabled
        for track in tracks:
            track.enabled = enabled

        self._logger.track_toggled(kind, enabled)
        return enabled

    def release(self) -> bool:
        """Stop all tracks and drop the stream. Idempotent.

        Returns:
            True if a stream was released by this call
        """
        stream = self._state.stream
        if stream is None:
            return False

        stopped = stream.stop()
        self._state = MediaState()
        self._logger.media_released(stopped)
        return True
