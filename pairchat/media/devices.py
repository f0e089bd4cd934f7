"""Host Media Capability - Local capture devices behind one interface.

All device backends implement MediaDevices.get_user_media(), which yields a
LocalMediaStream of LocalTracks or raises MediaAcquisitionError.
Higher-level code is blind to which backend is used.

Backends:
- CaptureMediaDevices: real camera/microphone via aiortc MediaPlayer (FFmpeg)
- MockMediaDevices: synthetic aiortc tracks (silence, blank frames)
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any

import av.error
from aiortc import AudioStreamTrack, MediaStreamTrack, VideoStreamTrack
from aiortc.contrib.media import MediaPlayer
from aiortc.mediastreams import MediaStreamError
from av import VideoFrame

from pairchat.config.settings import Settings, get_settings
from pairchat.exceptions import InvalidConfigError, MediaAcquisitionError
from pairchat.observability.logging import get_logger

logger = get_logger(__name__)


class LocalTrack(MediaStreamTrack):
    """Capture track with an independent enabled flag.

    Wraps a source track. While disabled, audio frames are zeroed and video
    frames are replaced by black frames of the same size and timing, so a
    consumer keeps receiving a live stream.
    """

    def __init__(self, source: MediaStreamTrack) -> None:
        super().__init__()
        self.kind = source.kind
        self.enabled: bool = True
        self._source = source

    @property
    def ready_state(self) -> str:
        """Track state: "live" until stopped, then "ended"."""
        return self.readyState

    async def recv(self) -> Any:
        if self.readyState != "live":
            raise MediaStreamError

        frame = await self._source.recv()
        if self.enabled:
            return frame

        if self.kind == "audio":
            for plane in frame.planes:
                plane.update(bytes(plane.buffer_size))
            return frame

        return _black_frame(frame)

    def stop(self) -> None:
        super().stop()
        self._source.stop()


def _black_frame(frame: VideoFrame) -> VideoFrame:
    """Black yuv420p frame matching `frame` geometry and timing."""
    blank = VideoFrame(width=frame.width, height=frame.height, format="yuv420p")
    for index, plane in enumerate(blank.planes):
        fill = 0 if index == 0 else 128  # Y=0, neutral chroma
        plane.update(bytes([fill]) * plane.buffer_size)
    blank.pts = frame.pts
    blank.time_base = frame.time_base
    return blank


class LocalMediaStream:
    """Combined audio+video capture handle."""

    def __init__(self, tracks: list[LocalTrack]) -> None:
        self.id = str(uuid.uuid4())
        self._tracks = list(tracks)

    @property
    def tracks(self) -> list[LocalTrack]:
        return list(self._tracks)

    @property
    def audio_tracks(self) -> list[LocalTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    @property
    def video_tracks(self) -> list[LocalTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    @property
    def active(self) -> bool:
        """Whether any track is still live."""
        return any(t.ready_state == "live" for t in self._tracks)

    def stop(self) -> int:
        """Stop every live track.

        Returns:
            Number of tracks stopped
        """
        stopped = 0
        for track in self._tracks:
            if track.ready_state == "live":
                track.stop()
                stopped += 1
        return stopped


class MediaDevices(ABC):
    """Canonical interface for the host media capability."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name identifier."""

    @abstractmethod
    async def get_user_media(
        self,
        audio: bool = True,
        video: bool = True,
    ) -> LocalMediaStream:
        """Acquire a capture stream.

        Raises:
            MediaAcquisitionError: If the device is denied or unavailable
        """


class CaptureMediaDevices(MediaDevices):
    """Camera and microphone opened through FFmpeg input devices.

    Usage:
        devices = CaptureMediaDevices(
            video_device="/dev/video0", video_format="v4l2",
            audio_device="default", audio_format="pulse",
        )
        stream = await devices.get_user_media()
    """

    def __init__(
        self,
        video_device: str = "/dev/video0",
        video_format: str | None = "v4l2",
        audio_device: str = "default",
        audio_format: str | None = "pulse",
        video_options: dict[str, str] | None = None,
    ) -> None:
        self._video_device = video_device
        self._video_format = video_format
        self._audio_device = audio_device
        self._audio_format = audio_format
        self._video_options = video_options or {"video_size": "640x480"}

    @property
    def name(self) -> str:
        return "capture"

    async def _open(
        self,
        device: str,
        fmt: str | None,
        kind: str,
        options: dict[str, str] | None = None,
    ) -> LocalTrack:
        try:
            player = await asyncio.to_thread(
                MediaPlayer, device, format=fmt, options=options
            )
        except (av.error.FFmpegError, OSError, ValueError) as e:
            raise MediaAcquisitionError(device, str(e)) from e

        source = player.video if kind == "video" else player.audio
        other = player.audio if kind == "video" else player.video
        if other is not None:
            # Only one kind is taken from each device
            other.stop()
        if source is None:
            raise MediaAcquisitionError(device, f"no {kind} stream on device")
        return LocalTrack(source)

    async def get_user_media(
        self,
        audio: bool = True,
        video: bool = True,
    ) -> LocalMediaStream:
        if not audio and not video:
            raise ValueError("At least one of audio or video must be requested")

        tracks: list[LocalTrack] = []
        try:
            if video:
                tracks.append(await self._open(
                    self._video_device,
                    self._video_format,
                    "video",
                    self._video_options,
                ))
            if audio:
                tracks.append(await self._open(
                    self._audio_device,
                    self._audio_format,
                    "audio",
                ))
        except MediaAcquisitionError:
            # Release whatever opened before the failure
            for track in tracks:
                track.stop()
            raise

        logger.debug(
            "capture_opened",
            kinds=[t.kind for t in tracks],
        )
        return LocalMediaStream(tracks)


class MockMediaDevices(MediaDevices):
    """Synthetic capture for testing and development.

    Produces aiortc's silent audio and blank video tracks. Set
    `fail_reason` to simulate a denied or missing device.
    """

    def __init__(self, fail_reason: str | None = None) -> None:
        self.fail_reason = fail_reason
        self.requests: int = 0

    @property
    def name(self) -> str:
        return "mock"

    async def get_user_media(
        self,
        audio: bool = True,
        video: bool = True,
    ) -> LocalMediaStream:
        if not audio and not video:
            raise ValueError("At least one of audio or video must be requested")

        self.requests += 1
        if self.fail_reason is not None:
            raise MediaAcquisitionError("mock", self.fail_reason)

        tracks: list[LocalTrack] = []
        if video:
            tracks.append(LocalTrack(VideoStreamTrack()))
        if audio:
            tracks.append(LocalTrack(AudioStreamTrack()))
        return LocalMediaStream(tracks)


def create_media_devices(settings: Settings | None = None) -> MediaDevices:
    """Create the host media capability selected by settings.

    Args:
        settings: Settings instance (defaults to get_settings())

    Returns:
        Configured MediaDevices backend

    Raises:
        InvalidConfigError: If the backend name is unknown
    """
    settings = settings or get_settings()

    if settings.media_backend == "mock":
        return MockMediaDevices()

    if settings.media_backend == "capture":
        return CaptureMediaDevices(
            video_device=settings.video_device,
            video_format=settings.video_format,
            audio_device=settings.audio_device,
            audio_format=settings.audio_format,
        )

    raise InvalidConfigError(
        "media_backend", settings.media_backend, "unknown media backend"
    )
