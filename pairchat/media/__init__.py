"""Local media module - capture devices and track control."""

from pairchat.media.controller import LocalMediaController, MediaState
from pairchat.media.devices import (
    CaptureMediaDevices,
    LocalMediaStream,
    LocalTrack,
    MediaDevices,
    MockMediaDevices,
    create_media_devices,
)

__all__ = [
    "LocalMediaController",
    "MediaState",
    "CaptureMediaDevices",
    "LocalMediaStream",
    "LocalTrack",
    "MediaDevices",
    "MockMediaDevices",
    "create_media_devices",
]
