"""Audio capture services."""

from caddienet.services.audio.capture import (
    AudioCaptureController,
    CaptureState,
    LiveCaptioner,
    Microphone,
    MicrophoneStream,
    RecordingSession,
)
from caddienet.services.audio.microphone import SoundDeviceMicrophone, create_capture_controller

__all__ = [
    "AudioCaptureController",
    "CaptureState",
    "LiveCaptioner",
    "Microphone",
    "MicrophoneStream",
    "RecordingSession",
    "SoundDeviceMicrophone",
    "create_capture_controller",
]
