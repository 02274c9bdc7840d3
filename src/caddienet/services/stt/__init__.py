"""STT (Speech-to-Text) services."""

from caddienet.services.stt.local_captioner import LocalCaptioner
from caddienet.services.stt.transcription import TranscriptionBridge

__all__ = [
    "LocalCaptioner",
    "TranscriptionBridge",
]
