"""sounddevice-backed microphone."""

from __future__ import annotations

import asyncio
import io
import logging
import threading
from collections.abc import Callable
from typing import Any

import numpy as np
import soundfile as sf

from caddienet.config import get_settings
from caddienet.errors import PermissionDenied
from caddienet.models.commands import AudioClip
from caddienet.services.audio.capture import AudioCaptureController

logger = logging.getLogger(__name__)


class SoundDeviceStream:
    """An open RawInputStream buffering 16-bit PCM until stopped."""

    def __init__(self, raw_stream: Any, samplerate: int, channels: int) -> None:
        self._raw = raw_stream
        self.samplerate = samplerate
        self.channels = channels
        self._chunks: list[bytes] = []
        self._lock = threading.Lock()
        self._recording = False

    def audio_callback(self, indata: Any, frames: int, time: Any, status: Any) -> None:
        """Audio callback for sounddevice (runs on the PortAudio thread)."""
        if status:
            logger.warning("Audio status: %s", status)
        if self._recording:
            with self._lock:
                self._chunks.append(bytes(indata))

    def start_recording(self) -> None:
        self._recording = True
        self._raw.start()

    def buffered_pcm(self) -> bytes:
        with self._lock:
            return b"".join(self._chunks)

    def encode_wav(self, pcm: bytes) -> bytes:
        samples = np.frombuffer(pcm, dtype=np.int16)
        if self.channels > 1:
            samples = samples.reshape(-1, self.channels)
        buffer = io.BytesIO()
        sf.write(buffer, samples, self.samplerate, format="WAV", subtype="PCM_16")
        return buffer.getvalue()

    async def stop_recording(self) -> AudioClip:
        self._recording = False
        if self._raw.active:
            self._raw.stop()
        pcm = self.buffered_pcm()
        data = await asyncio.to_thread(self.encode_wav, pcm)
        return AudioClip(data=data, mime_type="audio/wav")

    def close(self) -> None:
        self._recording = False
        try:
            if self._raw.active:
                self._raw.stop()
            self._raw.close()
        finally:
            with self._lock:
                self._chunks.clear()


class SoundDeviceMicrophone:
    """Opens the host's input device through PortAudio."""

    def __init__(
        self,
        device_id: int | None = None,
        samplerate: int = 16000,
        channels: int = 1,
        blocksize: int = 8000,
    ) -> None:
        self.device_id = device_id
        self.samplerate = samplerate
        self.channels = channels
        self.blocksize = blocksize

    async def request_access(self) -> SoundDeviceStream:
        """Open the input device.

        Raises:
            PermissionDenied: PortAudio is missing, there is no input device,
                or the OS refused access.
        """
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise PermissionDenied(f"Audio input not available: {e}") from e

        try:
            if self.device_id is not None:
                sd.query_devices(self.device_id, "input")
            stream = SoundDeviceStream(None, self.samplerate, self.channels)
            stream._raw = sd.RawInputStream(
                samplerate=self.samplerate,
                blocksize=self.blocksize,
                device=self.device_id,
                dtype="int16",
                channels=self.channels,
                callback=stream.audio_callback,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise PermissionDenied(f"Microphone access failed: {e}") from e

        logger.info(
            "Microphone opened - Device: %s, Sample rate: %s Hz",
            self.device_id if self.device_id is not None else "default",
            self.samplerate,
        )
        return stream


def create_capture_controller(
    on_complete: Callable[[AudioClip], Any] | None = None,
    on_error: Callable[[Exception], Any] | None = None,
) -> AudioCaptureController:
    """Build a capture controller for the host microphone from settings."""
    settings = get_settings().audio

    captioner = None
    if settings.live_caption_enabled:
        from caddienet.services.stt.local_captioner import LocalCaptioner

        captioner = LocalCaptioner(
            model_size=settings.live_caption_model,
            device=settings.live_caption_device,
            compute_type=settings.live_caption_compute_type,
            sample_rate=settings.sample_rate,
        )

    microphone = SoundDeviceMicrophone(
        device_id=settings.device,
        samplerate=settings.sample_rate,
        channels=settings.channels,
        blocksize=settings.blocksize,
    )
    return AudioCaptureController(
        microphone,
        on_complete=on_complete,
        on_error=on_error,
        captioner=captioner,
        tick_interval=settings.tick_interval_seconds,
    )
