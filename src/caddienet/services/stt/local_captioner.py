"""Local live captions using Distil-Whisper via faster-whisper.

Captions are a hint for the recording UI only. The authoritative transcript
always comes from the transcription bridge.
"""
from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import numpy as np
import structlog

if TYPE_CHECKING:
    from faster_whisper import WhisperModel

    from caddienet.services.audio.capture import MicrophoneStream

logger = structlog.get_logger()


class LocalCaptioner:
    """Periodically captions the audio buffered so far.

    Optimized for CPU inference; a caption pass that fails is logged and
    skipped, never raised into the recording.
    """

    def __init__(
        self,
        model_size: str = "distil-small.en",
        device: str = "cpu",
        compute_type: str = "int8",
        cpu_threads: int = 4,
        sample_rate: int = 16000,
        interval_seconds: float = 2.0,
        language: str = "en",
    ) -> None:
        """Initialize the captioner.

        Args:
            model_size: Model identifier (distil-small.en recommended)
            device: Device to run on ("cpu" or "cuda")
            compute_type: Quantization type ("int8" for CPU, "float16" for GPU)
            cpu_threads: Number of CPU threads to use
            sample_rate: Sample rate of the PCM the stream buffers
            interval_seconds: Time between caption passes
            language: Language code
        """
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.cpu_threads = cpu_threads
        self.sample_rate = sample_rate
        self.interval_seconds = interval_seconds
        self.language = language
        self._model: WhisperModel | None = None
        self._initialized = False
        self._task: asyncio.Task[None] | None = None

    async def initialize(self) -> None:
        """Load the model. Called on first use."""
        if self._initialized:
            return

        logger.info(
            "Loading live caption model",
            model=self.model_size,
            device=self.device,
            compute_type=self.compute_type,
        )
        start = time.perf_counter()

        # Import here to avoid slow startup if not used
        from faster_whisper import WhisperModel

        self._model = await asyncio.to_thread(
            WhisperModel,
            self.model_size,
            device=self.device,
            compute_type=self.compute_type,
            cpu_threads=self.cpu_threads,
        )
        self._initialized = True

        logger.info(
            "Live caption model loaded",
            load_time_ms=f"{(time.perf_counter() - start) * 1000:.0f}",
        )

    def pcm_to_float(self, pcm: bytes) -> np.ndarray:
        """Convert 16-bit PCM to the float32 [-1, 1] array faster-whisper expects."""
        audio_array = np.frombuffer(pcm, dtype=np.int16).astype(np.float32) / 32768.0

        if self.sample_rate != 16000 and len(audio_array):
            ratio = 16000 / self.sample_rate
            new_length = int(len(audio_array) * ratio)
            indices = np.linspace(0, len(audio_array) - 1, new_length)
            audio_array = np.interp(indices, np.arange(len(audio_array)), audio_array)

        return audio_array.astype(np.float32)

    def _caption_sync(self, audio_array: np.ndarray) -> str:
        assert self._model is not None
        segments, _info = self._model.transcribe(
            audio_array,
            beam_size=1,  # Greedy decoding for speed
            language=self.language,
            vad_filter=True,
        )
        return " ".join(segment.text.strip() for segment in segments).strip()

    async def caption(self, pcm: bytes) -> str:
        """Caption a PCM buffer once."""
        if not pcm:
            return ""
        if not self._initialized:
            await self.initialize()
        return await asyncio.to_thread(self._caption_sync, self.pcm_to_float(pcm))

    async def start(self, stream: MicrophoneStream, on_hint: Callable[[str], None]) -> None:
        """Begin captioning ``stream`` in the background."""
        await self.stop()
        self._task = asyncio.create_task(self._run(stream, on_hint))

    async def _run(self, stream: MicrophoneStream, on_hint: Callable[[str], None]) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                text = await self.caption(stream.buffered_pcm())
            except Exception as e:
                logger.warning("Live caption pass failed", error=str(e))
                continue
            if text:
                on_hint(text)

    async def stop(self) -> None:
        """Stop the background captioning task."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    def is_available(self) -> bool:
        """Check if the model is loaded."""
        return self._initialized and self._model is not None

    async def shutdown(self) -> None:
        """Clean up resources."""
        await self.stop()
        self._model = None
        self._initialized = False
        logger.info("Live captioner shut down")
