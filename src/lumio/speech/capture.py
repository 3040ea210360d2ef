"""Microphone capture with streaming transcription."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator

import numpy as np

from lumio.common.logging import get_logger
from lumio.config import Config


@dataclass
class Transcript:
    """Transcription update for the current capture."""

    text: str
    is_final: bool = False


class SpeechCapture:
    """Abstract speech capture.

    ``start`` acquires the microphone, ``transcripts`` streams partial and
    final results, ``stop`` releases the microphone. ``stop`` may be called
    any number of times.
    """

    @property
    def active(self) -> bool:
        raise NotImplementedError

    async def start(self) -> None:
        """Acquire the microphone and begin transcribing.

        Raises:
            RuntimeError: The microphone or recognizer is unavailable.
        """
        raise NotImplementedError

    def transcripts(self) -> AsyncIterator[Transcript]:
        """Stream transcription updates until a final result or stop."""
        raise NotImplementedError

    async def stop(self) -> None:
        """Stop capture and release the microphone."""
        raise NotImplementedError


class MockSpeechCapture(SpeechCapture):
    """Scripted capture for tests and mock runs.

    Yields the scripted transcripts, then stays silent until stopped.
    """

    def __init__(
        self,
        script: list[Transcript] | None = None,
        delay: float = 0.0,
        fail_start: bool = False,
        fail_release: bool = False,
    ) -> None:
        self.script = script if script is not None else []
        self.delay = delay
        self.fail_start = fail_start
        self.fail_release = fail_release
        self.start_count = 0
        self.release_count = 0
        self._active = False
        self._stopped = asyncio.Event()

    @property
    def active(self) -> bool:
        return self._active

    async def start(self) -> None:
        if self.fail_start:
            raise RuntimeError("Microphone unavailable")
        self.start_count += 1
        self._stopped = asyncio.Event()
        self._active = True

    async def transcripts(self) -> AsyncIterator[Transcript]:
        for transcript in self.script:
            if self.delay:
                await asyncio.sleep(self.delay)
            if not self._active:
                return
            yield transcript
        await self._stopped.wait()

    async def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._stopped.set()
        self.release_count += 1
        if self.fail_release:
            raise OSError("Audio device busy")


class WhisperSpeechCapture(SpeechCapture):
    """Capture via sounddevice, transcription via faster-whisper.

    Audio accumulates for the whole capture; every ``chunk_size_ms`` the
    buffer is re-transcribed and emitted as a partial result. Stopping
    produces one final transcription.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.logger = get_logger("whisper_speech_capture")
        self._model: Any = None
        self._stream: Any = None
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._buffer = bytearray()

    @property
    def active(self) -> bool:
        return self._stream is not None

    def _load_model(self) -> Any:
        if self._model is None:
            from faster_whisper import WhisperModel

            self._model = WhisperModel(
                self.config.speech.stt_model,
                device="cpu",
                compute_type="int8",
            )
            self.logger.info("whisper_model_loaded", model=self.config.speech.stt_model)
        return self._model

    async def start(self) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            # OSError: PortAudio library missing
            raise RuntimeError(f"sounddevice not available: {e}") from e

        try:
            await asyncio.to_thread(self._load_model)
        except Exception as e:
            raise RuntimeError(f"Speech model unavailable: {e}") from e

        speech = self.config.speech
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._buffer = bytearray()

        def on_audio(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
            loop.call_soon_threadsafe(self._queue.put_nowait, bytes(indata))

        try:
            self._stream = sd.RawInputStream(
                samplerate=speech.sample_rate,
                channels=1,
                dtype="int16",
                blocksize=int(speech.sample_rate * speech.chunk_size_ms / 1000),
                callback=on_audio,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise RuntimeError(f"Microphone unavailable: {e}") from e

        self.logger.info("mic_opened", sample_rate=speech.sample_rate)

    def _transcribe(self, audio: bytes) -> str:
        samples = np.frombuffer(audio, dtype=np.int16).astype(np.float32) / 32768.0
        segments, _ = self._model.transcribe(
            samples,
            language=self.config.speech.stt_language,
            vad_filter=True,
        )
        return " ".join(segment.text for segment in segments).strip()

    async def transcripts(self) -> AsyncIterator[Transcript]:
        bytes_per_second = self.config.speech.sample_rate * 2
        last_size = 0

        while True:
            chunk = await self._queue.get()
            if chunk is None:
                break
            self._buffer.extend(chunk)

            if len(self._buffer) - last_size >= bytes_per_second:
                last_size = len(self._buffer)
                text = await asyncio.to_thread(self._transcribe, bytes(self._buffer))
                if text:
                    yield Transcript(text=text)

        if self._buffer:
            text = await asyncio.to_thread(self._transcribe, bytes(self._buffer))
            yield Transcript(text=text, is_final=True)

    async def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return

        try:
            stream.stop()
            stream.close()
            self.logger.info("mic_released")
        except Exception as e:
            self.logger.warning("audio_release_failed", error=str(e))
        finally:
            self._queue.put_nowait(None)


def create_speech_capture(config: Config, mock_mode: bool = False) -> SpeechCapture:
    if mock_mode or config.mock_mode:
        return MockSpeechCapture(script=[Transcript("Alex", is_final=True)], delay=0.5)
    return WhisperSpeechCapture(config)
