"""Voice input: microphone capture and transcription with local fallback.

Order of attempts for one clip:

1. size check (no network call for clips that are too short or too large);
2. normalization to mono 16 kHz WAV, keeping the original bytes when the
   clip cannot be decoded;
3. cloud transcription through the server;
4. the local recognizer, when one is configured.

When every attempt fails, TranscriptionUnavailable is raised.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol

import numpy as np

from sora_core.config.settings import settings
from sora_core.domain.exceptions import BusinessError, TranscriptionUnavailable
from sora_core.infrastructure.audio import (
    TARGET_SAMPLE_RATE,
    check_clip_size,
    decode_audio,
    encode_wav,
    normalize_audio,
    to_mono_16k,
)
from sora_core.infrastructure.logging.logger import logger

from .http import SoraClient


class Microphone(Protocol):
    def start(self) -> None:
        ...

    def stop(self) -> bytes:
        """Stop capturing and return the clip as WAV bytes."""
        ...

    def release(self) -> None:
        """Free the input device; safe to call more than once."""
        ...


class LocalRecognizer(Protocol):
    async def recognize(self, audio: bytes, locale: str) -> str:
        ...


class SoundDeviceMicrophone:
    """Microphone on the default input device via sounddevice."""

    def __init__(self, sample_rate: int = TARGET_SAMPLE_RATE, channels: int = 1):
        self._sample_rate = sample_rate
        self._channels = channels
        self._frames: List[np.ndarray] = []
        self._stream = None

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("mic.status", extra={"extra": {"status": str(status)}})
        self._frames.append(indata.copy())

    def start(self) -> None:
        import sounddevice as sd

        self._frames = []
        self._stream = sd.InputStream(
            samplerate=self._sample_rate,
            channels=self._channels,
            dtype="float32",
            callback=self._callback,
        )
        self._stream.start()

    def stop(self) -> bytes:
        if self._stream is not None:
            self._stream.stop()
        if not self._frames:
            return b""
        audio = np.concatenate(self._frames, axis=0)
        return encode_wav(to_mono_16k(audio, self._sample_rate))

    def release(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class LocalWhisperRecognizer:
    """Offline recognizer using the openai-whisper package.

    The model is loaded on first use and inference runs in a worker thread.
    """

    def __init__(self, model_name: Optional[str] = None):
        self._model_name = model_name or settings.local_whisper_model
        self._model = None

    def _get_model(self):
        if self._model is None:
            import whisper

            logger.info("stt.local.loading", extra={"extra": {"model": self._model_name}})
            self._model = whisper.load_model(self._model_name)
        return self._model

    def _recognize_blocking(self, audio: bytes, locale: str) -> str:
        samples, sr = decode_audio(audio)
        mono = to_mono_16k(samples, sr)
        if mono.size == 0:
            return ""
        result = self._get_model().transcribe(mono, fp16=False, language=locale)
        text = result.get("text")
        return text.strip() if isinstance(text, str) else ""

    async def recognize(self, audio: bytes, locale: str) -> str:
        return await asyncio.to_thread(self._recognize_blocking, audio, locale)


class TranscriptionAdapter:
    def __init__(
        self,
        client: SoraClient,
        local_recognizer: Optional[LocalRecognizer] = None,
        min_bytes: Optional[int] = None,
        max_bytes: Optional[int] = None,
    ):
        self._client = client
        self._local = local_recognizer
        self._min_bytes = min_bytes if min_bytes is not None else settings.transcribe_min_bytes
        self._max_bytes = max_bytes if max_bytes is not None else settings.transcribe_max_bytes

    async def transcribe(self, audio: bytes, locale: str) -> str:
        """Return the recognized text of ``audio``.

        Raises:
            ValidationError: the clip is too short or too large.
            TranscriptionUnavailable: neither engine produced text.
        """

        check_clip_size(len(audio), self._min_bytes, self._max_bytes)
        upload = await self._normalize(audio)

        try:
            text = await self._client.transcribe(upload, locale)
            if text:
                return text
            logger.warning("stt.cloud.empty", extra={"extra": {"locale": locale}})
        except BusinessError as exc:
            logger.warning(
                "stt.cloud.failed",
                extra={"extra": {"locale": locale, "code": exc.code, "error": exc.message}},
            )

        if self._local is not None:
            try:
                text = await self._local.recognize(upload, locale)
            except Exception as exc:
                logger.warning("stt.local.failed", extra={"extra": {"locale": locale, "error": str(exc)}})
            else:
                if text:
                    logger.info("stt.local.result", extra={"extra": {"locale": locale, "chars": len(text)}})
                    return text

        raise TranscriptionUnavailable(
            code="TRANSCRIPTION_UNAVAILABLE",
            message="Speech recognition is unavailable. Please type your message.",
            locale=locale,
        )

    def start_recording(self, microphone: Microphone) -> "RecordingSession":
        session = RecordingSession(self, microphone)
        session.begin()
        return session

    async def _normalize(self, audio: bytes) -> bytes:
        try:
            normalized = await asyncio.to_thread(normalize_audio, audio)
        except (RuntimeError, ValueError) as exc:
            # soundfile cannot decode every container; upload the clip as recorded
            logger.info("stt.normalize_skipped", extra={"extra": {"error": str(exc)}})
            return audio
        if len(normalized) > self._max_bytes:
            return audio
        return normalized


class RecordingSession:
    """One microphone capture; the device is released on every exit path."""

    def __init__(self, adapter: TranscriptionAdapter, microphone: Microphone):
        self._adapter = adapter
        self._microphone = microphone
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def begin(self) -> None:
        try:
            self._microphone.start()
        except Exception:
            self._microphone.release()
            raise
        self._active = True

    async def finish(self, locale: str) -> str:
        try:
            clip = self._microphone.stop()
        finally:
            self._active = False
            self._microphone.release()
        return await self._adapter.transcribe(clip, locale)

    def cancel(self) -> None:
        if not self._active:
            return
        try:
            self._microphone.stop()
        finally:
            self._active = False
            self._microphone.release()
