"""Playback handles for synthesized speech.

Two handle kinds exist and their controls differ on purpose:

* CloudPlayback plays decoded audio bytes through an AudioSink and offers
  start, pause, resume, seek, mute and cancel.
* FallbackPlayback speaks the text with the local engine (pyttsx3) and
  offers start and cancel only; anything else raises
  UnsupportedPlaybackOperation.

Callers check ``capabilities`` before offering a control.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, FrozenSet, Optional, Protocol

import numpy as np

from sora_core.domain.exceptions import UnsupportedPlaybackOperation
from sora_core.infrastructure.audio import decode_audio
from sora_core.infrastructure.logging.logger import logger

CLOUD_CAPABILITIES: FrozenSet[str] = frozenset({"start", "pause", "resume", "seek", "mute", "cancel"})
FALLBACK_CAPABILITIES: FrozenSet[str] = frozenset({"start", "cancel"})


class AudioSink(Protocol):
    """Non-blocking output device."""

    def play(self, samples: np.ndarray, sample_rate: int) -> None:
        ...

    def stop(self) -> None:
        ...


class LocalSpeaker(Protocol):
    """Local text-to-speech engine; ``speak`` blocks until done or cancelled."""

    def speak(self, text: str, locale: str) -> None:
        ...

    def cancel(self) -> None:
        ...


class SoundDeviceSink:
    """AudioSink on the default output device via sounddevice."""

    def __init__(self):
        import sounddevice as sd

        self._sd = sd

    def play(self, samples: np.ndarray, sample_rate: int) -> None:
        self._sd.play(samples, sample_rate)

    def stop(self) -> None:
        self._sd.stop()


class Pyttsx3Speaker:
    """LocalSpeaker backed by pyttsx3 (SAPI5 / NSSpeechSynthesizer / espeak)."""

    def __init__(self, rate: int = 175):
        self._rate = rate
        self._engine = None

    def _get_engine(self):
        if self._engine is None:
            import pyttsx3

            self._engine = pyttsx3.init()
            self._engine.setProperty("rate", self._rate)
        return self._engine

    def _select_voice(self, engine, locale: str) -> None:
        tag = "ja" if locale == "ja" else "en"
        for voice in engine.getProperty("voices") or []:
            langs = [
                lang.decode("utf-8", errors="ignore") if isinstance(lang, bytes) else str(lang)
                for lang in (getattr(voice, "languages", None) or [])
            ]
            if any(tag in lang.lower() for lang in langs) or tag in (voice.id or "").lower():
                engine.setProperty("voice", voice.id)
                return

    def speak(self, text: str, locale: str) -> None:
        engine = self._get_engine()
        self._select_voice(engine, locale)
        engine.say(text)
        engine.runAndWait()

    def cancel(self) -> None:
        if self._engine is not None:
            self._engine.stop()


class CloudPlayback:
    """Seekable playback of a decoded clip.

    Position is tracked with ``clock`` rather than read back from the
    device, so any AudioSink works.
    """

    capabilities = CLOUD_CAPABILITIES
    kind = "cloud"

    def __init__(self, audio: bytes, sink: AudioSink, clock: Callable[[], float] = time.monotonic):
        self._audio = audio
        self._sink = sink
        self._clock = clock
        self._samples: Optional[np.ndarray] = None
        self._sample_rate = 0
        self._offset = 0.0
        self._started_at: Optional[float] = None
        self._muted = False
        self._finished = False

    def supports(self, operation: str) -> bool:
        return operation in self.capabilities

    @property
    def duration(self) -> float:
        self._load()
        return len(self._samples) / float(self._sample_rate) if self._sample_rate else 0.0

    @property
    def position(self) -> float:
        if self._started_at is None:
            return self._offset
        return min(self._offset + (self._clock() - self._started_at), self.duration)

    @property
    def is_playing(self) -> bool:
        return self._started_at is not None and self.position < self.duration

    @property
    def muted(self) -> bool:
        return self._muted

    async def start(self) -> None:
        self._load()
        self._finished = False
        self._play_from(self._offset)

    def pause(self) -> None:
        if self._started_at is None:
            return
        self._offset = self.position
        self._started_at = None
        self._sink.stop()

    def resume(self) -> None:
        if self._started_at is not None or self._finished:
            return
        self._play_from(self._offset)

    def seek(self, seconds: float) -> None:
        target = max(0.0, min(float(seconds), self.duration))
        if self._started_at is None:
            self._offset = target
            return
        self._sink.stop()
        self._play_from(target)

    def set_muted(self, muted: bool) -> None:
        if muted == self._muted:
            return
        self._muted = muted
        if self._started_at is not None:
            resume_at = self.position
            self._sink.stop()
            self._play_from(resume_at)

    def cancel(self) -> None:
        """Stop and rewind; ``start`` plays from the beginning again."""

        if self._started_at is not None:
            self._sink.stop()
        self._started_at = None
        self._offset = 0.0
        self._finished = True

    def _load(self) -> None:
        if self._samples is None:
            audio, sr = decode_audio(self._audio)
            self._samples = audio
            self._sample_rate = sr

    def _play_from(self, seconds: float) -> None:
        start = int(seconds * self._sample_rate)
        chunk = self._samples[start:]
        if self._muted:
            chunk = np.zeros_like(chunk)
        self._offset = seconds
        self._started_at = self._clock()
        self._sink.play(chunk, self._sample_rate)


class FallbackPlayback:
    """Fire-and-forget local speech; only start and cancel are offered."""

    capabilities = FALLBACK_CAPABILITIES
    kind = "fallback"

    def __init__(self, text: str, locale: str, speaker: LocalSpeaker):
        self._text = text
        self._locale = locale
        self._speaker = speaker
        self._task: Optional[asyncio.Task] = None

    def supports(self, operation: str) -> bool:
        return operation in self.capabilities

    @property
    def is_playing(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_playing:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            await asyncio.to_thread(self._speaker.speak, self._text, self._locale)
        except Exception:
            logger.exception("playback.fallback_failed", extra={"extra": {"locale": self._locale}})

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    def cancel(self) -> None:
        if self._task is None:
            return
        self._speaker.cancel()
        self._task = None

    def pause(self) -> None:
        self._unsupported("pause")

    def resume(self) -> None:
        self._unsupported("resume")

    def seek(self, seconds: float) -> None:
        self._unsupported("seek")

    def set_muted(self, muted: bool) -> None:
        self._unsupported("mute")

    def _unsupported(self, operation: str) -> None:
        raise UnsupportedPlaybackOperation(
            code="UNSUPPORTED_PLAYBACK_OPERATION",
            message=f"local speech does not support {operation}",
            operation=operation,
        )
