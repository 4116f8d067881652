"""Speech output: cloud synthesis with a per-message cache and local fallback."""

import base64
import binascii
from dataclasses import dataclass
from typing import Callable, Optional, Union

from sora_core.domain.conversation import KeyValueStore, audio_key
from sora_core.domain.exceptions import BusinessError
from sora_core.infrastructure.logging.logger import logger

from .http import SoraClient
from .playback import AudioSink, CloudPlayback, FallbackPlayback, LocalSpeaker, Pyttsx3Speaker, SoundDeviceSink

PlaybackHandle = Union[CloudPlayback, FallbackPlayback]


@dataclass
class SpeechResult:
    audio: Optional[bytes] = None
    fallback: bool = False
    cached: bool = False


class SpeechOutputAdapter:
    """Turns assistant text into a playback handle.

    Cloud audio is cached under ``audio:<locale>:<message_id>`` so replaying
    a message costs no second synthesis. Any cloud failure, including a
    server-side "not configured" answer, degrades to the local speaker.
    Only one handle plays at a time.
    """

    def __init__(
        self,
        client: SoraClient,
        kv: KeyValueStore,
        speaker_factory: Optional[Callable[[], LocalSpeaker]] = None,
        sink_factory: Optional[Callable[[], AudioSink]] = None,
    ):
        self._client = client
        self._kv = kv
        self._speaker_factory = speaker_factory or Pyttsx3Speaker
        self._sink_factory = sink_factory or SoundDeviceSink
        self._speaker: Optional[LocalSpeaker] = None
        self._sink: Optional[AudioSink] = None
        self._current: Optional[PlaybackHandle] = None

    @property
    def current(self) -> Optional[PlaybackHandle]:
        return self._current

    async def synthesize(self, text: str, locale: str, message_id: str) -> SpeechResult:
        key = audio_key(locale, message_id)
        try:
            cached = self._kv.get(key)
        except BusinessError as exc:
            logger.warning("speech.cache_corrupt", extra={"extra": {"key": key, "error": exc.message}})
            self._kv.delete(key)
            cached = None
        if cached:
            try:
                return SpeechResult(audio=base64.b64decode(cached), cached=True)
            except (binascii.Error, ValueError):
                logger.warning("speech.cache_corrupt", extra={"extra": {"key": key}})
                self._kv.delete(key)

        try:
            audio = await self._client.speak(text, locale)
        except BusinessError as exc:
            logger.warning(
                "speech.cloud_failed",
                extra={"extra": {"message_id": message_id, "code": exc.code, "error": exc.message}},
            )
            return SpeechResult(fallback=True)
        if not audio:
            return SpeechResult(fallback=True)

        self._kv.set(key, base64.b64encode(audio).decode("ascii"))
        return SpeechResult(audio=audio)

    async def play(self, text: str, locale: str, message_id: str) -> PlaybackHandle:
        """Stop whatever is playing, then start speaking ``text``."""

        self.stop()
        result = await self.synthesize(text, locale, message_id)
        if result.audio is not None:
            handle: PlaybackHandle = CloudPlayback(result.audio, self._get_sink())
        else:
            handle = FallbackPlayback(text, locale, self._get_speaker())
        logger.info(
            "speech.play",
            extra={"extra": {"message_id": message_id, "kind": handle.kind, "cached": result.cached}},
        )
        self._current = handle
        await handle.start()
        return handle

    def stop(self) -> None:
        if self._current is not None:
            self._current.cancel()
            self._current = None

    def _get_sink(self) -> AudioSink:
        if self._sink is None:
            self._sink = self._sink_factory()
        return self._sink

    def _get_speaker(self) -> LocalSpeaker:
        if self._speaker is None:
            self._speaker = self._speaker_factory()
        return self._speaker
