"""Chat session controller.

Owns the visible conversation of the active locale and drives one turn at
a time through the reply stream::

    IDLE -> AWAITING_INPUT (recording) -> SUBMITTING -> STREAMING -> SETTLED -> IDLE

Every turn gets a correlation id that is also the id of the assistant
message it produces. Frames carrying another id, and frames of a turn that
was abandoned by a locale switch or a clear, are dropped.
"""

import enum
from contextlib import aclosing
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from sora_core.config.settings import settings
from sora_core.domain.exceptions import (
    BusinessError,
    StateError,
    TranscriptionUnavailable,
    ValidationError,
)
from sora_core.domain.models import Message, ReplyEvent, SUPPORTED_LOCALES, new_message_id
from sora_core.infrastructure.logging.logger import logger

from .conversation_store import ConversationStore
from .http import SoraClient
from .speech_output import PlaybackHandle, SpeechOutputAdapter
from .transcription import Microphone, RecordingSession, TranscriptionAdapter

GENERIC_ERROR = {
    "en": "Sorry, something went wrong. Please try again.",
    "ja": "申し訳ありません。エラーが発生しました。もう一度お試しください。",
}

VOICE_UNAVAILABLE = {
    "en": "Voice input is unavailable right now. Please type your message.",
    "ja": "現在、音声入力を利用できません。メッセージを入力してください。",
}


class TurnState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    SETTLED = "settled"


@dataclass
class TurnOutcome:
    turn_id: str
    success: bool
    error: Optional[str] = None


class ChatSessionController:
    def __init__(
        self,
        client: SoraClient,
        store: ConversationStore,
        locale: Optional[str] = None,
        speech: Optional[SpeechOutputAdapter] = None,
        transcription: Optional[TranscriptionAdapter] = None,
        auto_speak: bool = False,
        on_change: Optional[Callable[["ChatSessionController"], None]] = None,
    ):
        locale = locale or settings.default_locale
        self._check_locale(locale)
        self._client = client
        self._store = store
        self._locale = locale
        self._speech = speech
        self._transcription = transcription
        self._auto_speak = auto_speak
        self._on_change = on_change

        self._messages: List[Message] = store.load(locale)
        self._state = TurnState.IDLE
        self._turn_id: Optional[str] = None
        self._streaming_id: Optional[str] = None
        self._recording: Optional[RecordingSession] = None
        self.last_error: Optional[str] = None
        self.last_outcome: Optional[TurnOutcome] = None
        # transcript that arrived while a typed turn was in flight; never auto-submitted
        self.pending_transcript: Optional[str] = None

    @property
    def locale(self) -> str:
        return self._locale

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def streaming_message_id(self) -> Optional[str]:
        return self._streaming_id

    @property
    def input_enabled(self) -> bool:
        return self._state in (TurnState.IDLE, TurnState.AWAITING_INPUT)

    async def handle_key(self, key: str, text: str, shift: bool = False) -> bool:
        """Enter submits, Shift+Enter is left to the input widget (newline)."""

        if key == "Enter" and not shift:
            return await self.submit(text)
        return False

    async def submit(self, text: str) -> bool:
        """Run one turn; False when the input was empty or a turn is in flight."""

        content = (text or "").strip()
        if not content:
            return False
        if not self.input_enabled:
            logger.info("session.submit_rejected", extra={"extra": {"state": self._state.value}})
            return False

        turn_id = new_message_id()
        self._turn_id = turn_id
        self.last_error = None
        self._messages.append(Message(id=new_message_id(), role="user", content=content))
        self._persist()
        self._set_state(TurnState.SUBMITTING)

        history = [m for m in self._messages if m.role != "system"]
        locale = self._locale
        try:
            async with aclosing(self._client.stream_reply(history, locale, turn_id)) as events:
                async for event in events:
                    if not self._is_current(turn_id):
                        # abandoned turn: the request runs to completion, its frames go nowhere
                        logger.debug("session.stale_frame", extra={"extra": {"turn_id": turn_id, "kind": event.kind}})
                        continue
                    try:
                        finished = self._apply(event, turn_id)
                    except StateError as exc:
                        logger.debug("session.frame_dropped", extra={"extra": {"turn_id": turn_id, "error": exc.message}})
                        continue
                    if finished:
                        break
                else:
                    if self._is_current(turn_id):
                        raise StateError(code="STREAM_CLOSED", message="reply stream ended before done")
        except BusinessError as exc:
            logger.warning(
                "session.turn_failed",
                extra={"extra": {"turn_id": turn_id, "code": exc.code, "error": exc.message}},
            )
            self._settle(turn_id, success=False, error=GENERIC_ERROR[locale])
            return True

        if self._is_current(turn_id) and self._state is not TurnState.IDLE:
            self._settle(turn_id, success=True)
            if self._auto_speak and self._speech is not None and self._find(turn_id) is not None:
                await self._speak_quietly(turn_id)
        return True

    def _apply(self, event: ReplyEvent, turn_id: str) -> bool:
        """Apply one frame; True once the stream is finished."""

        if event.message_id != turn_id:
            raise StateError(
                code="UNCORRELATED_FRAME",
                message=f"frame for {event.message_id} during turn {turn_id}",
            )
        if event.kind == "start":
            return False
        if event.kind == "token":
            message = self._ensure_assistant(turn_id)
            message.content += event.text or ""
            self._persist()
            self._notify()
            return False
        if event.kind == "data":
            message = self._ensure_assistant(turn_id)
            message.web_search_results = list(event.web_search_results or [])
            self._persist()
            self._notify()
            return False
        if event.kind == "error":
            logger.warning(
                "session.server_error",
                extra={"extra": {"turn_id": turn_id, "code": event.code, "error": event.message}},
            )
            self._settle(turn_id, success=False, error=GENERIC_ERROR[self._locale])
            return True
        # done: a reply with no text still gets its (empty) assistant message
        self._ensure_assistant(turn_id)
        self._persist()
        return True

    def _ensure_assistant(self, turn_id: str) -> Message:
        message = self._find(turn_id)
        if message is None:
            message = Message(id=turn_id, role="assistant", content="")
            self._messages.append(message)
            self._streaming_id = turn_id
            self._set_state(TurnState.STREAMING)
        return message

    def _settle(self, turn_id: str, success: bool, error: Optional[str] = None) -> None:
        if not self._is_current(turn_id):
            return
        self._turn_id = None
        self._streaming_id = None
        if not success:
            self.last_error = error
        self.last_outcome = TurnOutcome(turn_id=turn_id, success=success, error=error)
        logger.info("session.settled", extra={"extra": {"turn_id": turn_id, "success": success}})
        self._set_state(TurnState.SETTLED)
        # settled is transient; input is enabled again right away
        self._set_state(TurnState.IDLE)

    def start_recording(self, microphone: Microphone) -> None:
        if self._transcription is None:
            raise StateError(code="NO_TRANSCRIPTION", message="voice input is not configured")
        if self._state is not TurnState.IDLE or self._recording is not None:
            raise StateError(code="INPUT_DISABLED", message=f"cannot record while {self._state.value}")
        self._recording = self._transcription.start_recording(microphone)
        self.last_error = None
        self.pending_transcript = None
        self._set_state(TurnState.AWAITING_INPUT)

    async def stop_recording(self) -> bool:
        """Transcribe the capture and submit it; False when nothing was submitted.

        When a typed turn started while recording, that turn keeps running
        and the transcript is parked in ``pending_transcript``.
        """

        session = self._recording
        if session is None:
            return False
        self._recording = None
        locale = self._locale
        try:
            text = await session.finish(locale)
        except ValidationError as exc:
            self.last_error = exc.message
            self._leave_recording()
            return False
        except TranscriptionUnavailable:
            self.last_error = VOICE_UNAVAILABLE[locale]
            self._leave_recording()
            return False
        if locale != self._locale:
            # the locale changed while transcribing; the text belongs to the old conversation
            return False
        if self._turn_id is not None:
            self.pending_transcript = text
            logger.info(
                "session.transcript_parked",
                extra={"extra": {"turn_id": self._turn_id, "chars": len(text)}},
            )
            return False
        self._leave_recording()
        return await self.submit(text)

    def _leave_recording(self) -> None:
        if self._state is TurnState.AWAITING_INPUT:
            self._set_state(TurnState.IDLE)

    def cancel_recording(self) -> None:
        session, self._recording = self._recording, None
        if session is not None:
            session.cancel()
            self._leave_recording()

    async def speak(self, message_id: str) -> PlaybackHandle:
        if self._speech is None:
            raise StateError(code="NO_SPEECH", message="speech output is not configured")
        if message_id == self._streaming_id:
            raise StateError(code="MESSAGE_STREAMING", message="message is still streaming")
        message = self._find(message_id)
        if message is None or message.role != "assistant" or not message.content.strip():
            raise StateError(code="UNKNOWN_MESSAGE", message=f"no assistant message {message_id}")
        return await self._speech.play(message.content, self._locale, message.id)

    def stop_speaking(self) -> None:
        if self._speech is not None:
            self._speech.stop()

    def switch_locale(self, locale: str) -> None:
        """Swap in the conversation of ``locale``; any in-flight turn is abandoned."""

        self._check_locale(locale)
        if locale == self._locale:
            return
        self._abandon()
        self._locale = locale
        self._messages = self._store.load(locale)
        self.last_error = None
        logger.info("session.locale_switched", extra={"extra": {"locale": locale, "messages": len(self._messages)}})
        self._set_state(TurnState.IDLE)

    def clear_chat(self) -> None:
        self._abandon()
        self._store.clear(self._locale)
        self._messages = []
        self.last_error = None
        self._set_state(TurnState.IDLE)

    def close(self) -> None:
        self._abandon()

    def _abandon(self) -> None:
        self._turn_id = None
        self._streaming_id = None
        self.cancel_recording()
        self.stop_speaking()

    async def _speak_quietly(self, message_id: str) -> None:
        try:
            await self.speak(message_id)
        except BusinessError as exc:
            logger.warning("session.auto_speak_failed", extra={"extra": {"code": exc.code, "error": exc.message}})

    def _is_current(self, turn_id: str) -> bool:
        return self._turn_id == turn_id

    def _find(self, message_id: str) -> Optional[Message]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def _persist(self) -> None:
        self._store.save(self._locale, self._messages)

    def _set_state(self, state: TurnState) -> None:
        self._state = state
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    @staticmethod
    def _check_locale(locale: str) -> None:
        if locale not in SUPPORTED_LOCALES:
            raise ValidationError(code="UNSUPPORTED_LOCALE", message=f"unsupported locale: {locale!r}")
