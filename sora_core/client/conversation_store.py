"""Per-locale chat history on top of a KeyValueStore."""

import json
from typing import List, Sequence

from sora_core.domain.conversation import KeyValueStore, audio_prefix, history_key
from sora_core.domain.exceptions import BusinessError
from sora_core.domain.models import Message
from sora_core.infrastructure.logging.logger import logger


class ConversationStore:
    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def load(self, locale: str) -> List[Message]:
        """Saved messages for ``locale``; an empty list when there are none."""

        try:
            raw = self._kv.get(history_key(locale))
        except BusinessError as exc:
            logger.error("store.load_failed", extra={"extra": {"locale": locale, "code": exc.code, "error": exc.message}})
            return []
        if not raw:
            return []
        try:
            return [Message.from_dict(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.error("store.load_failed", extra={"extra": {"locale": locale, "error": str(exc)}})
            return []

    def save(self, locale: str, messages: Sequence[Message]) -> None:
        # an empty list never overwrites saved history; only clear() does that
        if not messages:
            return
        payload = json.dumps([m.to_dict() for m in messages], ensure_ascii=False)
        self._kv.set(history_key(locale), payload)

    def clear(self, locale: str) -> None:
        """Drop the history of ``locale`` and every cached audio clip of it."""

        self._kv.delete(history_key(locale))
        evicted = self._kv.keys(audio_prefix(locale))
        for key in evicted:
            self._kv.delete(key)
        logger.info("store.cleared", extra={"extra": {"locale": locale, "audio_entries": len(evicted)}})
