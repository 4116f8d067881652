from typing import List, Optional, Protocol


HISTORY_PREFIX = "chat_history:"
AUDIO_PREFIX = "audio:"


def history_key(locale: str) -> str:
    return f"{HISTORY_PREFIX}{locale}"


def audio_prefix(locale: str) -> str:
    return f"{AUDIO_PREFIX}{locale}:"


def audio_key(locale: str, message_id: str) -> str:
    return f"{audio_prefix(locale)}{message_id}"


class KeyValueStore(Protocol):
    """Durable client-side key/value storage.

    Keys are namespaced by locale and message id (see history_key /
    audio_key); values are strings.
    """

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...
