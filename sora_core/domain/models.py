"""Shared data models.

Two groups of structures live here:

- LLM wire models (ChatMessage / ChatRequest / ChatResult / ChatStreamChunk)
  that provider adapters translate to and from vendor JSON.
- Conversation models (Message / WebResult / EnrichmentContext / ReplyEvent)
  that travel between the reply pipeline, the HTTP surface and the client
  core.

Conversation models serialise with camelCase keys, which is the format
used both on the wire and in persisted client state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4


Role = Literal["system", "user", "assistant"]
Locale = Literal["en", "ja"]
SUPPORTED_LOCALES = ("en", "ja")


def new_message_id() -> str:
    return f"m-{uuid4().hex}"


def _utc_iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(raw: str) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


# ---- LLM wire models ----


@dataclass
class ChatMessage:
    """One role/content turn sent to or received from the model."""

    role: Role
    content: str


@dataclass
class ChatRequest:
    """A complete request to a provider.

    ``model`` is a logical model name; the provider registry maps it to the
    vendor model id.
    """

    provider: str
    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    top_p: float = 0.95
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatResult:
    """Parsed non-streaming response."""

    provider: str
    model: str
    content: str
    finish_reason: Optional[str] = None
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None


@dataclass
class ChatStreamChunk:
    """One incremental piece of a streamed response."""

    provider: str
    model: str
    delta: str
    finish_reason: Optional[str] = None
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None


# ---- conversation models ----


@dataclass
class WebResult:
    title: str
    url: str
    snippet: str
    image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title, "url": self.url, "snippet": self.snippet}
        if self.image:
            data["image"] = self.image
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebResult":
        return cls(
            title=str(data.get("title") or ""),
            url=str(data.get("url") or ""),
            snippet=str(data.get("snippet") or ""),
            image=data.get("image") or None,
        )


@dataclass
class Message:
    """A chat message owned by the conversation store of one locale.

    ``web_search_results`` is the side-channel payload attached to the
    assistant message whose generation triggered the search.
    """

    id: str
    role: Role
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    web_search_results: Optional[List[WebResult]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "createdAt": _utc_iso(self.created_at),
        }
        if self.web_search_results is not None:
            data["sideChannel"] = {
                "webSearchResults": [r.to_dict() for r in self.web_search_results],
            }
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        side = data.get("sideChannel") or {}
        raw_results = side.get("webSearchResults")
        created = data.get("createdAt")
        return cls(
            id=data["id"],
            role=data["role"],
            content=data.get("content") or "",
            created_at=_parse_iso(created) if created else datetime.now(timezone.utc),
            web_search_results=(
                [WebResult.from_dict(r) for r in raw_results] if raw_results is not None else None
            ),
        )

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


@dataclass
class Coordinates:
    lat: float
    lon: float


@dataclass
class EnrichmentContext:
    """Request-scoped context gathered before composing the prompt."""

    location_name: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    weather: Optional[Dict[str, Any]] = None
    should_show_results: bool = False
    web_results: List[WebResult] = field(default_factory=list)


ReplyEventKind = Literal["start", "token", "data", "done", "error"]


@dataclass
class ReplyEvent:
    """One frame of the reply stream.

    Every frame carries the assistant message id it belongs to so the
    client can drop frames of a turn that is no longer current.
    """

    kind: ReplyEventKind
    message_id: str
    text: Optional[str] = None
    web_search_results: Optional[List[WebResult]] = None
    code: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.kind, "messageId": self.message_id}
        if self.kind == "token":
            data["text"] = self.text or ""
        elif self.kind == "data":
            data["webSearchResults"] = [r.to_dict() for r in self.web_search_results or []]
        elif self.kind == "error":
            data["code"] = self.code or "ERROR"
            data["message"] = self.message or ""
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReplyEvent":
        kind = data.get("type")
        if kind not in ("start", "token", "data", "done", "error"):
            raise ValueError(f"unknown reply frame type: {kind!r}")
        raw_results = data.get("webSearchResults")
        return cls(
            kind=kind,
            message_id=str(data.get("messageId") or ""),
            text=data.get("text"),
            web_search_results=(
                [WebResult.from_dict(r) for r in raw_results] if raw_results is not None else None
            ),
            code=data.get("code"),
            message=data.get("message"),
        )
