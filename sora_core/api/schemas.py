"""Request/response bodies of the HTTP surface."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from sora_core.domain.models import ChatMessage, WebResult


class TurnIn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class ReplyIn(BaseModel):
    messages: List[TurnIn] = Field(min_length=1)
    locale: Literal["en", "ja"] = "en"
    messageId: Optional[str] = None


class SpeakIn(BaseModel):
    text: str
    locale: Literal["en", "ja"] = "en"


class SpeakOut(BaseModel):
    audioContent: Optional[str] = None
    error: Optional[str] = None
    fallback: bool = False


class TranscribeOut(BaseModel):
    text: str


class SearchIn(BaseModel):
    query: str = ""
    locale: Literal["en", "ja"] = "en"


class WebResultOut(BaseModel):
    title: str
    url: str
    snippet: str
    image: Optional[str] = None

    @classmethod
    def from_result(cls, result: WebResult) -> "WebResultOut":
        return cls(title=result.title, url=result.url, snippet=result.snippet, image=result.image)


class SearchOut(BaseModel):
    results: List[WebResultOut]


class GuardedSearchOut(BaseModel):
    shouldShowResults: bool
    results: List[WebResultOut]
