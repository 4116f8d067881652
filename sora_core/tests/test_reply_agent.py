import asyncio

import pytest

from sora_core.agents.reply_agent import ReplyAgent, ReplyConfig
from sora_core.domain.exceptions import ApiError, ValidationError
from sora_core.domain.models import ChatMessage, ChatStreamChunk, EnrichmentContext, WebResult
from sora_core.prompts import load_system_prompt


class FakeProvider:
    name = "fake"

    def __init__(self, deltas=("Hel", "lo", "!"), fail_after=None):
        self.deltas = deltas
        self.fail_after = fail_after
        self.requests = []

    async def chat_stream(self, req):
        self.requests.append(req)
        for i, delta in enumerate(self.deltas):
            if self.fail_after is not None and i == self.fail_after:
                raise ApiError(code="API_ERROR", message="upstream closed")
            yield ChatStreamChunk(provider="fake", model=req.model, delta=delta)
        yield ChatStreamChunk(provider="fake", model=req.model, delta="", finish_reason="stop")


class FakeEnricher:
    def __init__(self, ctx=None):
        self.ctx = ctx or EnrichmentContext()
        self.seen = []

    async def enrich(self, message, locale):
        self.seen.append((message, locale))
        return self.ctx


def _collect(agent, history, locale="en", message_id="m-1"):
    async def run():
        return [e async for e in agent.generate_reply(history, locale, message_id=message_id)]

    return asyncio.run(run())


def test_reply_frame_order_and_correlation():
    results = [WebResult(title="Ueno", url="https://u", snippet="park")]
    enricher = FakeEnricher(EnrichmentContext(should_show_results=True, web_results=results))
    agent = ReplyAgent(FakeProvider(), enricher)
    events = _collect(agent, [ChatMessage(role="user", content="parks in Tokyo?")])
    assert [e.kind for e in events] == ["start", "token", "token", "token", "data", "done"]
    assert {e.message_id for e in events} == {"m-1"}
    assert "".join(e.text for e in events if e.kind == "token") == "Hello!"
    assert events[4].web_search_results == results
    assert enricher.seen == [("parks in Tokyo?", "en")]


def test_no_data_frame_without_results():
    agent = ReplyAgent(FakeProvider(), FakeEnricher())
    events = _collect(agent, [ChatMessage(role="user", content="hi")])
    assert [e.kind for e in events][-1] == "done"
    assert "data" not in [e.kind for e in events]


def test_generated_message_id_when_absent():
    agent = ReplyAgent(FakeProvider(), FakeEnricher())
    events = _collect(agent, [ChatMessage(role="user", content="hi")], message_id=None)
    ids = {e.message_id for e in events}
    assert len(ids) == 1
    assert ids.pop().startswith("m-")


def test_directive_is_the_only_system_message():
    provider = FakeProvider()
    agent = ReplyAgent(provider, FakeEnricher())
    history = [
        ChatMessage(role="system", content="client supplied"),
        ChatMessage(role="user", content="hi"),
        ChatMessage(role="assistant", content="hello"),
        ChatMessage(role="user", content="こんにちは"),
    ]
    _collect(agent, history, locale="ja")
    messages = provider.requests[0].messages
    assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[0].content == load_system_prompt("sora", "ja")


def test_context_is_trimmed_to_recent_turns():
    provider = FakeProvider()
    agent = ReplyAgent(provider, FakeEnricher(), ReplyConfig(provider="fake", max_context_messages=2))
    history = [ChatMessage(role="user" if i % 2 == 0 else "assistant", content=str(i)) for i in range(5)]
    _collect(agent, history)
    assert [m.content for m in provider.requests[0].messages[1:]] == ["3", "4"]


def test_model_failure_ends_with_error_frame():
    agent = ReplyAgent(FakeProvider(fail_after=1), FakeEnricher())
    events = _collect(agent, [ChatMessage(role="user", content="hi")])
    assert [e.kind for e in events] == ["start", "token", "error"]
    assert events[-1].code == "API_ERROR"
    assert events[-1].message_id == "m-1"


@pytest.mark.parametrize(
    "history, locale, code",
    [
        ([], "en", "EMPTY_HISTORY"),
        ([ChatMessage(role="assistant", content="hi")], "en", "NO_USER_TURN"),
        ([ChatMessage(role="user", content="   ")], "en", "NO_USER_TURN"),
        ([ChatMessage(role="user", content="hi")], "fr", "UNSUPPORTED_LOCALE"),
    ],
)
def test_validate_history(history, locale, code):
    with pytest.raises(ValidationError) as exc:
        ReplyAgent.validate_history(history, locale)
    assert exc.value.code == code
