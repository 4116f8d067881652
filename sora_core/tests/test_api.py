import base64
import json

import pytest
from fastapi.testclient import TestClient

from sora_core.api import service
from sora_core.domain.exceptions import ApiError
from sora_core.domain.models import ReplyEvent, WebResult


class FakeAgent:
    validate_history = staticmethod(service.ReplyAgent.validate_history)

    def __init__(self):
        self.calls = []

    async def generate_reply(self, history, locale, message_id=None):
        self.calls.append((history, locale, message_id))
        mid = message_id or "m-generated"
        yield ReplyEvent(kind="start", message_id=mid)
        yield ReplyEvent(kind="token", message_id=mid, text="Hi ")
        yield ReplyEvent(kind="token", message_id=mid, text="there")
        yield ReplyEvent(
            kind="data",
            message_id=mid,
            web_search_results=[WebResult(title="T", url="https://t", snippet="s")],
        )
        yield ReplyEvent(kind="done", message_id=mid)


class FakeStt:
    def __init__(self, text="hello", error=None):
        self.text = text
        self.error = error

    async def transcribe(self, audio, locale, content_type="audio/wav"):
        if self.error:
            raise self.error
        return self.text


class FakeTts:
    def __init__(self, configured=True, error=None):
        self.configured = configured
        self.error = error

    def is_configured(self):
        return self.configured

    async def synthesize(self, text, locale):
        if self.error:
            raise self.error
        return b"ID3-audio"


class FakeEnricher:
    async def search_guarded(self, query, locale):
        return True, [WebResult(title="Museum", url="https://m", snippet="art", image="https://i")]


class FakeTools:
    def __init__(self, error=None):
        self.error = error

    async def search(self, query, locale):
        if self.error:
            raise self.error
        return [WebResult(title=f"r{i}", url=f"https://r/{i}", snippet="s") for i in range(5)]


@pytest.fixture
def client():
    yield TestClient(service.app)
    service.app.dependency_overrides.clear()


def override(dependency, value):
    service.app.dependency_overrides[dependency] = lambda: value


def test_health_and_config(client):
    assert client.get("/health").json() == {"status": "ok"}
    cfg = client.get("/config").json()
    assert cfg["locales"] == ["en", "ja"]
    assert "enrichment_timeout" in cfg


def test_reply_streams_ndjson_frames(client):
    agent = FakeAgent()
    override(service.get_reply_agent, agent)
    resp = client.post(
        "/reply",
        json={"messages": [{"role": "user", "content": "hi"}], "locale": "ja", "messageId": "m-42"},
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/x-ndjson")
    frames = [json.loads(line) for line in resp.text.splitlines() if line]
    assert [f["type"] for f in frames] == ["start", "token", "token", "data", "done"]
    assert {f["messageId"] for f in frames} == {"m-42"}
    assert frames[3]["webSearchResults"][0]["url"] == "https://t"
    assert agent.calls[0][1] == "ja"


def test_reply_rejects_bad_history(client):
    override(service.get_reply_agent, FakeAgent())
    resp = client.post("/reply", json={"messages": [{"role": "assistant", "content": "hi"}]})
    assert resp.status_code == 400
    assert resp.json()["error"] == "NO_USER_TURN"


def test_reply_rejects_unknown_locale(client):
    override(service.get_reply_agent, FakeAgent())
    resp = client.post("/reply", json={"messages": [{"role": "user", "content": "hi"}], "locale": "fr"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_transcribe_rejects_short_clip(client):
    override(service.get_stt_client, FakeStt())
    resp = client.post("/transcribe", files={"audio": ("a.wav", b"x" * 10, "audio/wav")}, data={"locale": "en"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "AUDIO_TOO_SHORT"


def test_transcribe_rejects_unknown_locale(client):
    stt = FakeStt(text="bonjour")
    override(service.get_stt_client, stt)
    resp = client.post("/transcribe", files={"audio": ("a.wav", b"x" * 2000, "audio/wav")}, data={"locale": "fr"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_transcribe_ok(client):
    override(service.get_stt_client, FakeStt(text="good morning"))
    resp = client.post("/transcribe", files={"audio": ("a.wav", b"x" * 2000, "audio/wav")}, data={"locale": "en"})
    assert resp.status_code == 200
    assert resp.json() == {"text": "good morning"}


def test_transcribe_provider_error(client):
    override(service.get_stt_client, FakeStt(error=ApiError(code="API_ERROR", message="model loading")))
    resp = client.post("/transcribe", files={"audio": ("a.wav", b"x" * 2000, "audio/wav")}, data={"locale": "ja"})
    assert resp.status_code == 502
    assert resp.json() == {"error": "model loading"}


def test_transcribe_empty_text(client):
    override(service.get_stt_client, FakeStt(text=""))
    resp = client.post("/transcribe", files={"audio": ("a.wav", b"x" * 2000, "audio/wav")}, data={"locale": "en"})
    assert resp.status_code == 502


def test_speak_returns_base64_audio(client):
    override(service.get_tts_client, FakeTts())
    resp = client.post("/speak", json={"text": "hello", "locale": "en"})
    assert resp.status_code == 200
    assert base64.b64decode(resp.json()["audioContent"]) == b"ID3-audio"


def test_speak_signals_fallback(client):
    override(service.get_tts_client, FakeTts(configured=False))
    body = client.post("/speak", json={"text": "hello"}).json()
    assert body["fallback"] is True
    assert "audioContent" not in body

    override(service.get_tts_client, FakeTts(error=ApiError(code="API_ERROR", message="quota")))
    body = client.post("/speak", json={"text": "hello"}).json()
    assert body == {"error": "quota", "fallback": True}


def test_speak_empty_text(client):
    override(service.get_tts_client, FakeTts())
    resp = client.post("/speak", json={"text": "  "})
    assert resp.status_code == 400
    assert resp.json()["error"] == "EMPTY_TEXT"


def test_search_truncates_and_validates(client):
    override(service.get_context_tools, FakeTools())
    assert client.post("/search", json={"query": ""}).status_code == 400
    results = client.post("/search", json={"query": "tokyo"}).json()["results"]
    assert len(results) == 3
    assert "image" not in results[0]


def test_search_provider_error_returns_empty(client):
    override(service.get_context_tools, FakeTools(error=ApiError(code="API_ERROR", message="down")))
    resp = client.post("/search", json={"query": "tokyo"})
    assert resp.status_code == 200
    assert resp.json() == {"results": []}


def test_search_guarded(client):
    override(service.get_enricher, FakeEnricher())
    body = client.post("/searchGuarded", json={"query": "museums", "locale": "ja"}).json()
    assert body["shouldShowResults"] is True
    assert body["results"][0]["image"] == "https://i"
