import json as jsonlib

import httpx
import pytest


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b"", lines=None):
        self.status_code = status_code
        self._json = json_data
        if json_data is not None and not content:
            content = jsonlib.dumps(json_data).encode("utf-8")
        self.content = content
        self.text = content.decode("utf-8", errors="replace")
        self._lines = list(lines or [])

    def json(self):
        if self._json is None:
            return jsonlib.loads(self.text)
        return self._json

    async def aread(self):
        return self.content

    async def aiter_lines(self):
        for line in self._lines:
            yield line


class _StreamContext:
    def __init__(self, response):
        self._response = response

    async def __aenter__(self):
        return self._response

    async def __aexit__(self, *args):
        return False


@pytest.fixture
def fake_http(monkeypatch):
    """Replace httpx.AsyncClient with a fake driven by ``responder``.

    ``responder(method, url, kwargs)`` returns a FakeResponse or raises.
    Every request is recorded in the returned list.
    """

    def install(responder):
        calls = []

        class Client:
            def __init__(self, *a, **kw):
                pass

            async def __aenter__(self):
                return self

            async def __aexit__(self, *a):
                return False

            async def get(self, url, **kw):
                calls.append(("GET", url, kw))
                return responder("GET", url, kw)

            async def post(self, url, **kw):
                calls.append(("POST", url, kw))
                return responder("POST", url, kw)

            def stream(self, method, url, **kw):
                calls.append((method, url, kw))
                return _StreamContext(responder(method, url, kw))

        monkeypatch.setattr("httpx.AsyncClient", Client)
        return calls

    return install


@pytest.fixture
def response():
    """The FakeResponse class, for building responders."""
    return FakeResponse
