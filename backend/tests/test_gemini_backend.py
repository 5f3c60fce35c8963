"""Tests for the Gemini backend against a fake google-genai client."""

import asyncio
from types import SimpleNamespace

import pytest
from google.genai import errors

from gerai.services.llm.base import BackendError, HistoryMessage, StreamRequest
from gerai.services.llm.gemini import GeminiBackend


async def _aiter(items):
    for item in items:
        yield item


class _FakeModels:
    def __init__(self, texts=(), error=None):
        self._texts = list(texts)
        self._error = error
        self.calls = []

    async def generate_content_stream(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return _aiter([SimpleNamespace(text=t) for t in self._texts])

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(text="".join(self._texts))


def _backend(models):
    client = SimpleNamespace(aio=SimpleNamespace(models=models))
    return GeminiBackend(client_factory=lambda api_key: client)


@pytest.mark.asyncio
async def test_stream_replays_history_and_sends_instructions():
    models = _FakeModels(["Hi", "", " there"])
    backend = _backend(models)
    request = StreamRequest(
        input="next question",
        model="gemini-2.0-flash",
        credential="key",
        instructions="Be brief.",
        history=[HistoryMessage("user", "q1"), HistoryMessage("assistant", "a1")],
    )
    chunks = []

    async def on_chunk(delta):
        chunks.append(delta)

    result = await backend.stream(request, on_chunk, asyncio.Event())

    assert chunks == ["Hi", " there"]
    assert result.output_text == "Hi there"
    assert result.continuation_id is None
    call = models.calls[0]
    assert [c["role"] for c in call["contents"]] == ["user", "model", "user"]
    assert call["contents"][-1]["parts"][0]["text"] == "next question"
    assert call["config"].system_instruction == "Be brief."


@pytest.mark.asyncio
async def test_stream_cancel_returns_partial():
    backend = _backend(_FakeModels(["a", "b", "c"]))
    cancel = asyncio.Event()

    async def on_chunk(delta):
        cancel.set()

    result = await backend.stream(StreamRequest(input="x", model="m", credential="key"), on_chunk, cancel)

    assert result.aborted is True
    assert result.output_text == "a"


@pytest.mark.asyncio
async def test_api_error_is_wrapped():
    error = errors.APIError(500, {"error": {"message": "boom", "status": "INTERNAL"}})
    backend = _backend(_FakeModels(error=error))

    async def on_chunk(delta):
        pass

    with pytest.raises(BackendError):
        await backend.stream(StreamRequest(input="x", model="m", credential="key"), on_chunk, asyncio.Event())


@pytest.mark.asyncio
async def test_missing_key():
    backend = _backend(_FakeModels())

    with pytest.raises(BackendError, match="API key not configured"):
        await backend.complete(None, "x", "m")
