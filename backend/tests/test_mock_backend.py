"""Tests for the offline mock backend."""

import asyncio

import pytest

from gerai.services.llm.base import StreamRequest
from gerai.services.llm.mock import MockBackend


@pytest.mark.asyncio
async def test_streams_word_by_word():
    backend = MockBackend(chunk_interval=0, reply="one two three")
    chunks = []

    async def on_chunk(delta):
        chunks.append(delta)

    result = await backend.stream(StreamRequest(input="hi", model="mock"), on_chunk, asyncio.Event())

    assert chunks == ["one ", "two ", "three"]
    assert result.output_text == "one two three"
    assert result.aborted is False
    assert result.continuation_id.startswith("mock_")


@pytest.mark.asyncio
async def test_cancel_stops_at_next_chunk():
    backend = MockBackend(chunk_interval=0, reply="one two three four")
    cancel = asyncio.Event()
    chunks = []

    async def on_chunk(delta):
        chunks.append(delta)
        if len(chunks) == 2:
            cancel.set()

    result = await backend.stream(StreamRequest(input="hi", model="mock"), on_chunk, cancel)

    assert result.aborted is True
    assert result.output_text == "one two "
    assert chunks == ["one ", "two "]
    assert result.continuation_id is not None


@pytest.mark.asyncio
async def test_default_reply_echoes_input():
    backend = MockBackend(chunk_interval=0)

    text = await backend.complete(None, "ping", "mock")

    assert text.startswith('You said: "ping"')


def test_mock_needs_no_credential_and_skips_memory():
    backend = MockBackend()
    assert backend.requires_credential is False
    assert backend.supports_memory_extraction is False
