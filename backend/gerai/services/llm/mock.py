"""Deterministic offline backend for UI and integration testing."""

import asyncio
import logging
import time
from typing import Optional

from gerai.core.config import settings
from gerai.services.llm.base import BaseModelBackend, ChunkCallback, StreamRequest, StreamResult

logger = logging.getLogger(__name__)

MOCK_SECTIONS = [
    'You said: "{input}"\n\nThis is a **mock response** for testing streaming, scrolling and cancellation.',
    "### Streaming\n\nEach word arrives as its own delta at a fixed pace, so partial output "
    "can be inspected and canceled mid-way.",
    "### Formatting\n\n- **Feature A**: incremental rendering.\n- **Feature B**: cancel button.\n"
    "- **Feature C**: conversation titles derived from the first message.",
    "How else can I help you today?",
]


class MockBackend(BaseModelBackend):
    """Streams a canned reply word by word. Needs no credential or network."""

    requires_credential = False
    supports_memory_extraction = False

    def __init__(self, chunk_interval: float | None = None, reply: str | None = None):
        self.chunk_interval = settings.mock_chunk_interval if chunk_interval is None else chunk_interval
        self._reply = reply

    def render_reply(self, user_input: str) -> str:
        if self._reply is not None:
            return self._reply
        return "\n\n".join(MOCK_SECTIONS).format(input=user_input)

    async def stream(
        self, request: StreamRequest, on_chunk: ChunkCallback, cancel: asyncio.Event
    ) -> StreamResult:
        words = self.render_reply(request.input).split(" ")
        response_id = f"mock_{int(time.time() * 1000)}"
        accumulated = ""

        for index, word in enumerate(words):
            await asyncio.sleep(self.chunk_interval)
            if cancel.is_set():
                logger.debug(f"Mock stream {response_id} canceled after {index} chunks")
                return StreamResult(output_text=accumulated, continuation_id=response_id, aborted=True)

            chunk = word if index == len(words) - 1 else word + " "
            accumulated += chunk
            await on_chunk(chunk)

        return StreamResult(output_text=accumulated, continuation_id=response_id)

    async def complete(
        self, credential: Optional[str], input: str, model: str, instructions: Optional[str] = None
    ) -> str:
        return self.render_reply(input)

    async def list_models(self, credential: Optional[str]) -> list[str]:
        return ["mock"]
