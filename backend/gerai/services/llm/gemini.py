"""Google Gemini backend. Gemini keeps no server-side thread, so history is replayed."""

import asyncio
import logging
from typing import Callable, Optional

from google import genai
from google.genai import errors, types

from gerai.services.llm.base import (
    BackendError,
    BaseModelBackend,
    ChunkCallback,
    HistoryMessage,
    StreamRequest,
    StreamResult,
)

logger = logging.getLogger(__name__)


def _to_gemini_contents(history: list[HistoryMessage], user_input: str) -> list[dict]:
    contents = []
    for msg in history:
        role = "model" if msg.role == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": msg.content}]})
    contents.append({"role": "user", "parts": [{"text": user_input}]})
    return contents


class GeminiBackend(BaseModelBackend):
    needs_history = True

    def __init__(self, client_factory: Callable[[str], genai.Client] | None = None):
        self._client_factory = client_factory or (lambda api_key: genai.Client(api_key=api_key))

    def _client(self, credential: Optional[str]) -> genai.Client:
        if not credential:
            raise BackendError("Gemini API key not configured")
        return self._client_factory(credential)

    async def stream(
        self, request: StreamRequest, on_chunk: ChunkCallback, cancel: asyncio.Event
    ) -> StreamResult:
        client = self._client(request.credential)
        config = types.GenerateContentConfig(system_instruction=request.instructions)
        contents = _to_gemini_contents(request.history, request.input)
        logger.info(f"Gemini stream: model={request.model} messages={len(contents)}")

        output_text = ""
        try:
            response = await client.aio.models.generate_content_stream(
                model=request.model,
                contents=contents,
                config=config,
            )
            async for chunk in response:
                if cancel.is_set():
                    return StreamResult(output_text=output_text, aborted=True)
                if chunk.text:
                    output_text += chunk.text
                    await on_chunk(chunk.text)
        except errors.APIError as e:
            logger.error(f"Gemini API error: {e}")
            raise BackendError(f"Failed to fetch response from Gemini: {e}") from e

        return StreamResult(output_text=output_text, aborted=cancel.is_set())

    async def complete(
        self, credential: Optional[str], input: str, model: str, instructions: Optional[str] = None
    ) -> str:
        client = self._client(credential)
        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=input,
                config=types.GenerateContentConfig(system_instruction=instructions),
            )
        except errors.APIError as e:
            raise BackendError(f"Gemini request failed: {e}") from e
        return response.text or ""

    async def list_models(self, credential: Optional[str]) -> list[str]:
        client = self._client(credential)
        try:
            pager = await client.aio.models.list()
            names = [m.name async for m in pager if m.name]
        except errors.APIError as e:
            raise BackendError(f"Failed to list Gemini models: {e}") from e
        return sorted(name.removeprefix("models/") for name in names)
