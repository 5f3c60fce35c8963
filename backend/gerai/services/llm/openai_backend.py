"""OpenAI Responses API backend with server-side conversation continuation."""

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from gerai.core.config import settings
from gerai.services.llm.base import (
    BackendError,
    BaseModelBackend,
    ChunkCallback,
    StreamRequest,
    StreamResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(120.0, connect=10.0)


def _default_client(api_key: str) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=api_key,
        base_url=settings.openai_base_url or None,
        timeout=DEFAULT_TIMEOUT,
    )


def _event_error_message(event: Any) -> str:
    if event.type == "error":
        return getattr(event, "message", None) or "Stream error"
    error = getattr(getattr(event, "response", None), "error", None)
    return getattr(error, "message", None) or "Response failed"


class OpenAIResponsesBackend(BaseModelBackend):
    def __init__(self, client_factory: Callable[[str], AsyncOpenAI] | None = None):
        self._client_factory = client_factory or _default_client

    def _client(self, credential: Optional[str]) -> AsyncOpenAI:
        if not credential:
            raise BackendError("OpenAI API key not configured")
        return self._client_factory(credential)

    async def stream(
        self, request: StreamRequest, on_chunk: ChunkCallback, cancel: asyncio.Event
    ) -> StreamResult:
        client = self._client(request.credential)
        params: dict[str, Any] = {
            "model": request.model,
            "input": request.input,
            "store": True,
        }
        if request.instructions:
            params["instructions"] = request.instructions
        if request.continuation_id:
            params["previous_response_id"] = request.continuation_id

        logger.info(
            f"OpenAI stream: model={request.model} "
            f"continuation={request.continuation_id or '-'} input_chars={len(request.input)}"
        )

        output_text = ""
        response_id: Optional[str] = None
        try:
            stream = await client.responses.create(stream=True, **params)
            try:
                async for event in stream:
                    if cancel.is_set():
                        logger.info(f"OpenAI stream canceled (response {response_id})")
                        # An unfinished response cannot be continued from
                        return StreamResult(output_text=output_text, aborted=True)

                    if event.type == "response.output_text.delta":
                        output_text += event.delta
                        await on_chunk(event.delta)
                    elif event.type in ("response.created", "response.completed"):
                        response_id = event.response.id
                    elif event.type in ("error", "response.failed"):
                        raise BackendError(_event_error_message(event))
            finally:
                await stream.close()
        except OpenAIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise BackendError(f"Failed to fetch response from OpenAI: {e}") from e
        finally:
            await client.close()

        if cancel.is_set():
            return StreamResult(output_text=output_text, aborted=True)
        return StreamResult(output_text=output_text, continuation_id=response_id)

    async def complete(
        self, credential: Optional[str], input: str, model: str, instructions: Optional[str] = None
    ) -> str:
        client = self._client(credential)
        params: dict[str, Any] = {"model": model, "input": input, "store": False}
        if instructions:
            params["instructions"] = instructions
        try:
            response = await client.responses.create(**params)
        except OpenAIError as e:
            raise BackendError(f"OpenAI request failed: {e}") from e
        finally:
            await client.close()
        return response.output_text or ""

    async def list_models(self, credential: Optional[str]) -> list[str]:
        client = self._client(credential)
        try:
            page = await client.models.list()
        except OpenAIError as e:
            raise BackendError(f"Failed to list OpenAI models: {e}") from e
        finally:
            await client.close()
        return sorted(m.id for m in page.data)
