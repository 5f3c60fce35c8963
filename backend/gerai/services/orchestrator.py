"""Conversation orchestration: one user turn from persistence through streaming to memory."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi.concurrency import run_in_threadpool

from gerai.core.config import Settings, settings
from gerai.core.vault import SecretVault, VaultError
from gerai.models.conversation import Conversation
from gerai.services.context import assemble
from gerai.services.events import ChunkEvent, CompleteEvent, ErrorEvent, EventSink, StreamEvent
from gerai.services.extractor import MemoryExtractor
from gerai.services.llm import get_backend
from gerai.services.llm.base import BaseModelBackend, ConfigurationError, StreamRequest, StreamResult
from gerai.services.store import ChatStore
from gerai.services.streams import DuplicateRequestError, StreamRegistry

logger = logging.getLogger(__name__)

CANCEL_MARKER = "[Response canceled]"


@dataclass
class SendResult:
    request_id: str
    conversation_id: int
    aborted: bool = False
    error: Optional[str] = None


@dataclass
class CancelResult:
    success: bool
    message: Optional[str] = None


@dataclass
class _Turn:
    conversation: Conversation
    backend: BaseModelBackend
    credential: Optional[str]
    request: StreamRequest


def derive_title(text: str, max_length: int) -> str:
    return text[:max_length] + ("..." if len(text) > max_length else "")


def assistant_content(result: StreamResult) -> str:
    """Text to store for the assistant turn. Canceled turns carry a marker."""
    if not result.aborted:
        return result.output_text
    if result.output_text:
        return f"{result.output_text}\n\n{CANCEL_MARKER}"
    return CANCEL_MARKER


class ConversationOrchestrator:
    def __init__(
        self,
        store: ChatStore,
        registry: StreamRegistry,
        extractor: MemoryExtractor,
        vault: SecretVault,
        emit: Optional[EventSink] = None,
        backend_factory: Callable[[str], BaseModelBackend] = get_backend,
        config: Settings = settings,
    ):
        self.store = store
        self.registry = registry
        self.extractor = extractor
        self.vault = vault
        self.default_sink = emit
        self.backend_factory = backend_factory
        self.config = config

    async def handle_send(
        self,
        request_id: str,
        text: str,
        conversation_id: Optional[int] = None,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        scope_id: Optional[int] = None,
        emit: Optional[EventSink] = None,
    ) -> SendResult:
        """Run one user turn.

        Failures before streaming starts emit an error event and propagate.
        Failures while streaming emit an error event and are reported in the
        returned SendResult. Cancellation completes normally with aborted=True.
        Events go to ``emit``, or to the sink given at construction.
        """
        sink = emit or self.default_sink
        if request_id in self.registry:
            raise DuplicateRequestError(f"Request {request_id} is already streaming")
        logger.info(f"Send request {request_id} (conversation {conversation_id or 'new'})")

        try:
            if not text.strip():
                raise ValueError("Message text is empty")
            conv = await run_in_threadpool(
                self._open_conversation, conversation_id, model, system_prompt, scope_id
            )
            conversation_id = conv.id
            turn = await run_in_threadpool(self._prepare_turn, conv, text)
        except Exception as e:
            logger.exception(f"Request {request_id} failed before streaming")
            await self._emit(sink, ErrorEvent(request_id, conversation_id, str(e) or "Error processing message"))
            raise

        cancel = asyncio.Event()
        self.registry.register(request_id, cancel)

        deadline = None
        if self.config.stream_timeout:
            deadline = asyncio.get_running_loop().call_later(self.config.stream_timeout, cancel.set)

        async def on_chunk(delta: str) -> None:
            if not cancel.is_set():
                await self._emit(sink, ChunkEvent(request_id, delta))

        try:
            result = await turn.backend.stream(turn.request, on_chunk, cancel)
        except Exception as e:
            logger.exception(f"Streaming failed for request {request_id}")
            message = str(e) or "Error processing message"
            await self._emit(sink, ErrorEvent(request_id, conv.id, message))
            return SendResult(request_id, conv.id, aborted=False, error=message)  # type: ignore
        finally:
            if deadline:
                deadline.cancel()
            self.registry.remove(request_id, cancel)

        try:
            content = await run_in_threadpool(self._record_result, conv, turn, text, result)
        except Exception as e:
            logger.exception(f"Failed to store the result of request {request_id}")
            await self._emit(sink, ErrorEvent(request_id, conv.id, str(e) or "Error saving response"))
            raise

        await self._emit(sink, CompleteEvent(
            request_id=request_id,
            conversation_id=conv.id,  # type: ignore
            content=content,
            continuation_id=result.continuation_id,
            aborted=result.aborted,
        ))
        logger.info(f"Request {request_id} finished (aborted={result.aborted}, chars={len(result.output_text)})")

        if self._should_extract(conv, turn, result):
            self.extractor.spawn(turn.backend, turn.credential, conv.model, text, conv.scope_id)

        return SendResult(request_id, conv.id, aborted=result.aborted)  # type: ignore

    def cancel(self, request_id: str) -> CancelResult:
        handle = self.registry.lookup(request_id)
        if handle is None:
            return CancelResult(success=False, message="Request not found")

        logger.info(f"Cancelling stream {request_id}")
        handle.set()
        self.registry.remove(request_id, handle)
        return CancelResult(success=True)

    def _open_conversation(
        self,
        conversation_id: Optional[int],
        model: Optional[str],
        system_prompt: Optional[str],
        scope_id: Optional[int],
    ) -> Conversation:
        if conversation_id is None:
            conv = self.store.create_conversation(
                model=model or self.config.default_model,
                system_prompt=system_prompt or self.config.default_system_prompt,
                title=self.config.default_title,
                scope_id=scope_id,
            )
            logger.debug(f"Created conversation {conv.id}")
            return conv
        if model or system_prompt:
            return self.store.update_conversation(
                conversation_id, model=model or None, system_prompt=system_prompt or None
            )
        return self.store.get_conversation(conversation_id)

    def _prepare_turn(self, conv: Conversation, text: str) -> _Turn:
        # Stored before the backend is contacted
        user_message = self.store.add_message(conv.id, "user", text, model=conv.model)  # type: ignore

        backend, credential = self._resolve_backend(conv.model)

        # A continuation already carries the instructions
        instructions = conv.system_prompt if not conv.last_response_id else None

        general, scoped = self.store.load_facts(conv.scope_id)
        request = StreamRequest(
            input=assemble(general, scoped, text),
            model=conv.model,
            credential=credential,
            instructions=instructions,
            continuation_id=conv.last_response_id,
        )
        if backend.needs_history:
            request.history = self.store.load_history(conv.id, user_message.id)  # type: ignore
        return _Turn(conversation=conv, backend=backend, credential=credential, request=request)

    def _resolve_backend(self, model_id: str) -> tuple[BaseModelBackend, Optional[str]]:
        route = self.store.resolve_model(model_id)
        try:
            backend = self.backend_factory(route.provider_id)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        if not backend.requires_credential:
            return backend, None
        if not route.encrypted_api_key:
            raise ConfigurationError(f"No API key configured for provider {route.provider_id}")
        try:
            return backend, self.vault.decrypt(route.encrypted_api_key)
        except VaultError as e:
            raise ConfigurationError(f"API key for provider {route.provider_id} is unreadable") from e

    def _record_result(self, conv: Conversation, turn: _Turn, text: str, result: StreamResult) -> str:
        content = assistant_content(result)
        if content:
            self.store.add_message(conv.id, "assistant", content, model=conv.model)  # type: ignore

        if result.continuation_id:
            logger.debug(f"Conversation {conv.id} continues from {result.continuation_id}")
            self.store.update_conversation(conv.id, last_response_id=result.continuation_id)  # type: ignore

        if conv.title == self.config.default_title:
            if self.store.count_messages(conv.id) <= self.config.title_message_limit:  # type: ignore
                title = derive_title(text, self.config.title_max_length)
                self.store.update_conversation(conv.id, title=title)  # type: ignore
        return content

    def _should_extract(self, conv: Conversation, turn: _Turn, result: StreamResult) -> bool:
        return (
            self.config.memory_extraction_enabled
            and not result.aborted
            and bool(result.output_text)
            and turn.backend.supports_memory_extraction
            and conv.scope_id is not None
        )

    async def _emit(self, sink: Optional[EventSink], event: StreamEvent) -> None:
        if sink is None:
            return
        try:
            await sink(event)
        except Exception:
            # UI may have disconnected
            logger.warning(f"Could not deliver {event.type} event for {event.request_id}", exc_info=True)
