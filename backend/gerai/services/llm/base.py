"""Model backend interface. Every backend variant implements this."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

ChunkCallback = Callable[[str], Awaitable[None]]


class BackendError(Exception):
    """The backend failed: bad credential, network error, or a stream error event."""


class ConfigurationError(Exception):
    """The selected model cannot be used (unknown model, inactive provider, missing key)."""


@dataclass
class HistoryMessage:
    role: str  # "user" | "assistant"
    content: str


@dataclass
class StreamRequest:
    input: str
    model: str
    credential: Optional[str] = None
    instructions: Optional[str] = None
    continuation_id: Optional[str] = None
    # Prior turns, only filled in for backends with needs_history set
    history: list[HistoryMessage] = field(default_factory=list)


@dataclass
class StreamResult:
    output_text: str
    continuation_id: Optional[str] = None
    aborted: bool = False


class BaseModelBackend(ABC):
    requires_credential: bool = True
    supports_memory_extraction: bool = True
    needs_history: bool = False

    @abstractmethod
    async def stream(
        self, request: StreamRequest, on_chunk: ChunkCallback, cancel: asyncio.Event
    ) -> StreamResult:
        """Stream a response, awaiting on_chunk for every text delta in order.

        Resolves exactly once. Cooperative cancellation (cancel set) is not an
        error: the result carries aborted=True and the text accumulated so far.
        Raises BackendError for failures before or during the stream.
        """
        ...

    @abstractmethod
    async def complete(
        self, credential: Optional[str], input: str, model: str, instructions: Optional[str] = None
    ) -> str:
        """One-shot, non-streaming request. Returns the output text."""
        ...

    @abstractmethod
    async def list_models(self, credential: Optional[str]) -> list[str]:
        """Return the model ids the remote service exposes."""
        ...
