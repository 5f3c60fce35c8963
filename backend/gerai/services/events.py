"""Push events sent to the UI for each request id."""

from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional, Union


@dataclass
class ChunkEvent:
    request_id: str
    delta: str

    type = "chunk"

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass
class CompleteEvent:
    request_id: str
    conversation_id: int
    content: str
    continuation_id: Optional[str] = None
    aborted: bool = False

    type = "complete"

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass
class ErrorEvent:
    request_id: str
    conversation_id: Optional[int]
    message: str

    type = "error"

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


StreamEvent = Union[ChunkEvent, CompleteEvent, ErrorEvent]
EventSink = Callable[[StreamEvent], Awaitable[None]]
