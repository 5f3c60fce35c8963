import asyncio
import json
import logging
import uuid
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError

from gerai.core.database import engine
from gerai.core.vault import SecretVault
from gerai.services.events import StreamEvent
from gerai.services.extractor import MemoryExtractor
from gerai.services.orchestrator import ConversationOrchestrator
from gerai.services.store import ChatStore
from gerai.services.streams import DuplicateRequestError, StreamRegistry

router = APIRouter()
logger = logging.getLogger(__name__)

_orchestrator: ConversationOrchestrator | None = None


def get_orchestrator() -> ConversationOrchestrator:
    """Process-wide orchestrator; its registry is shared by every connection."""
    global _orchestrator
    if _orchestrator is None:
        store = ChatStore(engine)
        _orchestrator = ConversationOrchestrator(
            store=store,
            registry=StreamRegistry(),
            extractor=MemoryExtractor(store),
            vault=SecretVault(),
        )
    return _orchestrator


class SendFrame(BaseModel):
    request_id: str = Field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")
    content: str
    conversation_id: Optional[int] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    scope_id: Optional[int] = None


@router.websocket("/ws")
async def chat_websocket(
    websocket: WebSocket, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    await websocket.accept()
    send_lock = asyncio.Lock()
    in_flight: dict[str, asyncio.Task] = {}

    async def send_frame(payload: dict) -> None:
        async with send_lock:
            await websocket.send_json(payload)

    async def send_event(event: StreamEvent) -> None:
        await send_frame(event.to_dict())

    async def run_send(frame: SendFrame) -> None:
        try:
            await orchestrator.handle_send(
                frame.request_id,
                frame.content,
                conversation_id=frame.conversation_id,
                model=frame.model,
                system_prompt=frame.system_prompt,
                scope_id=frame.scope_id,
                emit=send_event,
            )
        except DuplicateRequestError as e:
            await send_frame({"type": "rejected", "request_id": frame.request_id, "message": str(e)})
        except Exception:
            # The orchestrator already emitted the error event for this request
            logger.debug(f"Send {frame.request_id} failed", exc_info=True)
        finally:
            if in_flight.get(frame.request_id) is asyncio.current_task():
                del in_flight[frame.request_id]

    try:
        while True:
            raw = await websocket.receive_text()

            # Plain text is a send with a generated request id
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                data = {"type": "send", "content": raw}
            if not isinstance(data, dict):
                data = {"type": "send", "content": raw}

            kind = data.get("type", "send")
            if kind == "cancel":
                request_id = str(data.get("request_id", ""))
                result = orchestrator.cancel(request_id)
                await send_frame({"type": "cancel_result", "request_id": request_id, **asdict(result)})
            elif kind == "send":
                try:
                    frame = SendFrame.model_validate(data)
                except ValidationError as e:
                    await send_frame({"type": "invalid", "message": str(e)})
                    continue
                if frame.request_id in in_flight:
                    await send_frame({
                        "type": "rejected",
                        "request_id": frame.request_id,
                        "message": f"Request {frame.request_id} is already streaming",
                    })
                    continue
                in_flight[frame.request_id] = asyncio.create_task(run_send(frame))
            else:
                await send_frame({"type": "invalid", "message": f"Unknown frame type: {kind}"})

    except WebSocketDisconnect:
        logger.info(f"Chat WebSocket disconnected with {len(in_flight)} request(s) in flight")
    finally:
        for request_id in list(in_flight):
            orchestrator.cancel(request_id)
        pending = list(in_flight.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


@router.post("/cancel/{request_id}")
async def cancel_message(
    request_id: str, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)
):
    result = orchestrator.cancel(request_id)
    if result.message is None:
        return {"success": result.success}
    return {"success": result.success, "message": result.message}
