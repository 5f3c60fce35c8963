"""REST API for conversation history management."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, col, or_, select

from gerai.core.config import settings
from gerai.core.database import get_session
from gerai.models.conversation import ChatMessage, Conversation

router = APIRouter()
logger = logging.getLogger(__name__)


class ConversationCreate(BaseModel):
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    scope_id: Optional[int] = None


class ConversationUpdate(BaseModel):
    title: Optional[str] = None
    scope_id: Optional[int] = None
    clear_scope: bool = False  # move back to general


def _conversation_dict(c: Conversation) -> dict:
    return {
        "id": c.id,
        "title": c.title,
        "model": c.model,
        "system_prompt": c.system_prompt,
        "scope_id": c.scope_id,
        "last_response_id": c.last_response_id,
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
    }


def _message_dict(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "role": m.role,
        "content": m.content,
        "model": m.model,
        "created_at": m.created_at.isoformat(),
    }


def _messages(session: Session, conversation_id: int) -> list[ChatMessage]:
    return list(session.exec(
        select(ChatMessage)
        .where(ChatMessage.conversation_id == conversation_id)
        .order_by(ChatMessage.created_at, ChatMessage.id)  # type: ignore
    ).all())


@router.get("/")
async def list_conversations(session: Session = Depends(get_session)):
    conversations = session.exec(
        select(Conversation).order_by(Conversation.updated_at.desc())  # type: ignore
    ).all()
    return [_conversation_dict(c) for c in conversations]


@router.post("/")
async def create_conversation(body: ConversationCreate, session: Session = Depends(get_session)):
    conv = Conversation(
        title=settings.default_title,
        model=body.model or settings.default_model,
        system_prompt=body.system_prompt or settings.default_system_prompt,
        scope_id=body.scope_id,
    )
    session.add(conv)
    session.commit()
    session.refresh(conv)
    return _conversation_dict(conv)


@router.get("/search")
async def search_conversations(q: str, session: Session = Depends(get_session)):
    """Find conversations whose title or any message contains the query."""
    pattern = f"%{q}%"
    matching_ids = select(ChatMessage.conversation_id).where(col(ChatMessage.content).like(pattern))
    conversations = session.exec(
        select(Conversation)
        .where(or_(col(Conversation.title).like(pattern), col(Conversation.id).in_(matching_ids)))
        .order_by(Conversation.updated_at.desc())  # type: ignore
    ).all()
    return [_conversation_dict(c) for c in conversations]


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: int, session: Session = Depends(get_session)):
    conv = session.get(Conversation, conversation_id)
    if not conv:
        logger.debug(f"Conversation {conversation_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")

    data = _conversation_dict(conv)
    data["messages"] = [_message_dict(m) for m in _messages(session, conversation_id)]
    return data


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: int, session: Session = Depends(get_session)):
    return [_message_dict(m) for m in _messages(session, conversation_id)]


@router.patch("/{conversation_id}")
async def update_conversation(
    conversation_id: int, body: ConversationUpdate, session: Session = Depends(get_session)
):
    conv = session.get(Conversation, conversation_id)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")

    if body.title is not None:
        if not body.title.strip():
            raise HTTPException(status_code=400, detail="Title cannot be empty")
        conv.title = body.title.strip()
    if body.clear_scope:
        conv.scope_id = None
    elif body.scope_id is not None:
        conv.scope_id = body.scope_id

    conv.updated_at = datetime.now(timezone.utc)
    session.add(conv)
    session.commit()
    session.refresh(conv)
    return _conversation_dict(conv)


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: int, session: Session = Depends(get_session)):
    conv = session.get(Conversation, conversation_id)
    if not conv:
        logger.debug(f"Delete: conversation {conversation_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")

    try:
        for msg in _messages(session, conversation_id):
            session.delete(msg)
        session.delete(conv)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.debug(f"Deleted conversation {conversation_id}")
    return {"status": "deleted"}
