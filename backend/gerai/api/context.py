"""REST API for memory facts (general and per-scope context)."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from gerai.core.database import get_session
from gerai.models.context import ContextItem
from gerai.services.context import list_general, list_scoped, replace_general, upsert_context

router = APIRouter()
logger = logging.getLogger(__name__)


class ContextCreate(BaseModel):
    content: str
    scope_id: Optional[int] = None


class ContextUpdate(BaseModel):
    content: str
    scope_id: Optional[int] = None


class GeneralContextReplace(BaseModel):
    facts: list[str]


def _item_dict(item: ContextItem) -> dict:
    return {
        "id": item.id,
        "content": item.content,
        "scope_id": item.scope_id,
        "source": item.source,
        "created_at": item.created_at.isoformat(),
        "updated_at": item.updated_at.isoformat(),
    }


@router.get("/")
async def list_all_context(session: Session = Depends(get_session)):
    items = session.exec(select(ContextItem).order_by(ContextItem.created_at, ContextItem.id)).all()  # type: ignore
    return [_item_dict(i) for i in items]


@router.get("/general")
async def get_general_context(session: Session = Depends(get_session)):
    return [_item_dict(i) for i in list_general(session)]


@router.put("/general")
async def update_general_context(body: GeneralContextReplace, session: Session = Depends(get_session)):
    replace_general(session, body.facts)
    return [_item_dict(i) for i in list_general(session)]


@router.get("/scope/{scope_id}")
async def get_scope_context(scope_id: int, session: Session = Depends(get_session)):
    return [_item_dict(i) for i in list_scoped(session, scope_id)]


@router.post("/")
async def create_context_item(body: ContextCreate, session: Session = Depends(get_session)):
    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content cannot be empty")
    item_id = upsert_context(session, content, source="manual", scope_id=body.scope_id)
    return {"id": item_id, "status": "saved"}


@router.patch("/{item_id}")
async def update_context_item(item_id: int, body: ContextUpdate, session: Session = Depends(get_session)):
    item = session.get(ContextItem, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Context item not found")
    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content cannot be empty")

    item.content = content
    item.scope_id = body.scope_id
    item.updated_at = datetime.now(timezone.utc)
    session.add(item)
    session.commit()
    session.refresh(item)
    return _item_dict(item)


@router.delete("/{item_id}")
async def delete_context_item(item_id: int, session: Session = Depends(get_session)):
    item = session.get(ContextItem, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Context item not found")
    session.delete(item)
    session.commit()
    logger.debug(f"Deleted context item {item_id}")
    return {"status": "deleted"}
