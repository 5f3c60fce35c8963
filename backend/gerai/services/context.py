"""Memory facts: assembling them into a turn's input, and storing them."""

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlmodel import Session, select

from gerai.models.context import ContextItem

logger = logging.getLogger(__name__)

GENERAL_LABEL = "General memory:"
SCOPED_LABEL = "Scoped memory:"
USER_LABEL = "User message:"


def assemble(general_facts: Sequence[str], scoped_facts: Sequence[str], user_text: str) -> str:
    """Build the effective input for a turn.

    Without any facts the user text is returned untouched. Otherwise the
    blocks are emitted in fixed order: general, scoped, user message.
    """
    if not general_facts and not scoped_facts:
        return user_text

    blocks = []
    if general_facts:
        blocks.append(GENERAL_LABEL + "\n" + "\n".join(general_facts))
    if scoped_facts:
        blocks.append(SCOPED_LABEL + "\n" + "\n".join(scoped_facts))
    blocks.append(USER_LABEL + "\n" + user_text)
    return "\n\n".join(blocks)


def list_general(session: Session) -> list[ContextItem]:
    return list(session.exec(
        select(ContextItem)
        .where(ContextItem.scope_id == None)  # noqa: E711
        .order_by(ContextItem.created_at, ContextItem.id)  # type: ignore
    ).all())


def list_scoped(session: Session, scope_id: int) -> list[ContextItem]:
    return list(session.exec(
        select(ContextItem)
        .where(ContextItem.scope_id == scope_id)
        .order_by(ContextItem.created_at, ContextItem.id)  # type: ignore
    ).all())


def load_facts(session: Session, scope_id: Optional[int]) -> tuple[list[str], list[str]]:
    """Return (general, scoped) fact texts for a conversation's scope."""
    general = [item.content for item in list_general(session)]
    scoped = [item.content for item in list_scoped(session, scope_id)] if scope_id is not None else []
    return general, scoped


def upsert_context(
    session: Session, content: str, source: str = "manual", scope_id: Optional[int] = None
) -> int:
    """Insert a fact, or refresh the existing row with identical content in the same scope."""
    query = select(ContextItem).where(ContextItem.content == content)
    if scope_id is None:
        query = query.where(ContextItem.scope_id == None)  # noqa: E711
    else:
        query = query.where(ContextItem.scope_id == scope_id)
    existing = session.exec(query).first()

    if existing:
        logger.debug(f"Memory de-duplication: updating context item {existing.id}")
        existing.source = source
        existing.updated_at = datetime.now(timezone.utc)
        session.add(existing)
        session.commit()
        return existing.id  # type: ignore

    item = ContextItem(content=content, source=source, scope_id=scope_id)
    session.add(item)
    session.commit()
    session.refresh(item)
    return item.id  # type: ignore


def replace_general(session: Session, facts: Sequence[str]) -> None:
    """Replace the whole general memory list in one transaction."""
    try:
        for item in list_general(session):
            session.delete(item)
        for content in facts:
            content = content.strip()
            if content:
                session.add(ContextItem(content=content, source="manual"))
        session.commit()
    except Exception:
        session.rollback()
        raise
