"""Data-access helpers used by the orchestrator. Each call is its own unit of work."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from gerai.models.conversation import ChatMessage, Conversation
from gerai.models.provider import ModelProvider, ProviderModel
from gerai.services.context import load_facts, upsert_context
from gerai.services.llm.base import ConfigurationError, HistoryMessage

logger = logging.getLogger(__name__)


class ConversationNotFound(LookupError):
    pass


@dataclass
class ModelRoute:
    """Which provider serves a model, and its still-encrypted credential."""

    model_id: str
    provider_id: str
    encrypted_api_key: Optional[str]


class ChatStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        # One unit of work at a time on the shared SQLite connection
        self._lock = threading.Lock()

    def create_conversation(
        self, model: str, system_prompt: str, title: str, scope_id: Optional[int] = None
    ) -> Conversation:
        with self._lock, Session(self.engine) as session:
            conv = Conversation(title=title, model=model, system_prompt=system_prompt, scope_id=scope_id)
            session.add(conv)
            session.commit()
            session.refresh(conv)
            return conv

    def get_conversation(self, conversation_id: int) -> Conversation:
        with self._lock, Session(self.engine) as session:
            conv = session.get(Conversation, conversation_id)
            if not conv:
                raise ConversationNotFound(f"Conversation {conversation_id} not found")
            return conv

    def update_conversation(
        self,
        conversation_id: int,
        *,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        title: Optional[str] = None,
        last_response_id: Optional[str] = None,
    ) -> Conversation:
        """Set whichever fields are given and bump updated_at."""
        with self._lock, Session(self.engine) as session:
            conv = session.get(Conversation, conversation_id)
            if not conv:
                raise ConversationNotFound(f"Conversation {conversation_id} not found")
            if model is not None:
                conv.model = model
            if system_prompt is not None:
                conv.system_prompt = system_prompt
            if title is not None:
                conv.title = title
            if last_response_id is not None:
                conv.last_response_id = last_response_id
            conv.updated_at = datetime.now(timezone.utc)
            session.add(conv)
            session.commit()
            session.refresh(conv)
            return conv

    def add_message(
        self, conversation_id: int, role: str, content: str, model: Optional[str] = None
    ) -> ChatMessage:
        with self._lock, Session(self.engine) as session:
            msg = ChatMessage(conversation_id=conversation_id, role=role, content=content, model=model)
            session.add(msg)
            session.commit()
            session.refresh(msg)
            return msg

    def count_messages(self, conversation_id: int) -> int:
        with self._lock, Session(self.engine) as session:
            return session.exec(
                select(func.count()).select_from(ChatMessage).where(ChatMessage.conversation_id == conversation_id)
            ).one()

    def load_history(self, conversation_id: int, before_message_id: int) -> list[HistoryMessage]:
        """Messages of a conversation written before the given message, oldest first."""
        with self._lock, Session(self.engine) as session:
            messages = session.exec(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .where(ChatMessage.id < before_message_id)
                .order_by(ChatMessage.id)  # type: ignore
            ).all()
            return [HistoryMessage(role=m.role, content=m.content) for m in messages]

    def load_facts(self, scope_id: Optional[int]) -> tuple[list[str], list[str]]:
        with self._lock, Session(self.engine) as session:
            return load_facts(session, scope_id)

    def upsert_fact(self, content: str, source: str, scope_id: Optional[int]) -> int:
        with self._lock, Session(self.engine) as session:
            return upsert_context(session, content, source=source, scope_id=scope_id)

    def resolve_model(self, model_id: str) -> ModelRoute:
        with self._lock, Session(self.engine) as session:
            model = session.get(ProviderModel, model_id)
            if not model:
                raise ConfigurationError(f"Unknown model: {model_id}")
            if not model.is_enabled:
                raise ConfigurationError(f"Model {model_id} is disabled")
            provider = session.get(ModelProvider, model.provider_id)
            if not provider or not provider.is_active:
                raise ConfigurationError(f"Provider {model.provider_id} is not active")
            return ModelRoute(
                model_id=model_id,
                provider_id=provider.id,
                encrypted_api_key=provider.api_key,
            )
