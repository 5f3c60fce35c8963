"""SQLModel tables. Importing this package registers every table."""

from gerai.models.context import ContextItem
from gerai.models.conversation import ChatMessage, Conversation
from gerai.models.provider import ModelProvider, ProviderModel

__all__ = ["ChatMessage", "ContextItem", "Conversation", "ModelProvider", "ProviderModel"]
