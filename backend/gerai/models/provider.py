"""Model providers and the models they expose."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class ModelProvider(SQLModel, table=True):
    id: str = Field(primary_key=True)  # "openai" | "gemini" | "mock"
    name: str
    api_key: Optional[str] = None  # vault-encrypted
    is_active: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ProviderModel(SQLModel, table=True):
    id: str = Field(primary_key=True)
    provider_id: str = Field(foreign_key="modelprovider.id", index=True)
    name: str
    is_enabled: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
