"""Memory facts injected into every turn."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class ContextItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    content: str
    scope_id: Optional[int] = Field(default=None, index=True)  # None = general memory
    source: str = Field(default="manual")  # "manual" | "ai"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
