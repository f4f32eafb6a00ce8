"""Client intake schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ClientCreate(BaseModel):
    """Intake submission: values keyed by form field name."""
    values: dict[str, Any] = Field(default_factory=dict)


class ClientRead(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    data: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


class ClientListResponse(BaseModel):
    items: list[ClientRead]
    total: int
    page: int
    per_page: int
    pages: int
