"""Pydantic schemas for process records."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class ProcessAttachmentRead(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    file_name: str
    attachment_type: str
    storage_locator: str
    size_bytes: int
    enriched_text: str | None = None
    created_at: datetime


class ProcessRead(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    name: str
    description: str
    department: str
    owner_id: str
    status: str
    source_intake_id: UUID | None = None
    attachments: list[ProcessAttachmentRead] = []
    created_at: datetime
    updated_at: datetime


class ProcessListItem(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    name: str
    department: str
    status: str
    created_at: datetime
