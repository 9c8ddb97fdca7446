"""Pydantic schemas for intake sessions."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from process_intake.db.enums import DEFAULT_QUEUE_PRIORITY

PriorityLiteral = Literal["Low", "Medium", "High", "Critical"]


# ============================================================================
# Request Schemas
# ============================================================================


class IntakeStart(BaseModel):
    """Request to start a new intake conversation."""

    owner_id: str | None = Field(None, max_length=255)
    queue_priority: PriorityLiteral | None = None


class ChatMessageRequest(BaseModel):
    """One user turn. An empty message skips the optional question being asked."""

    message: str = Field("", max_length=4000)


class IntakeSubmit(BaseModel):
    """Final meta fields. Empty optional values keep what the chat collected."""

    title: str = Field(..., min_length=1, max_length=200)
    department: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=2000)
    location: str | None = Field(None, max_length=200)
    business_unit: str | None = Field(None, max_length=200)
    contact_email: str | None = Field(None, max_length=320)
    queue_priority: PriorityLiteral = DEFAULT_QUEUE_PRIORITY.value

    @field_validator("title", "department")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class EnrichedTextUpdate(BaseModel):
    text: str = Field(..., min_length=1)


# ============================================================================
# Response Schemas
# ============================================================================


class ChatTurnRead(BaseModel):
    role: Literal["user", "assistant"]
    text: str
    timestamp: datetime


class IntakeFieldsRead(BaseModel):
    title: str | None = None
    department: str | None = None
    description: str | None = None
    location: str | None = None
    business_unit: str | None = None
    contact_email: str | None = None
    queue_priority: str | None = None


class AttachmentRead(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    file_name: str
    attachment_type: str
    content_type: str
    size_bytes: int
    checksum_sha256: str
    has_enriched_text: bool
    created_at: datetime


class AnalysisRead(BaseModel):
    brief: str
    checkpoints: list[str]
    actionables: list[str]
    analysed_at: datetime | None = None


class IntakeRead(BaseModel):
    """Full intake session view."""

    id: UUID
    owner_id: str
    status: str
    fields: IntakeFieldsRead
    skipped_slots: list[str]
    transcript: list[ChatTurnRead]
    attachments: list[AttachmentRead]
    analysis: AnalysisRead | None = None
    promoted_process_id: UUID | None = None
    promoted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class IntakeListItem(BaseModel):
    """Compact intake row for list views."""

    id: UUID
    status: str
    title: str | None
    department: str | None
    queue_priority: str
    attachment_count: int
    created_at: datetime
    updated_at: datetime


class ChatResponse(BaseModel):
    assistant_message: str
    fields: IntakeFieldsRead
    is_complete: bool
    intake: IntakeRead
