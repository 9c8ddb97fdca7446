"""Intake-related enums."""

from enum import Enum


class IntakeStatus(str, Enum):
    """
    Lifecycle of an intake session.

    draft → submitted → analysed → promoted (linear, terminal at promoted)
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    ANALYSED = "analysed"
    PROMOTED = "promoted"


class AttachmentType(str, Enum):
    """Declared kind of an uploaded supporting file."""

    VIDEO = "video"
    PDF = "pdf"
    AUDIO = "audio"
    TRANSCRIPTION = "transcription"
    SPREADSHEET = "spreadsheet"
    OTHER = "other"


class QueuePriority(str, Enum):
    """Urgency of an intake in the review queue."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
