"""Enum definitions for application constants."""

from process_intake.db.enums.defaults import (
    DEFAULT_PROCESS_DEPARTMENT,
    DEFAULT_INTAKE_STATUS,
    DEFAULT_PROCESS_STATUS,
    DEFAULT_QUEUE_PRIORITY,
)
from process_intake.db.enums.intake import (
    AttachmentType,
    ChatRole,
    IntakeStatus,
    QueuePriority,
)
from process_intake.db.enums.processes import ProcessStatus

__all__ = [
    "AttachmentType",
    "ChatRole",
    "DEFAULT_PROCESS_DEPARTMENT",
    "DEFAULT_INTAKE_STATUS",
    "DEFAULT_PROCESS_STATUS",
    "DEFAULT_QUEUE_PRIORITY",
    "IntakeStatus",
    "ProcessStatus",
    "QueuePriority",
]
