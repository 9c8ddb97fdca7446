"""SQLAlchemy ORM models."""

from process_intake.db.models.intake import IntakeAttachment, IntakeSession
from process_intake.db.models.processes import Process, ProcessAttachment

__all__ = [
    "IntakeAttachment",
    "IntakeSession",
    "Process",
    "ProcessAttachment",
]
