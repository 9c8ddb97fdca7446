"""Centralized defaults for enums."""

from process_intake.db.enums.intake import IntakeStatus, QueuePriority
from process_intake.db.enums.processes import ProcessStatus


DEFAULT_INTAKE_STATUS: IntakeStatus = IntakeStatus.DRAFT
DEFAULT_QUEUE_PRIORITY: QueuePriority = QueuePriority.MEDIUM
DEFAULT_PROCESS_STATUS: ProcessStatus = ProcessStatus.DRAFT
# Department used when an intake reaches promotion without one
DEFAULT_PROCESS_DEPARTMENT = "General"
