"""Process record enums."""

from enum import Enum


class ProcessStatus(str, Enum):
    """Status of a process record. Promotion creates every record as DRAFT."""

    DRAFT = "draft"
