"""Attachment validation and type inference for intake uploads."""

import hashlib
import os

from process_intake.core.config import settings
from process_intake.db.enums import AttachmentType


MAX_FILE_NAME_LENGTH = 500

EXTENSION_TYPES: dict[str, AttachmentType] = {
    ".pdf": AttachmentType.PDF,
    ".mp4": AttachmentType.VIDEO,
    ".avi": AttachmentType.VIDEO,
    ".mov": AttachmentType.VIDEO,
    ".mkv": AttachmentType.VIDEO,
    ".webm": AttachmentType.VIDEO,
    ".mp3": AttachmentType.AUDIO,
    ".wav": AttachmentType.AUDIO,
    ".m4a": AttachmentType.AUDIO,
    ".ogg": AttachmentType.AUDIO,
    ".flac": AttachmentType.AUDIO,
    ".txt": AttachmentType.TRANSCRIPTION,
    ".vtt": AttachmentType.TRANSCRIPTION,
    ".srt": AttachmentType.TRANSCRIPTION,
    ".xlsx": AttachmentType.SPREADSHEET,
    ".xls": AttachmentType.SPREADSHEET,
    ".csv": AttachmentType.SPREADSHEET,
}


def calculate_checksum(data: bytes) -> str:
    """Calculate SHA-256 checksum of file content."""
    return hashlib.sha256(data).hexdigest()


def infer_attachment_type(file_name: str) -> AttachmentType:
    """Guess the attachment type from the file extension."""
    ext = os.path.splitext(file_name)[1].lower()
    return EXTENSION_TYPES.get(ext, AttachmentType.OTHER)


def resolve_attachment_type(declared: str | None, file_name: str) -> AttachmentType:
    """
    Parse a declared type (case-insensitive) or infer it when absent.

    Raises ValueError for a declared type that is not a known AttachmentType.
    """
    if declared is None or not declared.strip():
        return infer_attachment_type(file_name)
    try:
        return AttachmentType(declared.strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in AttachmentType)
        raise ValueError(f"Unknown attachment type '{declared}' (expected one of: {allowed})")


def validate_file(file_name: str, file_size: int) -> tuple[bool, str | None]:
    """
    Validate file name and size limits.

    Returns (is_valid, error_message)
    """
    if not file_name or not file_name.strip():
        return False, "File name is required"
    if len(file_name) > MAX_FILE_NAME_LENGTH:
        return False, f"File name exceeds {MAX_FILE_NAME_LENGTH} characters"
    if file_size <= 0:
        return False, "File is empty"
    if file_size > settings.MAX_ATTACHMENT_SIZE_BYTES:
        max_mb = settings.MAX_ATTACHMENT_SIZE_BYTES / (1024 * 1024)
        return False, f"File size exceeds {max_mb:.0f} MB limit"
    return True, None
