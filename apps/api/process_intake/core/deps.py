"""FastAPI dependencies for database access, caller identity, and backends."""

from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from process_intake.db.session import SessionLocal
from process_intake.services import attachment_storage, intake_chat_service
from process_intake.services.attachment_storage import AttachmentStorage
from process_intake.services.intake_chat_service import ChatBackendError, IntakeChatBackend

ANONYMOUS_OWNER = "anonymous"
OWNER_HEADER = "X-Owner-Id"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_owner_header(
    x_owner_id: str | None = Header(None, alias=OWNER_HEADER, max_length=255),
) -> str | None:
    """Caller identity as passed by the fronting gateway (no auth in this service)."""
    if x_owner_id and x_owner_id.strip():
        return x_owner_id.strip()
    return None


def resolve_owner(header_owner: str | None, body_owner: str | None = None) -> str:
    """Header wins over body; neither means anonymous."""
    if header_owner:
        return header_owner
    if body_owner and body_owner.strip():
        return body_owner.strip()
    return ANONYMOUS_OWNER


def get_chat_backend() -> IntakeChatBackend:
    try:
        return intake_chat_service.get_chat_backend()
    except ChatBackendError as e:
        raise HTTPException(status_code=503, detail=str(e))


def get_attachment_storage() -> AttachmentStorage:
    return attachment_storage.get_attachment_storage()
