"""Intake session lifecycle: conversation, submit, attachments, analysis, promotion.

Every mutating operation:
- runs under the per-session lock (one writer per intake at a time),
- finishes any backend round trip before touching the session,
- re-reads the row with a lock before writing, so other processes sharing
  the database (CLI, further workers) cannot be overwritten,
- commits once on success and rolls back on failure.

The in-process lock does not reach other processes. Across processes the
row lock plus IntakeSession.version (checked on every UPDATE) reject a
write based on a stale read with InvalidIntakeStateError.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from process_intake.core.async_utils import BackendGate
from process_intake.core.config import settings
from process_intake.core.locks import intake_locks
from process_intake.core.structured_logging import build_log_context
from process_intake.db.enums import (
    DEFAULT_PROCESS_DEPARTMENT,
    ChatRole,
    IntakeStatus,
    QueuePriority,
)
from process_intake.db.models import IntakeAttachment, IntakeSession, Process, ProcessAttachment
from process_intake.services import attachment_service
from process_intake.services.attachment_storage import AttachmentStorage, AttachmentStorageError
from process_intake.services.intake_chat_service import (
    SLOT_MAX_LENGTHS,
    SLOT_ORDER,
    AnalysisResult,
    ChatBackendError,
    ChatTurn,
    ExtractionResult,
    IntakeChatBackend,
    IntakeFields,
    merge_fields,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

OPENING_USER_MESSAGE = "Hello, I'd like to submit a new process for review."
UNTITLED_PROCESS_NAME = "Untitled process"

_ai_gate = BackendGate(settings.AI_MAX_CONCURRENCY, settings.AI_TIMEOUT_SECONDS)
_storage_gate = BackendGate(settings.STORAGE_MAX_CONCURRENCY, settings.STORAGE_TIMEOUT_SECONDS)


class IntakeServiceError(Exception):
    """Base exception for intake service errors."""

    pass


class IntakeNotFoundError(IntakeServiceError):
    """Intake session or attachment not found."""

    pass


class InvalidIntakeStateError(IntakeServiceError):
    """Operation is not allowed in the intake's current status."""

    pass


class IntakeValidationError(IntakeServiceError):
    """Input failed validation (missing required fields, bad attachment)."""

    pass


class IntakeBackendError(IntakeServiceError):
    """Chat/analysis backend or storage failed; the intake was left unchanged."""

    pass


@dataclass
class ChatOutcome:
    intake: IntakeSession
    assistant_message: str
    fields: IntakeFields
    is_complete: bool


@dataclass
class IntakeSubmission:
    """Final field values supplied by the caller at submit."""

    title: str
    department: str
    description: str | None = None
    location: str | None = None
    business_unit: str | None = None
    contact_email: str | None = None
    queue_priority: str | None = None


# =============================================================================
# Helpers
# =============================================================================


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _touch(intake: IntakeSession) -> None:
    intake.updated_at = _utcnow()


def _concurrent_modification(intake_id: UUID) -> InvalidIntakeStateError:
    return InvalidIntakeStateError(
        f"Intake {intake_id} was modified concurrently; re-read and retry"
    )


def _commit(db: Session, intake_id: UUID) -> None:
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise _concurrent_modification(intake_id) from e
    except Exception:
        db.rollback()
        raise


def _parse_priority(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    text = value.strip().lower()
    for priority in QueuePriority:
        if priority.value.lower() == text:
            return priority.value
    raise IntakeValidationError("Queue priority must be Low, Medium, High, or Critical")


def fields_from_session(intake: IntakeSession) -> IntakeFields:
    return IntakeFields(
        title=intake.title,
        department=intake.department,
        description=intake.description,
        location=intake.location,
        business_unit=intake.business_unit,
        contact_email=intake.contact_email,
        queue_priority=intake.queue_priority,
        resolved=frozenset(intake.resolved_slots or []),
    )


def _apply_fields(intake: IntakeSession, fields: IntakeFields) -> None:
    for slot in SLOT_ORDER:
        value = fields.get(slot)
        if value is not None:
            setattr(intake, slot, value)
    # New list so the JSON column is flagged dirty
    intake.resolved_slots = [s for s in SLOT_ORDER if s in fields.resolved]


def _within_limits(fields: IntakeFields) -> IntakeFields:
    """Drop proposed values that would not fit their column."""
    oversized = {
        slot: None
        for slot, limit in SLOT_MAX_LENGTHS.items()
        if len((fields.get(slot) or "").strip()) > limit
    }
    if not oversized:
        return fields
    return replace(fields, **oversized, resolved=fields.resolved - oversized.keys())


def transcript_of(intake: IntakeSession) -> list[ChatTurn]:
    return [ChatTurn.from_dict(turn) for turn in intake.transcript or []]


async def _call_backend(func: Callable[[], Awaitable[T]]) -> T:
    try:
        return await _ai_gate.call(func)
    except ChatBackendError as e:
        raise IntakeBackendError(f"Chat backend failed: {e}") from e
    except TimeoutError as e:
        raise IntakeBackendError("Chat backend timed out") from e


def _require_intake(db: Session, intake_id: UUID, *, for_update: bool = False) -> IntakeSession:
    """
    Load the intake as currently stored, bypassing stale identity-map state.

    With for_update the row stays locked until commit/rollback, so writers
    in other processes (CLI, other workers) queue behind this one.
    """
    query = (
        select(IntakeSession)
        .where(IntakeSession.id == intake_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    intake = db.execute(query).scalar_one_or_none()
    if not intake:
        raise IntakeNotFoundError(f"Intake {intake_id} not found")
    return intake


def _require_unchanged(db: Session, intake_id: UUID, version: int) -> IntakeSession:
    """Re-read and lock the intake after a backend round trip; reject if anyone wrote meanwhile."""
    intake = _require_intake(db, intake_id, for_update=True)
    if intake.version != version:
        db.rollback()
        raise _concurrent_modification(intake_id)
    return intake


def _require_status(intake: IntakeSession, allowed: set[IntakeStatus], action: str) -> None:
    if intake.status not in {s.value for s in allowed}:
        raise InvalidIntakeStateError(
            f"Cannot {action} an intake in status '{intake.status}'"
        )


# =============================================================================
# Queries
# =============================================================================


def get_intake(db: Session, intake_id: UUID) -> IntakeSession | None:
    """Get a single intake session by ID."""
    return db.execute(
        select(IntakeSession).where(IntakeSession.id == intake_id)
    ).scalar_one_or_none()


def list_intakes(db: Session, owner_id: str) -> list[IntakeSession]:
    """List an owner's intake sessions, newest first."""
    query = (
        select(IntakeSession)
        .where(IntakeSession.owner_id == owner_id)
        .order_by(IntakeSession.created_at.desc())
    )
    return list(db.execute(query).scalars().all())


# =============================================================================
# Lifecycle
# =============================================================================


async def start_intake(
    db: Session,
    backend: IntakeChatBackend,
    owner_id: str,
    queue_priority: str | None = None,
) -> IntakeSession:
    """Create a draft intake seeded with the opening exchange."""
    priority = _parse_priority(queue_priority)
    initial = merge_fields(IntakeFields(), IntakeFields(queue_priority=priority))

    result: ExtractionResult = await _call_backend(
        lambda: backend.extract([], OPENING_USER_MESSAGE, initial)
    )

    intake = IntakeSession(
        id=uuid.uuid4(),
        owner_id=owner_id,
        status=IntakeStatus.DRAFT.value,
        transcript=[
            ChatTurn.now(ChatRole.USER, OPENING_USER_MESSAGE).to_dict(),
            ChatTurn.now(ChatRole.ASSISTANT, result.assistant_message).to_dict(),
        ],
        resolved_slots=[],
    )
    _apply_fields(intake, initial)
    db.add(intake)
    _commit(db, intake.id)
    db.refresh(intake)

    logger.info(
        "intake_started",
        extra=build_log_context(intake_id=intake.id, owner_id=owner_id, status=intake.status),
    )
    return intake


async def send_chat_message(
    db: Session,
    backend: IntakeChatBackend,
    intake_id: UUID,
    message: str,
) -> ChatOutcome:
    """
    Run one conversation turn on a draft intake.

    Appends the user and assistant turns and merges the backend's field
    proposal (overwrite-if-present). A backend failure leaves the intake
    exactly as it was.
    """
    async with intake_locks.hold(intake_id):
        intake = _require_intake(db, intake_id)
        _require_status(intake, {IntakeStatus.DRAFT}, "chat on")

        version = intake.version
        current = fields_from_session(intake)
        transcript = transcript_of(intake)
        result = await _call_backend(lambda: backend.extract(transcript, message, current))

        intake = _require_unchanged(db, intake_id, version)
        merged = merge_fields(current, _within_limits(result.fields))
        intake.transcript = [
            *intake.transcript,
            ChatTurn.now(ChatRole.USER, message).to_dict(),
            ChatTurn.now(ChatRole.ASSISTANT, result.assistant_message).to_dict(),
        ]
        _apply_fields(intake, merged)
        _touch(intake)
        _commit(db, intake_id)

        logger.info(
            "intake_chat_turn",
            extra=build_log_context(intake_id=intake.id, status=intake.status),
        )
        return ChatOutcome(
            intake=intake,
            assistant_message=result.assistant_message,
            fields=merged,
            is_complete=result.is_complete,
        )


async def submit_intake(
    db: Session,
    intake_id: UUID,
    submission: IntakeSubmission,
) -> IntakeSession:
    """Finalise meta fields (caller values win) and move draft → submitted."""
    async with intake_locks.hold(intake_id):
        intake = _require_intake(db, intake_id, for_update=True)
        _require_status(intake, {IntakeStatus.DRAFT}, "submit")

        missing = [
            name
            for name in ("title", "department")
            if not (getattr(submission, name) or "").strip()
        ]
        if missing:
            raise IntakeValidationError(f"Missing required fields: {', '.join(missing)}")
        too_long = [
            name
            for name, limit in SLOT_MAX_LENGTHS.items()
            if len((getattr(submission, name) or "").strip()) > limit
        ]
        if too_long:
            raise IntakeValidationError(f"Fields too long: {', '.join(too_long)}")
        priority = _parse_priority(submission.queue_priority)

        final = IntakeFields(
            title=submission.title,
            department=submission.department,
            description=submission.description,
            location=submission.location,
            business_unit=submission.business_unit,
            contact_email=submission.contact_email,
            queue_priority=priority,
        )
        _apply_fields(intake, merge_fields(fields_from_session(intake), final))
        intake.status = IntakeStatus.SUBMITTED.value
        _touch(intake)
        _commit(db, intake_id)

        logger.info(
            "intake_submitted",
            extra=build_log_context(intake_id=intake.id, status=intake.status),
        )
        return intake


async def add_attachment(
    db: Session,
    storage: AttachmentStorage,
    intake_id: UUID,
    file_name: str,
    data: bytes,
    attachment_type: str | None = None,
    content_type: str | None = None,
) -> IntakeAttachment:
    """Store a supporting file and attach it to the intake (any status but promoted)."""
    is_valid, error = attachment_service.validate_file(file_name, len(data))
    if not is_valid:
        raise IntakeValidationError(error)
    try:
        resolved_type = attachment_service.resolve_attachment_type(attachment_type, file_name)
    except ValueError as e:
        raise IntakeValidationError(str(e)) from e

    async with intake_locks.hold(intake_id):
        intake = _require_intake(db, intake_id)
        if intake.status == IntakeStatus.PROMOTED.value:
            raise InvalidIntakeStateError("Cannot upload attachments to a promoted intake")

        attachment_id = uuid.uuid4()
        try:
            locator = await _storage_gate.call_in_thread(
                storage.store,
                f"intake/{intake.id}",
                f"{attachment_id}_{file_name}",
                data,
            )
        except AttachmentStorageError as e:
            raise IntakeBackendError(f"Attachment storage failed: {e}") from e
        except TimeoutError as e:
            raise IntakeBackendError("Attachment storage timed out") from e

        intake = _require_intake(db, intake_id, for_update=True)
        if intake.status == IntakeStatus.PROMOTED.value:
            db.rollback()
            raise InvalidIntakeStateError("Cannot upload attachments to a promoted intake")

        attachment = IntakeAttachment(
            id=attachment_id,
            intake_session_id=intake.id,
            file_name=file_name,
            attachment_type=resolved_type.value,
            storage_locator=locator,
            content_type=content_type or "application/octet-stream",
            size_bytes=len(data),
            checksum_sha256=attachment_service.calculate_checksum(data),
        )
        intake.attachments.append(attachment)
        _touch(intake)
        _commit(db, intake_id)

        logger.info(
            "intake_attachment_added",
            extra=build_log_context(intake_id=intake.id, status=intake.status),
        )
        return attachment


async def set_attachment_enriched_text(
    db: Session,
    intake_id: UUID,
    attachment_id: UUID,
    text: str,
) -> IntakeAttachment:
    """Record extracted text / transcription for an attachment. Settable once."""
    if not text or not text.strip():
        raise IntakeValidationError("Enriched text must not be empty")

    async with intake_locks.hold(intake_id):
        intake = _require_intake(db, intake_id, for_update=True)
        attachment = next((a for a in intake.attachments if a.id == attachment_id), None)
        if attachment is None:
            raise IntakeNotFoundError(f"Attachment {attachment_id} not found")
        if intake.status == IntakeStatus.PROMOTED.value:
            raise InvalidIntakeStateError("Attachments of a promoted intake are read-only")
        if attachment.enriched_text is not None:
            raise InvalidIntakeStateError("Attachment already has enriched text")

        attachment.enriched_text = text
        attachment.enriched_at = _utcnow()
        _touch(intake)
        _commit(db, intake_id)
        return attachment


async def analyse_intake(
    db: Session,
    backend: IntakeChatBackend,
    intake_id: UUID,
) -> IntakeSession:
    """
    Synthesize brief, checkpoints and actionables and move the intake to analysed.

    Allowed from any status before promotion. At most ANALYSIS_MAX_ATTACHMENTS
    attachment texts are sent; the file name stands in for missing text.
    """
    async with intake_locks.hold(intake_id):
        intake = _require_intake(db, intake_id)
        _require_status(
            intake,
            {IntakeStatus.DRAFT, IntakeStatus.SUBMITTED, IntakeStatus.ANALYSED},
            "analyse",
        )

        texts = [
            a.enriched_text or a.file_name
            for a in intake.attachments[: settings.ANALYSIS_MAX_ATTACHMENTS]
        ]
        title, description = intake.title, intake.description
        version = intake.version
        result: AnalysisResult = await _call_backend(
            lambda: backend.synthesize(title, description, texts)
        )

        intake = _require_unchanged(db, intake_id, version)
        intake.analysis_brief = result.brief
        intake.analysis_checkpoints = list(result.checkpoints)
        intake.analysis_actionables = list(result.actionables)
        intake.analysed_at = _utcnow()
        intake.status = IntakeStatus.ANALYSED.value
        _touch(intake)
        _commit(db, intake_id)

        logger.info(
            "intake_analysed",
            extra=build_log_context(intake_id=intake.id, status=intake.status),
        )
        return intake


async def promote_intake(db: Session, intake_id: UUID) -> Process:
    """
    Convert an analysed intake into a process record, once.

    Creates the process, copies every attachment by value, then marks the
    intake promoted, all in one transaction. Intake attachments are not
    touched.
    """
    async with intake_locks.hold(intake_id):
        intake = _require_intake(db, intake_id, for_update=True)
        _require_status(intake, {IntakeStatus.ANALYSED}, "promote")

        try:
            process = Process(
                id=uuid.uuid4(),
                name=intake.title or UNTITLED_PROCESS_NAME,
                description=intake.description or "",
                department=intake.department or DEFAULT_PROCESS_DEPARTMENT,
                owner_id=intake.owner_id,
                source_intake_id=intake.id,
            )
            for source in intake.attachments:
                process.attachments.append(
                    ProcessAttachment(
                        file_name=source.file_name,
                        attachment_type=source.attachment_type,
                        storage_locator=source.storage_locator,
                        size_bytes=source.size_bytes,
                        enriched_text=source.enriched_text,
                    )
                )
            db.add(process)
            db.flush()

            intake.promoted_process_id = process.id
            intake.promoted_at = _utcnow()
            intake.status = IntakeStatus.PROMOTED.value
            _touch(intake)
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise _concurrent_modification(intake_id) from e
        except Exception:
            db.rollback()
            raise

        logger.info(
            "intake_promoted",
            extra=build_log_context(
                intake_id=intake.id, process_id=process.id, status=intake.status
            ),
        )
        return process
