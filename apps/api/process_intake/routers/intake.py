"""Intake session API endpoints."""

import logging
from typing import Annotated, NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from process_intake.core.deps import (
    get_attachment_storage,
    get_chat_backend,
    get_db,
    get_owner_header,
    resolve_owner,
)
from process_intake.core.structured_logging import build_log_context
from process_intake.db.models import IntakeAttachment, IntakeSession
from process_intake.schemas.intake import (
    AnalysisRead,
    AttachmentRead,
    ChatMessageRequest,
    ChatResponse,
    ChatTurnRead,
    EnrichedTextUpdate,
    IntakeFieldsRead,
    IntakeListItem,
    IntakeRead,
    IntakeStart,
    IntakeSubmit,
)
from process_intake.schemas.process import ProcessRead
from process_intake.services import intake_service
from process_intake.services.attachment_storage import AttachmentStorage
from process_intake.services.intake_chat_service import IntakeChatBackend, IntakeFields
from process_intake.services.intake_service import (
    IntakeBackendError,
    IntakeNotFoundError,
    IntakeServiceError,
    IntakeSubmission,
    IntakeValidationError,
    InvalidIntakeStateError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helpers
# =============================================================================


def _raise_http(e: IntakeServiceError, route: str) -> NoReturn:
    if isinstance(e, IntakeNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidIntakeStateError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, IntakeValidationError):
        raise HTTPException(status_code=422, detail=str(e))
    if isinstance(e, IntakeBackendError):
        logger.warning(f"Intake backend failure: {e}", extra=build_log_context(route=route))
        raise HTTPException(status_code=503, detail=str(e))
    raise e


def _fields_read(fields: IntakeFields) -> IntakeFieldsRead:
    return IntakeFieldsRead(**fields.values())


def _attachment_read(attachment: IntakeAttachment) -> AttachmentRead:
    return AttachmentRead(
        id=attachment.id,
        file_name=attachment.file_name,
        attachment_type=attachment.attachment_type,
        content_type=attachment.content_type,
        size_bytes=attachment.size_bytes,
        checksum_sha256=attachment.checksum_sha256,
        has_enriched_text=attachment.enriched_text is not None,
        created_at=attachment.created_at,
    )


def _intake_read(intake: IntakeSession) -> IntakeRead:
    fields = intake_service.fields_from_session(intake)
    analysis = None
    if intake.analysis_brief is not None:
        analysis = AnalysisRead(
            brief=intake.analysis_brief,
            checkpoints=intake.analysis_checkpoints or [],
            actionables=intake.analysis_actionables or [],
            analysed_at=intake.analysed_at,
        )
    return IntakeRead(
        id=intake.id,
        owner_id=intake.owner_id,
        status=intake.status,
        fields=_fields_read(fields),
        skipped_slots=sorted(fields.skipped),
        transcript=[ChatTurnRead(**turn) for turn in intake.transcript or []],
        attachments=[_attachment_read(a) for a in intake.attachments],
        analysis=analysis,
        promoted_process_id=intake.promoted_process_id,
        promoted_at=intake.promoted_at,
        created_at=intake.created_at,
        updated_at=intake.updated_at,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=IntakeRead, status_code=status.HTTP_201_CREATED)
async def start_intake(
    data: IntakeStart | None = None,
    header_owner: str | None = Depends(get_owner_header),
    backend: IntakeChatBackend = Depends(get_chat_backend),
    db: Session = Depends(get_db),
):
    """Start a draft intake; the response carries the opening exchange."""
    data = data or IntakeStart()
    owner_id = resolve_owner(header_owner, data.owner_id)
    try:
        intake = await intake_service.start_intake(
            db, backend, owner_id, queue_priority=data.queue_priority
        )
    except IntakeServiceError as e:
        _raise_http(e, "start_intake")
    return _intake_read(intake)


@router.get("", response_model=list[IntakeListItem])
def list_intakes(
    header_owner: str | None = Depends(get_owner_header),
    db: Session = Depends(get_db),
):
    """List the caller's intakes, newest first."""
    intakes = intake_service.list_intakes(db, resolve_owner(header_owner))
    return [
        IntakeListItem(
            id=i.id,
            status=i.status,
            title=i.title,
            department=i.department,
            queue_priority=i.queue_priority,
            attachment_count=len(i.attachments),
            created_at=i.created_at,
            updated_at=i.updated_at,
        )
        for i in intakes
    ]


@router.get("/{intake_id}", response_model=IntakeRead)
def get_intake(intake_id: UUID, db: Session = Depends(get_db)):
    intake = intake_service.get_intake(db, intake_id)
    if not intake:
        raise HTTPException(status_code=404, detail="Intake not found")
    return _intake_read(intake)


@router.post("/{intake_id}/chat", response_model=ChatResponse)
async def send_chat_message(
    intake_id: UUID,
    data: ChatMessageRequest,
    backend: IntakeChatBackend = Depends(get_chat_backend),
    db: Session = Depends(get_db),
):
    """Send one user turn. Only draft intakes accept chat."""
    try:
        outcome = await intake_service.send_chat_message(db, backend, intake_id, data.message)
    except IntakeServiceError as e:
        _raise_http(e, "send_chat_message")
    return ChatResponse(
        assistant_message=outcome.assistant_message,
        fields=_fields_read(outcome.fields),
        is_complete=outcome.is_complete,
        intake=_intake_read(outcome.intake),
    )


@router.post("/{intake_id}/submit", response_model=IntakeRead)
async def submit_intake(
    intake_id: UUID,
    data: IntakeSubmit,
    db: Session = Depends(get_db),
):
    try:
        intake = await intake_service.submit_intake(
            db, intake_id, IntakeSubmission(**data.model_dump())
        )
    except IntakeServiceError as e:
        _raise_http(e, "submit_intake")
    return _intake_read(intake)


@router.post(
    "/{intake_id}/attachments",
    response_model=AttachmentRead,
    status_code=status.HTTP_201_CREATED,
)
async def upload_attachment(
    intake_id: UUID,
    file: Annotated[UploadFile, File()],
    attachment_type: Annotated[str | None, Form()] = None,
    storage: AttachmentStorage = Depends(get_attachment_storage),
    db: Session = Depends(get_db),
):
    """
    Upload a supporting file (video, PDF, audio, transcription, spreadsheet, other).

    The type is inferred from the file extension when not given.
    """
    content = await file.read()
    try:
        attachment = await intake_service.add_attachment(
            db,
            storage,
            intake_id,
            file_name=file.filename or "",
            data=content,
            attachment_type=attachment_type,
            content_type=file.content_type,
        )
    except IntakeServiceError as e:
        _raise_http(e, "upload_attachment")
    return _attachment_read(attachment)


@router.put(
    "/{intake_id}/attachments/{attachment_id}/enriched-text",
    response_model=AttachmentRead,
)
async def set_enriched_text(
    intake_id: UUID,
    attachment_id: UUID,
    data: EnrichedTextUpdate,
    db: Session = Depends(get_db),
):
    """Record the extracted text / transcription of an attachment (once)."""
    try:
        attachment = await intake_service.set_attachment_enriched_text(
            db, intake_id, attachment_id, data.text
        )
    except IntakeServiceError as e:
        _raise_http(e, "set_enriched_text")
    return _attachment_read(attachment)


@router.post("/{intake_id}/analyse", response_model=IntakeRead)
async def analyse_intake(
    intake_id: UUID,
    backend: IntakeChatBackend = Depends(get_chat_backend),
    db: Session = Depends(get_db),
):
    """Run the analysis; re-running on an analysed intake replaces the results."""
    try:
        intake = await intake_service.analyse_intake(db, backend, intake_id)
    except IntakeServiceError as e:
        _raise_http(e, "analyse_intake")
    return _intake_read(intake)


@router.post(
    "/{intake_id}/promote",
    response_model=ProcessRead,
    status_code=status.HTTP_201_CREATED,
)
async def promote_intake(intake_id: UUID, db: Session = Depends(get_db)):
    """Create the process record from an analysed intake."""
    try:
        process = await intake_service.promote_intake(db, intake_id)
    except IntakeServiceError as e:
        _raise_http(e, "promote_intake")
    return ProcessRead.model_validate(process)
