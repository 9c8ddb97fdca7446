"""Process record API endpoints (read-only; records come from intake promotion)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from process_intake.core.deps import get_db, get_owner_header, resolve_owner
from process_intake.schemas.process import ProcessListItem, ProcessRead
from process_intake.services import process_service

router = APIRouter()


@router.get("", response_model=list[ProcessListItem])
def list_processes(
    header_owner: str | None = Depends(get_owner_header),
    db: Session = Depends(get_db),
):
    processes = process_service.list_processes_for_owner(db, resolve_owner(header_owner))
    return [ProcessListItem.model_validate(p) for p in processes]


@router.get("/{process_id}", response_model=ProcessRead)
def get_process(process_id: UUID, db: Session = Depends(get_db)):
    """Get a process record with its copied attachments."""
    process = process_service.get_process(db, process_id)
    if not process:
        raise HTTPException(status_code=404, detail="Process not found")
    return ProcessRead.model_validate(process)
