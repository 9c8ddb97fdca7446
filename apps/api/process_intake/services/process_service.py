"""Process record lookups. Records are created only by intake promotion."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from process_intake.db.models import Process


def get_process(db: Session, process_id: UUID) -> Process | None:
    """Get a process record by ID."""
    return db.execute(select(Process).where(Process.id == process_id)).scalar_one_or_none()


def list_processes_for_owner(db: Session, owner_id: str) -> list[Process]:
    """List an owner's process records, newest first."""
    query = (
        select(Process)
        .where(Process.owner_id == owner_id)
        .order_by(Process.created_at.desc())
    )
    return list(db.execute(query).scalars().all())
