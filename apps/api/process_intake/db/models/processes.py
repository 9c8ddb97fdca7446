"""SQLAlchemy ORM models for process records created by intake promotion."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from process_intake.db.base import Base
from process_intake.db.enums import DEFAULT_PROCESS_STATUS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Process(Base):
    """A business process record. Independent of the intake it came from."""

    __tablename__ = "processes"
    __table_args__ = (Index("idx_processes_owner", "owner_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DEFAULT_PROCESS_STATUS.value
    )
    # Traceability only; the intake session is not referenced as an object
    source_intake_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, default=_utcnow, server_default=func.now()
    )

    attachments: Mapped[list["ProcessAttachment"]] = relationship(
        back_populates="process",
        cascade="all, delete-orphan",
        order_by="ProcessAttachment.created_at",
    )


class ProcessAttachment(Base):
    """A value copy of an intake attachment, owned by a process record."""

    __tablename__ = "process_attachments"
    __table_args__ = (Index("idx_process_attachments_process", "process_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    process_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("processes.id", ondelete="CASCADE"), nullable=False
    )

    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    attachment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    storage_locator: Mapped[str] = mapped_column(String(1024), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    enriched_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False, default=_utcnow, server_default=func.now()
    )

    process: Mapped["Process"] = relationship(back_populates="attachments")
