"""SQLAlchemy ORM models for intake sessions and their attachments."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, BigInteger, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from process_intake.db.base import Base
from process_intake.db.enums import DEFAULT_INTAKE_STATUS, DEFAULT_QUEUE_PRIORITY


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntakeSession(Base):
    """
    A guided conversation collecting meta information about a business process.

    Moves draft → submitted → analysed → promoted. Never deleted; the
    transcript is append-only and stored as a JSON list of turn dicts.
    """

    __tablename__ = "intake_sessions"
    __table_args__ = (
        Index("idx_intake_sessions_owner", "owner_id", "created_at"),
        Index("idx_intake_sessions_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DEFAULT_INTAKE_STATUS.value
    )

    # Meta fields (filled progressively through the chat, finalised at submit)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    business_unit: Mapped[str | None] = mapped_column(String(200), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    queue_priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DEFAULT_QUEUE_PRIORITY.value
    )
    # Slots closed by the conversation (answered or explicitly skipped)
    resolved_slots: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    transcript: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    # Analysis results
    analysis_brief: Mapped[str | None] = mapped_column(Text, nullable=True)
    analysis_checkpoints: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    analysis_actionables: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    analysed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # One-way traceability to the process record created at promotion (no FK)
    promoted_process_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    promoted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False, default=_utcnow, server_default=func.now()
    )

    attachments: Mapped[list["IntakeAttachment"]] = relationship(
        back_populates="intake_session",
        cascade="all, delete-orphan",
        order_by="IntakeAttachment.created_at",
    )

    # Bumped on every UPDATE; a write based on a stale read fails with StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")

    __mapper_args__ = {"version_id_col": version}


class IntakeAttachment(Base):
    """
    A supporting file uploaded to an intake session.

    Immutable after upload except for enriched_text, which the enrichment
    step (text extraction / transcription) sets at most once.
    """

    __tablename__ = "intake_attachments"
    __table_args__ = (Index("idx_intake_attachments_session", "intake_session_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    intake_session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("intake_sessions.id", ondelete="CASCADE"), nullable=False
    )

    # File metadata
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    attachment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    storage_locator: Mapped[str] = mapped_column(String(1024), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    checksum_sha256: Mapped[str] = mapped_column(String(64), nullable=False)

    enriched_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    enriched_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False, default=_utcnow, server_default=func.now()
    )

    intake_session: Mapped["IntakeSession"] = relationship(back_populates="attachments")
