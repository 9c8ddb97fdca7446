"""Structured logging helpers (field values and file contents are never logged)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    intake_id: UUID | str | None = None,
    owner_id: str | None = None,
    process_id: UUID | str | None = None,
    status: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict holding identifiers only."""
    context: dict[str, Any] = {}
    if intake_id:
        context["intake_id"] = str(intake_id)
    if owner_id:
        context["owner_id"] = owner_id
    if process_id:
        context["process_id"] = str(process_id)
    if status:
        context["status"] = status
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
