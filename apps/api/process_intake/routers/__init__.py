"""API routers."""

from process_intake.routers.intake import router as intake_router
from process_intake.routers.processes import router as processes_router

__all__ = ["intake_router", "processes_router"]
