"""API routers."""
from .devices import router as devices_router
from .notifications import router as notifications_router
from .diagnostics import router as diagnostics_router
from .enrollments import router as enrollments_router
from .reminders import router as reminders_router

__all__ = ["devices_router", "notifications_router", "diagnostics_router", "enrollments_router", "reminders_router"]
