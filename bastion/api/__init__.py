"""API routers."""

from bastion.api.admin import router as admin_router
from bastion.api.guard import router as guard_router
from bastion.api.health import router as health_router

__all__ = ["admin_router", "guard_router", "health_router"]
