"""
API routes module.
"""

from notifyq.api.routes.health import router as health_router
from notifyq.api.routes.notifications import router as notifications_router

__all__ = ["notifications_router", "health_router"]
