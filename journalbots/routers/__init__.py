"""API routers package."""

from .bots import router as bots_router

__all__ = ["bots_router"]
