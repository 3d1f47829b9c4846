"""API endpoints."""

from tradewise.api.routes import router

__all__ = ["router"]
