# src/brokerdesk/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import announcements_router

__all__ = ["announcements_router"]
