# src/brokerdesk/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .announcements import router as announcements_router

__all__ = ["announcements_router"]
