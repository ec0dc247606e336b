"""
Shared request dependencies for Friends routes.
"""
from typing import Optional

from fastapi import Header, Request

from api.services.app_context import AppContext
from config.settings import settings


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Owning user for the request (X-User-Id header, else the configured default)."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return settings.default_user_id


def get_app_context(request: Request) -> AppContext:
    """The AppContext created at startup."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        context = AppContext.load()
        request.app.state.context = context
    return context
