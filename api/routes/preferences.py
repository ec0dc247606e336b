"""
Preferences API routes for Friends (theme, extraction model, auto-accept).
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.routes.deps import get_app_context
from api.services.app_context import AppContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/preferences", tags=["preferences"])


class PreferencesResponse(BaseModel):
    theme_color: str
    extraction_model: str
    auto_accept_enabled: bool


class UpdatePreferencesRequest(BaseModel):
    theme_color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    extraction_model: Optional[str] = Field(default=None, min_length=1)
    auto_accept_enabled: Optional[bool] = None


@router.get("", response_model=PreferencesResponse)
async def get_preferences(context: AppContext = Depends(get_app_context)):
    return PreferencesResponse(**context.to_dict())


@router.patch("", response_model=PreferencesResponse)
async def update_preferences(
    request: UpdatePreferencesRequest,
    context: AppContext = Depends(get_app_context),
):
    changes = request.model_dump(exclude_none=True)
    if changes:
        context.update(**changes)
        logger.info(f"Updated preferences: {', '.join(sorted(changes))}")
    return PreferencesResponse(**context.to_dict())
