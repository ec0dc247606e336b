"""
Story API routes for Friends.

Saving a story never depends on extraction. Extraction is a separate
two-step call: /prepare reports ambiguous names, /extract runs the
pipeline once every ambiguous name has a choice.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.routes.deps import get_app_context, get_user_id
from api.services.app_context import AppContext
from api.services.extraction_pipeline import ExtractionPipeline
from api.services.identity_resolver import resolve_text
from api.services.person_store import get_person_store
from api.services.story_store import Story, get_story_store
from api.utils.datetime_utils import to_iso
from config.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stories", tags=["stories"])


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class CreateStoryRequest(BaseModel):
    title: Optional[str] = None
    content: str = Field(..., min_length=settings.min_story_length)
    story_date: Optional[datetime] = None


class ExtractRequest(BaseModel):
    resolutions: dict[str, str] = Field(
        default_factory=dict,
        description="Ambiguous name -> person id, 'NEW' or 'IGNORE'",
    )


class StoryResponse(BaseModel):
    id: str
    title: Optional[str]
    content: str
    story_date: Optional[str]
    ai_processed: bool
    ai_processed_at: Optional[str]
    extracted_data: Optional[dict[str, Any]]
    people_ids: list[str]
    created_at: Optional[str]

    @classmethod
    def from_story(cls, s: Story) -> "StoryResponse":
        return cls(
            id=s.id,
            title=s.title,
            content=s.content,
            story_date=to_iso(s.story_date),
            ai_processed=s.ai_processed,
            ai_processed_at=to_iso(s.ai_processed_at),
            extracted_data=s.extracted_data,
            people_ids=s.people_ids,
            created_at=to_iso(s.created_at),
        )


class StoryListResponse(BaseModel):
    stories: list[StoryResponse]
    total: int


def get_pipeline(context: AppContext) -> ExtractionPipeline:
    return ExtractionPipeline(context=context)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
async def create_story(request: CreateStoryRequest, user_id: str = Depends(get_user_id)):
    """Save a story and report how its mentions resolve."""
    story = Story(
        user_id=user_id,
        title=request.title,
        content=request.content,
        story_date=request.story_date,
    )
    try:
        story = get_story_store().add(story)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    resolution = resolve_text(story.content, get_person_store().list_for_user(user_id))
    return {
        "story": StoryResponse.from_story(story),
        "resolution": resolution.to_dict(),
    }


@router.get("", response_model=StoryListResponse)
async def list_stories(
    limit: int = 50,
    offset: int = 0,
    user_id: str = Depends(get_user_id),
):
    stories = get_story_store().list_for_user(user_id, limit=limit, offset=offset)
    return StoryListResponse(
        stories=[StoryResponse.from_story(s) for s in stories],
        total=len(stories),
    )


@router.get("/{story_id}", response_model=StoryResponse)
async def get_story(story_id: str, user_id: str = Depends(get_user_id)):
    story = get_story_store().get_by_id(user_id, story_id)
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")
    return StoryResponse.from_story(story)


@router.delete("/{story_id}")
async def delete_story(story_id: str, user_id: str = Depends(get_user_id)):
    if not get_story_store().soft_delete(user_id, story_id):
        raise HTTPException(status_code=404, detail="Story not found")
    return {"status": "deleted", "id": story_id}


@router.post("/{story_id}/prepare")
async def prepare_story(
    story_id: str,
    user_id: str = Depends(get_user_id),
    context: AppContext = Depends(get_app_context),
):
    """Resolution pass: which names are bound, ambiguous, unknown or forced new."""
    resolution = get_pipeline(context).prepare(user_id, story_id)
    return resolution.to_dict()


@router.post("/{story_id}/extract")
async def extract_story(
    story_id: str,
    request: ExtractRequest,
    user_id: str = Depends(get_user_id),
    context: AppContext = Depends(get_app_context),
):
    """Run extraction and stage the resulting facts for review."""
    outcome = await get_pipeline(context).process_story(user_id, story_id, request.resolutions)
    return outcome.to_dict()
