"""
Mention API routes for Friends.

Backs the story editor: parse @mentions, suggest people for the token
under the caret, and splice a picked suggestion back into the text.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.routes.deps import get_user_id
from api.services.identity_resolver import IdentityResolver
from api.services.mentions import complete_live_mention, get_live_mention, parse_mentions
from api.services.person_store import get_person_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mentions", tags=["mentions"])


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class ParseRequest(BaseModel):
    text: str = Field(default="", description="Story text")
    caret: Optional[int] = Field(default=None, ge=0, description="Caret offset for live-token detection")


class MentionModel(BaseModel):
    name: str
    start: int
    end: int
    full_match: str
    force_new: bool


class LiveMentionModel(BaseModel):
    query: str
    start: int
    caret: int
    force_new: bool
    needs_lookup: bool


class ParseResponse(BaseModel):
    mentions: list[MentionModel]
    live: Optional[LiveMentionModel]
    lookup_names: list[str]
    force_new_names: list[str]


class SuggestRequest(BaseModel):
    text: str
    caret: int = Field(..., ge=0)
    limit: Optional[int] = Field(default=None, ge=1, le=20)


class SuggestionModel(BaseModel):
    person_id: str
    name: str
    nickname: Optional[str]
    person_type: str
    score: float
    exact: bool


class SuggestResponse(BaseModel):
    live: Optional[LiveMentionModel]
    suggestions: list[SuggestionModel]


class CompleteRequest(BaseModel):
    text: str
    caret: int = Field(..., ge=0)
    name: str = Field(..., min_length=1)


class CompleteResponse(BaseModel):
    text: str
    caret: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/parse", response_model=ParseResponse)
async def parse(request: ParseRequest):
    """Find every @mention and the live token under the caret."""
    result = parse_mentions(request.text, request.caret)
    return ParseResponse(
        mentions=[MentionModel(**m.to_dict()) for m in result.mentions],
        live=LiveMentionModel(**result.live.to_dict()) if result.live else None,
        lookup_names=result.lookup_names,
        force_new_names=result.force_new_names,
    )


@router.post("/suggest", response_model=SuggestResponse)
async def suggest(request: SuggestRequest, user_id: str = Depends(get_user_id)):
    """Suggest people for the live token. @+ tokens never trigger a lookup."""
    live = get_live_mention(request.text, request.caret)
    if live is None:
        return SuggestResponse(live=None, suggestions=[])

    suggestions = []
    if live.needs_lookup and live.query:
        resolver = IdentityResolver(get_person_store())
        suggestions = [
            SuggestionModel(**c.to_dict())
            for c in resolver.suggest(user_id, live.query, request.limit)
        ]
    return SuggestResponse(live=LiveMentionModel(**live.to_dict()), suggestions=suggestions)


@router.post("/complete", response_model=CompleteResponse)
async def complete(request: CompleteRequest):
    """Replace the live token with the picked name."""
    text, caret = complete_live_mention(request.text, request.caret, request.name)
    return CompleteResponse(text=text, caret=caret)
