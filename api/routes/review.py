"""
Review API routes for Friends.

Triage list of pending extractions (least confident first) and the three
review transitions. A 409 means the record was already reviewed elsewhere;
the client should refresh its list.
"""
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.routes.deps import get_user_id
from api.services.pending_extractions import PendingExtraction, get_pending_store
from api.services.review_engine import ReviewOverrides, get_review_engine
from api.utils.datetime_utils import to_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/review", tags=["review"])


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class PendingExtractionResponse(BaseModel):
    id: str
    story_id: Optional[str]
    subject_id: str
    subject_name: str
    relation_kind: str
    object_label: str
    object_type: Optional[str]
    intensity: Optional[str]
    confidence: float
    category: Optional[str]
    metadata: dict[str, Any]
    status: str
    review_status: str
    reviewed_at: Optional[str]
    review_notes: Optional[str]
    extraction_reason: Optional[str]
    created_at: Optional[str]

    @classmethod
    def from_extraction(cls, p: PendingExtraction) -> "PendingExtractionResponse":
        return cls(
            id=p.id,
            story_id=p.story_id,
            subject_id=p.subject_id,
            subject_name=p.subject_name,
            relation_kind=p.relation_kind,
            object_label=p.object_label,
            object_type=p.object_type,
            intensity=p.intensity,
            confidence=p.confidence,
            category=p.category,
            metadata=p.metadata,
            status=p.status,
            review_status=p.review_status,
            reviewed_at=to_iso(p.reviewed_at),
            review_notes=p.review_notes,
            extraction_reason=p.extraction_reason,
            created_at=to_iso(p.created_at),
        )


class PendingListResponse(BaseModel):
    items: list[PendingExtractionResponse]
    total: int


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class EditRequest(BaseModel):
    relation_kind: Optional[str] = None
    object_label: Optional[str] = Field(default=None, min_length=1)
    intensity: Optional[str] = None
    category: Optional[str] = None


class ReviewResponse(BaseModel):
    extraction: PendingExtractionResponse
    fact_id: Optional[str] = None
    duplicate_of: Optional[str] = None


def _review_response(outcome) -> ReviewResponse:
    return ReviewResponse(
        extraction=PendingExtractionResponse.from_extraction(outcome.extraction),
        fact_id=outcome.fact.id if outcome.fact else None,
        duplicate_of=outcome.duplicate_of,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("", response_model=PendingListResponse)
async def list_pending(
    person_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    user_id: str = Depends(get_user_id),
):
    """Pending extractions, lowest confidence first."""
    store = get_pending_store()
    items = store.list_pending(user_id, person_id=person_id, limit=limit, offset=offset)
    return PendingListResponse(
        items=[PendingExtractionResponse.from_extraction(i) for i in items],
        total=store.count_pending(user_id),
    )


@router.get("/count")
async def count_pending(user_id: str = Depends(get_user_id)):
    return {"count": get_pending_store().count_pending(user_id)}


@router.get("/stats")
async def review_stats(user_id: str = Depends(get_user_id)):
    return get_pending_store().get_stats(user_id)


@router.post("/{extraction_id}/approve", response_model=ReviewResponse)
async def approve(extraction_id: str, user_id: str = Depends(get_user_id)):
    outcome = get_review_engine().approve(user_id, extraction_id)
    return _review_response(outcome)


@router.post("/{extraction_id}/reject", response_model=ReviewResponse)
async def reject(
    extraction_id: str,
    request: Optional[RejectRequest] = None,
    user_id: str = Depends(get_user_id),
):
    reason = request.reason if request else None
    outcome = get_review_engine().reject(user_id, extraction_id, reason)
    return _review_response(outcome)


@router.post("/{extraction_id}/edit", response_model=ReviewResponse)
async def edit_and_approve(
    extraction_id: str,
    request: EditRequest,
    user_id: str = Depends(get_user_id),
):
    """Apply edits and approve with full confidence."""
    overrides = ReviewOverrides(**request.model_dump())
    outcome = get_review_engine().edit_and_approve(user_id, extraction_id, overrides)
    return _review_response(outcome)
