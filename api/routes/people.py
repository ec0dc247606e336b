"""
People API routes for Friends.

Person CRUD, merging duplicates and listing a person's committed facts.
People are never hard-deleted; archiving is a status change.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.routes.deps import get_user_id
from api.services.person_merge import merge_people
from api.services.person_store import Person, get_person_store
from api.services.relationship_facts import RelationshipFact, get_fact_store
from api.utils.datetime_utils import to_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/people", tags=["people"])


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class CreatePersonRequest(BaseModel):
    name: str = Field(..., min_length=1)
    nickname: Optional[str] = None
    person_type: str = Field(default="primary", description="primary, mentioned or placeholder")
    importance_to_user: str = "unknown"
    date_of_birth: Optional[datetime] = None


class UpdatePersonRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    nickname: Optional[str] = None
    person_type: Optional[str] = None
    data_completeness: Optional[str] = None
    importance_to_user: Optional[str] = None
    status: Optional[str] = Field(default=None, description="active, archived, deceased or placeholder")
    date_of_birth: Optional[datetime] = None


class MergeRequest(BaseModel):
    target_id: str = Field(..., description="Person that survives the merge")


class PersonResponse(BaseModel):
    id: str
    name: str
    nickname: Optional[str]
    person_type: str
    data_completeness: str
    importance_to_user: str
    status: str
    added_by: str
    date_of_birth: Optional[str]
    mention_count: int
    canonical_id: Optional[str]
    merged_from: list[str]
    created_at: Optional[str]
    updated_at: Optional[str]

    @classmethod
    def from_person(cls, p: Person) -> "PersonResponse":
        return cls(
            id=p.id,
            name=p.name,
            nickname=p.nickname,
            person_type=p.person_type,
            data_completeness=p.data_completeness,
            importance_to_user=p.importance_to_user,
            status=p.status,
            added_by=p.added_by,
            date_of_birth=to_iso(p.date_of_birth),
            mention_count=p.mention_count,
            canonical_id=p.canonical_id,
            merged_from=p.merged_from,
            created_at=to_iso(p.created_at),
            updated_at=to_iso(p.updated_at),
        )


class PersonListResponse(BaseModel):
    people: list[PersonResponse]
    total: int


class FactResponse(BaseModel):
    id: str
    subject_id: str
    relation_kind: str
    object_label: str
    object_type: Optional[str]
    intensity: Optional[str]
    confidence: float
    category: Optional[str]
    metadata: dict[str, Any]
    status: str
    source: str
    created_at: Optional[str]

    @classmethod
    def from_fact(cls, f: RelationshipFact) -> "FactResponse":
        return cls(
            id=f.id,
            subject_id=f.subject_id,
            relation_kind=f.relation_kind,
            object_label=f.object_label,
            object_type=f.object_type,
            intensity=f.intensity,
            confidence=f.confidence,
            category=f.category,
            metadata=f.metadata,
            status=f.status,
            source=f.source,
            created_at=to_iso(f.created_at),
        )


class FactListResponse(BaseModel):
    person_id: str
    facts: list[FactResponse]
    total: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", response_model=PersonResponse, status_code=201)
async def create_person(request: CreatePersonRequest, user_id: str = Depends(get_user_id)):
    """Add a person by hand."""
    person = Person(
        user_id=user_id,
        name=request.name,
        nickname=request.nickname,
        person_type=request.person_type,
        importance_to_user=request.importance_to_user,
        date_of_birth=request.date_of_birth,
        added_by="user",
    )
    try:
        person = get_person_store().add(person)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PersonResponse.from_person(person)


@router.get("", response_model=PersonListResponse)
async def list_people(include_merged: bool = False, user_id: str = Depends(get_user_id)):
    people = get_person_store().list_for_user(user_id, include_merged=include_merged)
    return PersonListResponse(
        people=[PersonResponse.from_person(p) for p in people],
        total=len(people),
    )


@router.get("/{person_id}", response_model=PersonResponse)
async def get_person(person_id: str, user_id: str = Depends(get_user_id)):
    person = get_person_store().get_by_id(user_id, person_id)
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")
    return PersonResponse.from_person(person)


@router.patch("/{person_id}", response_model=PersonResponse)
async def update_person(
    person_id: str,
    request: UpdatePersonRequest,
    user_id: str = Depends(get_user_id),
):
    """Update fields of a person. Merging goes through /merge."""
    store = get_person_store()
    person = store.get_by_id(user_id, person_id)
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")
    if person.is_merged:
        raise HTTPException(status_code=409, detail="Person has been merged")
    if request.status == "merged":
        raise HTTPException(status_code=400, detail="Use the merge endpoint to merge people")

    for key, value in request.model_dump(exclude_unset=True).items():
        setattr(person, key, value)
    try:
        person = store.update(person)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PersonResponse.from_person(person)


@router.post("/{person_id}/merge")
async def merge_person(person_id: str, request: MergeRequest, user_id: str = Depends(get_user_id)):
    """Merge this person into target_id; facts and pending extractions follow."""
    try:
        result = merge_people(user_id, person_id, request.target_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "target": PersonResponse.from_person(result.target),
        "source_id": result.source_id,
        "facts_moved": result.facts_moved,
        "facts_deduplicated": result.facts_deduplicated,
        "pending_redirected": result.pending_redirected,
    }


@router.get("/{person_id}/facts", response_model=FactListResponse)
async def list_facts(person_id: str, user_id: str = Depends(get_user_id)):
    """Active facts about a person (a merged id resolves to the survivor)."""
    person = get_person_store().resolve_canonical(user_id, person_id)
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")
    facts = get_fact_store().list_for_person(user_id, person.id)
    return FactListResponse(
        person_id=person.id,
        facts=[FactResponse.from_fact(f) for f in facts],
        total=len(facts),
    )
