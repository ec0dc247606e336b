"""
Candidate fact validation for Friends.

Every fact proposed by the extraction collaborator (or typed by hand) runs
through the same checks before it is staged or committed, in this order:

1. relation kind is in the closed vocabulary (InvalidRelationKind)
2. temporal status is known (InvalidStatus)
3. metadata matches the variant for the kind (InvalidMetadata)
4. object label is non-empty after trimming (InvalidObjectLabel)
5. no active fact with the same subject, kind and exact label (DuplicateFact)

Metadata is a tagged union keyed by relation kind. Unknown fields are
dropped and malformed values in known fields are coerced to absent; only a
missing or invalid identity category (kind IS) rejects the candidate.
"""
import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from api.services.errors import (
    DuplicateFact,
    InvalidMetadata,
    InvalidObjectLabel,
    InvalidRelationKind,
    InvalidStatus,
)
from api.services.relationship_facts import RelationshipFactStore, get_fact_store
from config.relations import (
    DEFAULT_CONFIDENCE,
    DEFAULT_FACT_STATUS,
    FACT_STATUSES,
    INTENSITIES,
    RELATION_KINDS,
)

logger = logging.getLogger(__name__)


# =============================================================================
# METADATA VARIANTS
# =============================================================================

class _Metadata(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PreferenceMetadata(_Metadata):
    """LIKES, DISLIKES, PREFERS_OVER, REGULARLY_DOES."""
    category: Optional[str] = None  # food, activity, music...
    frequency: Optional[Literal["rarely", "sometimes", "often", "always"]] = None
    context: Optional[str] = None
    since: Optional[str] = None


class FearMetadata(_Metadata):
    """FEARS, SENSITIVE_TO, UNCOMFORTABLE_WITH."""
    severity: Optional[Literal["mild", "moderate", "severe", "phobia"]] = None
    triggers: Optional[list[str]] = None
    context: Optional[str] = None
    since: Optional[str] = None


class StruggleMetadata(_Metadata):
    severity: Optional[Literal["minor", "moderate", "major", "severe"]] = None
    duration: Optional[str] = None  # recent, chronic, years
    support: Optional[str] = None  # seeing therapist, medication
    triggers: Optional[list[str]] = None


class CaregivingMetadata(_Metadata):
    """CARES_FOR, DEPENDS_ON."""
    care_type: Optional[str] = Field(default=None, alias="careType")  # elderly_parent, child, pet
    level: Optional[Literal["occasional", "part_time", "full_time", "primary_caregiver"]] = None
    since: Optional[str] = None
    condition: Optional[str] = None


class IdentityMetadata(_Metadata):
    category: Literal["profession", "role", "trait", "identity", "health", "relationship_status"]
    since: Optional[str] = None
    context: Optional[str] = None


class BeliefMetadata(_Metadata):
    category: Optional[Literal[
        "political", "religious", "philosophical", "ethical", "scientific", "lifestyle"
    ]] = None
    strength: Optional[Literal["mild", "moderate", "strong", "core_value"]] = None
    open_to_discussion: Optional[bool] = None


class GeneralMetadata(_Metadata):
    context: Optional[str] = None
    since: Optional[str] = None


METADATA_VARIANTS: dict[str, type[_Metadata]] = {
    "LIKES": PreferenceMetadata,
    "DISLIKES": PreferenceMetadata,
    "PREFERS_OVER": PreferenceMetadata,
    "REGULARLY_DOES": PreferenceMetadata,
    "FEARS": FearMetadata,
    "SENSITIVE_TO": FearMetadata,
    "UNCOMFORTABLE_WITH": FearMetadata,
    "STRUGGLES_WITH": StruggleMetadata,
    "CARES_FOR": CaregivingMetadata,
    "DEPENDS_ON": CaregivingMetadata,
    "IS": IdentityMetadata,
    "BELIEVES": BeliefMetadata,
}


def metadata_variant(relation_kind: str) -> type[_Metadata]:
    return METADATA_VARIANTS.get(relation_kind, GeneralMetadata)


def normalize_metadata(relation_kind: str, metadata: Any) -> dict[str, Any]:
    """
    Coerce raw metadata into the variant for relation_kind.

    Returns:
        Cleaned dict (field names, absent values omitted)

    Raises:
        InvalidMetadata: a required field is missing or malformed
    """
    model = metadata_variant(relation_kind)
    raw = metadata if isinstance(metadata, dict) else {}
    if metadata is not None and not isinstance(metadata, dict):
        logger.warning(f"Ignoring non-object metadata for {relation_kind}: {type(metadata).__name__}")

    cleaned: dict[str, Any] = {}
    for name, info in model.model_fields.items():
        if name in raw:
            value = raw[name]
        elif info.alias and info.alias in raw:
            value = raw[info.alias]
        else:
            continue
        if value is None:
            continue
        try:
            cleaned[name] = TypeAdapter(info.annotation).validate_python(value)
        except ValidationError:
            logger.debug(f"Dropping malformed metadata field {name}={value!r} for {relation_kind}")

    try:
        return model(**cleaned).model_dump(exclude_none=True)
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise InvalidMetadata(
            f"Metadata for {relation_kind} requires: {missing}",
            value=str(raw.get("category")) if raw.get("category") is not None else None,
        ) from e


# =============================================================================
# CANDIDATE FACTS
# =============================================================================

@dataclass
class CandidateFact:
    """A relationship fact proposed for staging, before it becomes a row."""
    subject_id: str
    relation_kind: str
    object_label: str
    subject_name: str = ""
    object_type: Optional[str] = None
    intensity: Optional[str] = None
    confidence: Any = DEFAULT_CONFIDENCE
    category: Optional[str] = None
    metadata: Any = field(default_factory=dict)
    status: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    story_id: Optional[str] = None
    extraction_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "relation_kind": self.relation_kind,
            "object_label": self.object_label,
            "object_type": self.object_type,
            "intensity": self.intensity,
            "confidence": self.confidence,
            "category": self.category,
            "metadata": self.metadata,
            "status": self.status,
            "story_id": self.story_id,
            "extraction_reason": self.extraction_reason,
        }


def normalize_confidence(value: Any) -> float:
    """Clamp to [0, 1]; anything non-numeric becomes the default."""
    if isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if math.isnan(confidence):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, confidence))


def normalize_candidate(candidate: CandidateFact) -> CandidateFact:
    """
    Run checks 1-4 and return a normalised copy.

    Raises:
        InvalidRelationKind, InvalidStatus, InvalidMetadata, InvalidObjectLabel
    """
    kind = candidate.relation_kind
    if kind not in RELATION_KINDS:
        raise InvalidRelationKind(f"Unknown relation kind: {kind}", value=kind)

    status = candidate.status or DEFAULT_FACT_STATUS
    if status not in FACT_STATUSES:
        raise InvalidStatus(f"Unknown fact status: {status}", value=status)

    metadata = normalize_metadata(kind, candidate.metadata)

    label = (candidate.object_label or "").strip() if isinstance(candidate.object_label, str) else ""
    if not label:
        raise InvalidObjectLabel("Object label is required", value=candidate.object_label)

    intensity = candidate.intensity if candidate.intensity in INTENSITIES else None

    return replace(
        candidate,
        object_label=label,
        status=status,
        metadata=metadata,
        intensity=intensity,
        confidence=normalize_confidence(candidate.confidence),
    )


class FactValidator:
    """Full candidate validation including the duplicate check."""

    def __init__(self, fact_store: Optional[RelationshipFactStore] = None):
        self._facts = fact_store or get_fact_store()

    def check_duplicate(self, user_id: str, candidate: CandidateFact) -> None:
        """Raise DuplicateFact if an active identical fact exists."""
        existing = self._facts.find_active_duplicate(
            user_id, candidate.subject_id, candidate.relation_kind, candidate.object_label
        )
        if existing:
            raise DuplicateFact(
                candidate.subject_id,
                candidate.relation_kind,
                candidate.object_label,
                existing_id=existing.id,
            )

    def validate(self, user_id: str, candidate: CandidateFact) -> CandidateFact:
        """
        Validate and normalise a candidate.

        Raises:
            CandidateRejected subclasses or DuplicateFact
        """
        normalized = normalize_candidate(candidate)
        self.check_duplicate(user_id, normalized)
        return normalized
