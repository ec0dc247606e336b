"""
Error taxonomy for the extraction staging and review pipeline.

Every error is scoped to a single story or a single pending record:
- CandidateRejected subclasses are surfaced to the user (bad upstream data)
- NotFound / AlreadyReviewed are recovered by refreshing the pending list
- DuplicateFact is dropped silently
- CollaboratorUnavailable degrades to "no facts extracted"
"""
from typing import Optional

from api.services.resilience import ServiceUnavailableError


class ExtractionError(Exception):
    """Base class for pipeline errors."""


class CandidateRejected(ExtractionError):
    """A candidate fact failed validation and cannot be staged or committed."""

    reason = "invalid_candidate"

    def __init__(self, message: str, value: Optional[str] = None):
        self.message = message
        self.value = value
        super().__init__(message)


class InvalidRelationKind(CandidateRejected):
    reason = "invalid_relation_kind"


class InvalidStatus(CandidateRejected):
    reason = "invalid_status"


class InvalidMetadata(CandidateRejected):
    reason = "invalid_metadata"


class InvalidObjectLabel(CandidateRejected):
    reason = "invalid_object_label"


class DuplicateFact(ExtractionError):
    """An active fact with the same subject, kind and label already exists."""

    reason = "duplicate"

    def __init__(self, subject_id: str, relation_kind: str, object_label: str,
                 existing_id: Optional[str] = None):
        self.subject_id = subject_id
        self.relation_kind = relation_kind
        self.object_label = object_label
        self.existing_id = existing_id
        super().__init__(
            f"Duplicate fact: {subject_id} {relation_kind} '{object_label}'"
        )


class NotFound(ExtractionError):
    """A pending record, story or subject person does not exist for this user."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class AlreadyReviewed(ExtractionError):
    """A review transition was attempted on a record that is no longer pending."""

    def __init__(self, extraction_id: str, review_status: str):
        self.extraction_id = extraction_id
        self.review_status = review_status
        super().__init__(
            f"Pending extraction {extraction_id} already reviewed ({review_status})"
        )


class NoResolutionSelected(ExtractionError):
    """advance() was called before a choice was made for the current name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No resolution selected for '{name}'")


class UnresolvedAmbiguity(ExtractionError):
    """Extraction was requested while some mentioned names are still ambiguous."""

    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(f"Unresolved ambiguous names: {', '.join(names)}")


class CollaboratorUnavailable(ServiceUnavailableError, ExtractionError):
    """The extraction collaborator failed or timed out."""

    def __init__(self, message: str):
        super().__init__("Extraction service", message)
