"""
Friends Services Package.

This package contains all business logic and data access services.
Use this module to import commonly-used services.

Example:
    from api.services import (
        get_person_store,
        get_pending_store,
        ReviewEngine,
    )

Key service modules:
- mentions: @mention parsing for story text
- identity_resolver: mention name -> person candidates
- ambiguity: ambiguity resolution protocol (pure state machine)
- fact_validator: candidate fact checks and metadata variants
- pending_extractions: staging area for unreviewed facts
- review_engine: approve / reject / edit-and-approve
- extraction_pipeline: end-to-end story processing
"""

# ============================================================================
# Stores
# ============================================================================

from api.services.person_store import (
    Person,
    get_person_store,
)

from api.services.story_store import (
    Story,
    get_story_store,
)

from api.services.relationship_facts import (
    RelationshipFact,
    get_fact_store,
)

from api.services.pending_extractions import (
    PendingExtraction,
    get_pending_store,
)

# ============================================================================
# Pipeline
# ============================================================================

from api.services.mentions import (
    Mention,
    parse_mentions,
)

from api.services.identity_resolver import (
    IdentityResolver,
    resolve_text,
)

from api.services.ambiguity import (
    AmbiguityState,
    NEW,
    IGNORE,
)

from api.services.fact_validator import (
    CandidateFact,
    FactValidator,
)

from api.services.review_engine import (
    ReviewEngine,
    ReviewOutcome,
    get_review_engine,
)

from api.services.extraction_pipeline import (
    ExtractionPipeline,
    ExtractionOutcome,
)


__all__ = [
    # Stores
    "Person",
    "get_person_store",
    "Story",
    "get_story_store",
    "RelationshipFact",
    "get_fact_store",
    "PendingExtraction",
    "get_pending_store",
    # Pipeline
    "Mention",
    "parse_mentions",
    "IdentityResolver",
    "resolve_text",
    "AmbiguityState",
    "NEW",
    "IGNORE",
    "CandidateFact",
    "FactValidator",
    "ReviewEngine",
    "ReviewOutcome",
    "get_review_engine",
    "ExtractionPipeline",
    "ExtractionOutcome",
]
