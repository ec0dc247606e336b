"""
Relation Vocabulary Configuration.

Central definition of the closed value sets used by the extraction pipeline:
- Relation kinds (the edge labels of the relationship graph)
- Intensities, temporal statuses and provenance sources
- Person classification enums
- Auto-accept confidence thresholds

Edit this file to tune which extracted facts skip manual review.
"""

# =============================================================================
# RELATION KINDS
# =============================================================================
# Closed set. Anything else coming back from the extraction collaborator is
# rejected with InvalidRelationKind.

RELATION_KINDS = (
    "KNOWS",
    "LIKES",
    "DISLIKES",
    "ASSOCIATED_WITH",
    "EXPERIENCED",
    "HAS_SKILL",
    "OWNS",
    "HAS_IMPORTANT_DATE",
    "IS",
    "BELIEVES",
    "FEARS",
    "WANTS_TO_ACHIEVE",
    "STRUGGLES_WITH",
    "CARES_FOR",
    "DEPENDS_ON",
    "REGULARLY_DOES",
    "PREFERS_OVER",
    "USED_TO_BE",
    "SENSITIVE_TO",
    "UNCOMFORTABLE_WITH",
)

# Display labels for the review UI
RELATION_KIND_LABELS = {
    kind: kind.replace("_", " ").capitalize() for kind in RELATION_KINDS
}

# Pairs that directly contradict each other when the object is the same
OPPOSITE_KINDS = {
    "LIKES": ("DISLIKES", "UNCOMFORTABLE_WITH"),
    "DISLIKES": ("LIKES",),
    "WANTS_TO_ACHIEVE": ("STRUGGLES_WITH",),
}


# =============================================================================
# FACT ATTRIBUTES
# =============================================================================

INTENSITIES = ("weak", "medium", "strong", "very_strong")

# Temporal status of a fact
FACT_STATUSES = ("current", "past", "future", "aspiration")
DEFAULT_FACT_STATUS = "current"

# Sub-kinds of an IS fact, stored as metadata.category
IDENTITY_CATEGORIES = ("profession", "role", "trait", "identity", "health", "relationship_status")

# Provenance of a fact
FACT_SOURCES = ("manual", "ai_extraction", "question_mode", "voice_note", "import")

# Review state machine for staged facts
REVIEW_STATUSES = ("pending", "approved", "rejected", "edited")

DEFAULT_CONFIDENCE = 0.5
EDITED_CONFIDENCE = 1.0  # User-confirmed data is maximally trusted
EDITED_REVIEW_NOTE = "User edited before approving"


# =============================================================================
# PERSON CLASSIFICATION
# =============================================================================

PERSON_TYPES = ("primary", "mentioned", "placeholder")
DATA_COMPLETENESS = ("minimal", "partial", "complete")
IMPORTANCE_LEVELS = ("unknown", "peripheral", "important", "very_important")
PERSON_STATUSES = ("active", "archived", "deceased", "placeholder", "merged")
ADDED_BY = ("user", "ai_extraction", "auto_created", "import")


# =============================================================================
# AUTO-ACCEPT THRESHOLDS
# =============================================================================
# Only consulted when auto-accept is switched on in the application context.
# Kinds missing from this map (BELIEVES included) always go to review.

SAFE_KINDS_THRESHOLD = 0.85
SENSITIVE_KINDS_THRESHOLD = 0.90
PERSON_KINDS_THRESHOLD = 0.95

AUTO_ACCEPT_THRESHOLDS = {
    "LIKES": SAFE_KINDS_THRESHOLD,
    "DISLIKES": SAFE_KINDS_THRESHOLD,
    "KNOWS": SAFE_KINDS_THRESHOLD,
    "ASSOCIATED_WITH": SAFE_KINDS_THRESHOLD,
    "EXPERIENCED": SAFE_KINDS_THRESHOLD,
    "FEARS": SENSITIVE_KINDS_THRESHOLD,
    "STRUGGLES_WITH": SENSITIVE_KINDS_THRESHOLD,
    "UNCOMFORTABLE_WITH": SENSITIVE_KINDS_THRESHOLD,
    "SENSITIVE_TO": SENSITIVE_KINDS_THRESHOLD,
    "CARES_FOR": PERSON_KINDS_THRESHOLD,
    "DEPENDS_ON": PERSON_KINDS_THRESHOLD,
}


def should_auto_accept(relation_kind: str, confidence: float) -> bool:
    """Check whether a candidate is confident enough to skip manual review."""
    threshold = AUTO_ACCEPT_THRESHOLDS.get(relation_kind)
    if threshold is None:
        return False
    return confidence >= threshold
