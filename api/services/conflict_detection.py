"""
Conflict detection between a proposed fact and a person's existing facts.

Conflicts are informational: they are attached to the extraction outcome
for the reviewer and never block staging.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from config.relations import OPPOSITE_KINDS

logger = logging.getLogger(__name__)

# IS labels that cannot hold at the same time
CONFLICTING_IDENTITIES = {
    "vegan": ("vegetarian", "pescatarian", "meat-eater"),
    "vegetarian": ("vegan", "pescatarian", "meat-eater"),
    "atheist": ("christian", "muslim", "jewish", "hindu", "buddhist"),
    "democrat": ("republican",),
    "cat person": ("dog person",),
}


@dataclass
class DetectedConflict:
    """A contradiction between a proposed fact and an existing one."""
    conflict_type: str  # direct_contradiction, identity_conflict, temporal_conflict
    severity: str  # critical, high, medium, low
    description: str
    relation_kind: str
    object_label: str
    existing_kind: str
    existing_label: str
    existing_fact_id: Optional[str] = None
    suggested_resolution: str = "user_review_required"

    def to_dict(self) -> dict:
        return {
            "type": self.conflict_type,
            "severity": self.severity,
            "description": self.description,
            "new_relation": {
                "relation_kind": self.relation_kind,
                "object_label": self.object_label,
            },
            "existing_relation": {
                "relation_kind": self.existing_kind,
                "object_label": self.existing_label,
                "id": self.existing_fact_id,
            },
            "suggested_resolution": self.suggested_resolution,
        }


def _same_object(a: str, b: str) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def _are_opposites(kind_a: str, kind_b: str) -> bool:
    return kind_b in OPPOSITE_KINDS.get(kind_a, ()) or kind_a in OPPOSITE_KINDS.get(kind_b, ())


def _identities_conflict(a: str, b: str) -> bool:
    a, b = a.strip().lower(), b.strip().lower()
    return b in CONFLICTING_IDENTITIES.get(a, ()) or a in CONFLICTING_IDENTITIES.get(b, ())


def detect_conflicts(
    relation_kind: str,
    object_label: str,
    existing: Iterable,
    status: Optional[str] = None,
) -> list[DetectedConflict]:
    """
    Compare a proposed fact against existing facts of the same subject.

    Args:
        relation_kind: Proposed kind
        object_label: Proposed label
        existing: Objects with relation_kind, object_label, status and id
        status: Proposed temporal status

    Returns:
        Conflicts found, in existing-fact order
    """
    conflicts = []
    for fact in existing:
        # Past facts only matter when the new one claims the present
        if fact.status == "past" and status not in (None, "current"):
            continue

        if _are_opposites(relation_kind, fact.relation_kind) and _same_object(object_label, fact.object_label):
            conflicts.append(DetectedConflict(
                conflict_type="direct_contradiction",
                severity="critical",
                description=(
                    f"Cannot both {relation_kind.lower()} and "
                    f"{fact.relation_kind.lower()} \"{object_label}\""
                ),
                relation_kind=relation_kind,
                object_label=object_label,
                existing_kind=fact.relation_kind,
                existing_label=fact.object_label,
                existing_fact_id=getattr(fact, "id", None),
            ))
        elif relation_kind == "IS" and fact.relation_kind == "IS" and _identities_conflict(object_label, fact.object_label):
            conflicts.append(DetectedConflict(
                conflict_type="identity_conflict",
                severity="high",
                description=f"Cannot be both \"{fact.object_label}\" and \"{object_label}\"",
                relation_kind=relation_kind,
                object_label=object_label,
                existing_kind=fact.relation_kind,
                existing_label=fact.object_label,
                existing_fact_id=getattr(fact, "id", None),
                suggested_resolution="replace_old",
            ))
        elif (
            relation_kind == "USED_TO_BE"
            and fact.relation_kind == "IS"
            and _same_object(object_label, fact.object_label)
        ):
            conflicts.append(DetectedConflict(
                conflict_type="temporal_conflict",
                severity="low",
                description=f"Cannot currently be \"{fact.object_label}\" if they used to be it",
                relation_kind=relation_kind,
                object_label=object_label,
                existing_kind=fact.relation_kind,
                existing_label=fact.object_label,
                existing_fact_id=getattr(fact, "id", None),
                suggested_resolution="mark_old_as_past",
            ))

    if conflicts:
        logger.info(f"Detected {len(conflicts)} conflicts for {relation_kind} '{object_label}'")
    return conflicts
