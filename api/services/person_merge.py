"""
Person merging for Friends.

Collapses a duplicate person into a surviving one in a single transaction:
- source is marked merged and points at target (canonical_id)
- facts about source are rewritten onto target; ones that would duplicate
  an existing target fact are soft-deleted
- pending extractions about source are redirected to target
"""
import logging
import sqlite3
from dataclasses import dataclass
from typing import Optional

from api.services.pending_extractions import PendingExtractionStore, get_pending_store
from api.services.person_store import Person, PersonStore, get_person_store
from api.services.relationship_facts import RelationshipFactStore, get_fact_store

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    target: Person
    source_id: str
    facts_moved: int = 0
    facts_deduplicated: int = 0
    pending_redirected: int = 0

    def to_dict(self) -> dict:
        return {
            "target": self.target.to_dict(),
            "source_id": self.source_id,
            "facts_moved": self.facts_moved,
            "facts_deduplicated": self.facts_deduplicated,
            "pending_redirected": self.pending_redirected,
        }


def merge_people(
    user_id: str,
    source_id: str,
    target_id: str,
    person_store: Optional[PersonStore] = None,
    fact_store: Optional[RelationshipFactStore] = None,
    pending_store: Optional[PendingExtractionStore] = None,
) -> MergeResult:
    """
    Merge source into target.

    Raises:
        LookupError: either person missing
        ValueError: self-merge or a side already merged
    """
    people = person_store or get_person_store()
    facts = fact_store or get_fact_store()
    pending = pending_store or get_pending_store()

    conn = sqlite3.connect(people.db_path, timeout=10.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("BEGIN IMMEDIATE")
        target = people._merge_in_transaction(conn, user_id, source_id, target_id)
        moved, deduplicated = facts._reassign_subject(conn, user_id, source_id, target_id)
        redirected = pending._reassign_subject(conn, user_id, source_id, target_id)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    logger.info(
        f"Merge {source_id[:8]} -> {target_id[:8]}: {moved} facts moved, "
        f"{deduplicated} deduplicated, {redirected} pending redirected"
    )
    return MergeResult(
        target=target,
        source_id=source_id,
        facts_moved=moved,
        facts_deduplicated=deduplicated,
        pending_redirected=redirected,
    )
