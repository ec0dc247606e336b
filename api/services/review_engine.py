"""
Review Engine for Friends.

Turns staged extractions into canonical relationship facts. Each transition
(approve, reject, edit-and-approve) runs in its own SQLite transaction
opened with BEGIN IMMEDIATE and flips the record with a conditional
UPDATE ... WHERE review_status = 'pending'. Two reviewers racing on the
same record therefore produce one fact and one AlreadyReviewed.

Commit-time rules:
- kind, status and metadata are re-validated; a failure leaves the record
  pending so it can still be edited
- a subject that has since been merged is redirected to the surviving person
- if an identical active fact already exists, no new fact is written; the
  record still transitions and the outcome reports duplicate_of
"""
import logging
import sqlite3
from dataclasses import dataclass, replace
from typing import Optional

from api.services.errors import AlreadyReviewed, DuplicateFact, NotFound
from api.services.fact_validator import CandidateFact, normalize_candidate
from api.services.pending_extractions import (
    PendingExtraction,
    PendingExtractionStore,
    get_pending_store,
)
from api.services.person_store import PersonStore, get_person_store
from api.services.relationship_facts import (
    RelationshipFact,
    RelationshipFactStore,
    get_fact_store,
)
from api.utils.datetime_utils import to_iso, utc_now
from config.relations import EDITED_CONFIDENCE, EDITED_REVIEW_NOTE, IDENTITY_CATEGORIES

logger = logging.getLogger(__name__)

REVIEW_SOURCE = "ai_extraction"


@dataclass
class ReviewOverrides:
    """User edits applied by edit-and-approve. None leaves a field as extracted."""
    relation_kind: Optional[str] = None
    object_label: Optional[str] = None
    intensity: Optional[str] = None
    category: Optional[str] = None

    def apply(self, candidate: CandidateFact) -> CandidateFact:
        changes = {
            name: value
            for name, value in (
                ("relation_kind", self.relation_kind),
                ("object_label", self.object_label),
                ("intensity", self.intensity),
                ("category", self.category),
            )
            if value is not None
        }
        # An IS fact keeps its sub-kind in metadata; a matching category edit supplies it
        kind = changes.get("relation_kind", candidate.relation_kind)
        if kind == "IS" and self.category in IDENTITY_CATEGORIES:
            changes["metadata"] = {**(candidate.metadata or {}), "category": self.category}
        return replace(candidate, **changes)


@dataclass
class ReviewOutcome:
    """Result of a review transition."""
    extraction: PendingExtraction
    fact: Optional[RelationshipFact] = None
    duplicate_of: Optional[str] = None  # existing fact id when nothing new was written

    def to_dict(self) -> dict:
        return {
            "extraction": self.extraction.to_dict(),
            "fact": self.fact.to_dict() if self.fact else None,
            "duplicate_of": self.duplicate_of,
        }


class ReviewEngine:
    """Approve, reject and edit-and-approve pending extractions."""

    def __init__(
        self,
        pending_store: Optional[PendingExtractionStore] = None,
        fact_store: Optional[RelationshipFactStore] = None,
        person_store: Optional[PersonStore] = None,
    ):
        self.pending = pending_store or get_pending_store()
        self.facts = fact_store or get_fact_store()
        self.people = person_store or get_person_store()
        self.db_path = self.pending.db_path

    def _begin(self) -> sqlite3.Connection:
        """Open a connection holding the write lock."""
        conn = sqlite3.connect(self.db_path, timeout=10.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("BEGIN IMMEDIATE")
        return conn

    def _load_pending(self, conn: sqlite3.Connection, user_id: str, extraction_id: str) -> PendingExtraction:
        row = conn.execute(
            "SELECT * FROM pending_extractions WHERE id = ? AND user_id = ?",
            (extraction_id, user_id),
        ).fetchone()
        if row is None:
            raise NotFound("Pending extraction", extraction_id)
        item = PendingExtraction.from_row(row)
        if not item.is_pending:
            raise AlreadyReviewed(extraction_id, item.review_status)
        return item

    def _flip(
        self,
        conn: sqlite3.Connection,
        item: PendingExtraction,
        review_status: str,
        review_notes: Optional[str] = None,
    ) -> PendingExtraction:
        """Conditional transition out of pending."""
        now = utc_now()
        cursor = conn.execute("""
            UPDATE pending_extractions
            SET review_status = ?, reviewed_at = ?, review_notes = ?, updated_at = ?,
                subject_id = ?, relation_kind = ?, object_label = ?, intensity = ?,
                category = ?, confidence = ?
            WHERE id = ? AND user_id = ? AND review_status = 'pending'
        """, (
            review_status,
            to_iso(now),
            review_notes,
            to_iso(now),
            item.subject_id,
            item.relation_kind,
            item.object_label,
            item.intensity,
            item.category,
            item.confidence,
            item.id,
            item.user_id,
        ))
        if cursor.rowcount == 0:
            raise AlreadyReviewed(item.id, "unknown")
        return replace(
            item,
            review_status=review_status,
            reviewed_at=now,
            review_notes=review_notes,
            updated_at=now,
        )

    def _commit_fact(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        candidate: CandidateFact,
    ) -> tuple[CandidateFact, Optional[RelationshipFact], Optional[str]]:
        """
        Re-validate a candidate and write it as a fact inside an open transaction.

        Returns:
            (normalised candidate, new fact or None, existing duplicate id or None)
        """
        normalized = normalize_candidate(candidate)

        subject = self.people._resolve_canonical(conn, user_id, normalized.subject_id)
        if subject is None:
            raise NotFound("Person", normalized.subject_id)
        if subject.id != normalized.subject_id:
            logger.info(f"Redirecting merged subject {normalized.subject_id[:8]} to {subject.id[:8]}")
            normalized = replace(normalized, subject_id=subject.id)

        existing = self.facts._find_active_duplicate(
            conn, user_id, normalized.subject_id, normalized.relation_kind, normalized.object_label
        )
        if existing:
            logger.debug(
                f"Fact {normalized.relation_kind} '{normalized.object_label}' already exists "
                f"as {existing.id[:8]}, not writing a duplicate"
            )
            return normalized, None, existing.id

        fact = RelationshipFact(
            user_id=user_id,
            subject_id=normalized.subject_id,
            relation_kind=normalized.relation_kind,
            object_label=normalized.object_label,
            object_type=normalized.object_type,
            intensity=normalized.intensity,
            confidence=normalized.confidence,
            category=normalized.category,
            metadata=normalized.metadata,
            status=normalized.status,
            valid_from=normalized.valid_from,
            valid_to=normalized.valid_to,
            source=REVIEW_SOURCE,
        )
        self.facts._insert(conn, fact)
        return normalized, fact, None

    def _review(
        self,
        user_id: str,
        extraction_id: str,
        review_status: str,
        overrides: Optional[ReviewOverrides] = None,
    ) -> ReviewOutcome:
        conn = self._begin()
        try:
            item = self._load_pending(conn, user_id, extraction_id)
            candidate = item.to_candidate()
            notes = None
            if overrides is not None:
                candidate = replace(overrides.apply(candidate), confidence=EDITED_CONFIDENCE)
                notes = EDITED_REVIEW_NOTE

            normalized, fact, duplicate_of = self._commit_fact(conn, user_id, candidate)
            item = replace(
                item,
                subject_id=normalized.subject_id,
                relation_kind=normalized.relation_kind,
                object_label=normalized.object_label,
                intensity=normalized.intensity,
                category=normalized.category,
                confidence=normalized.confidence,
            )
            item = self._flip(conn, item, review_status, notes)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        logger.info(
            f"Review {extraction_id[:8]} -> {review_status}: {item.relation_kind} '{item.object_label}'"
            + (f" (duplicate of {duplicate_of[:8]})" if duplicate_of else "")
        )
        return ReviewOutcome(extraction=item, fact=fact, duplicate_of=duplicate_of)

    def approve(self, user_id: str, extraction_id: str) -> ReviewOutcome:
        """
        Approve a pending extraction and commit it as a fact.

        Raises:
            NotFound: no such record, or its subject person is gone
            AlreadyReviewed: record is no longer pending
            CandidateRejected: re-validation failed (record stays pending)
        """
        return self._review(user_id, extraction_id, "approved")

    def edit_and_approve(
        self,
        user_id: str,
        extraction_id: str,
        overrides: ReviewOverrides,
    ) -> ReviewOutcome:
        """
        Apply user edits, then commit with confidence 1.0.

        Raises:
            Same as approve()
        """
        return self._review(user_id, extraction_id, "edited", overrides)

    def reject(self, user_id: str, extraction_id: str, reason: Optional[str] = None) -> ReviewOutcome:
        """
        Reject a pending extraction. No fact is written.

        Raises:
            NotFound, AlreadyReviewed
        """
        conn = self._begin()
        try:
            item = self._load_pending(conn, user_id, extraction_id)
            item = self._flip(conn, item, "rejected", reason)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        logger.info(f"Review {extraction_id[:8]} -> rejected" + (f": {reason}" if reason else ""))
        return ReviewOutcome(extraction=item)

    def commit_candidate(self, user_id: str, candidate: CandidateFact) -> RelationshipFact:
        """
        Write a candidate straight into the graph, skipping review (auto-accept).

        Raises:
            CandidateRejected, DuplicateFact, NotFound
        """
        conn = self._begin()
        try:
            normalized, fact, duplicate_of = self._commit_fact(conn, user_id, candidate)
            if duplicate_of:
                raise DuplicateFact(
                    normalized.subject_id,
                    normalized.relation_kind,
                    normalized.object_label,
                    existing_id=duplicate_of,
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        logger.info(
            f"Auto-accepted {fact.relation_kind} '{fact.object_label}' "
            f"(confidence {fact.confidence:.2f})"
        )
        return fact


# Singleton instance
_review_engine: Optional[ReviewEngine] = None


def get_review_engine() -> ReviewEngine:
    """Get the singleton ReviewEngine instance."""
    global _review_engine
    if _review_engine is None:
        _review_engine = ReviewEngine()
    return _review_engine


def reset_review_engine() -> None:
    global _review_engine
    _review_engine = None
