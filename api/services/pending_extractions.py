"""
Pending Extraction Store for Friends.

Holds validated-but-unreviewed relationship facts proposed by the
extraction collaborator. Each record moves out of 'pending' exactly once:

    pending -> approved | rejected | edited

Transitions are performed by the review engine; this store only stages,
lists and reports. Listing is lowest confidence first, so the least
certain proposals get looked at first.
"""
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from api.services.fact_validator import CandidateFact
from api.utils.datetime_utils import parse_iso, to_iso, utc_now
from api.utils.db_paths import get_db_path
from config.relations import DEFAULT_CONFIDENCE, DEFAULT_FACT_STATUS, REVIEW_STATUSES

logger = logging.getLogger(__name__)


@dataclass
class PendingExtraction:
    """A staged relationship fact awaiting review."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = ""
    story_id: Optional[str] = None
    subject_id: str = ""
    subject_name: str = ""
    relation_kind: str = ""
    object_label: str = ""
    object_type: Optional[str] = None
    intensity: Optional[str] = None
    confidence: float = DEFAULT_CONFIDENCE
    category: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    status: str = DEFAULT_FACT_STATUS
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    review_status: str = "pending"
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    extraction_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.review_status == "pending"

    def to_candidate(self) -> CandidateFact:
        """Rebuild the candidate for commit-time re-validation."""
        return CandidateFact(
            subject_id=self.subject_id,
            subject_name=self.subject_name,
            relation_kind=self.relation_kind,
            object_label=self.object_label,
            object_type=self.object_type,
            intensity=self.intensity,
            confidence=self.confidence,
            category=self.category,
            metadata=dict(self.metadata),
            status=self.status,
            valid_from=self.valid_from,
            valid_to=self.valid_to,
            story_id=self.story_id,
            extraction_reason=self.extraction_reason,
        )

    @classmethod
    def from_candidate(cls, user_id: str, candidate: CandidateFact) -> "PendingExtraction":
        return cls(
            user_id=user_id,
            story_id=candidate.story_id,
            subject_id=candidate.subject_id,
            subject_name=candidate.subject_name,
            relation_kind=candidate.relation_kind,
            object_label=candidate.object_label,
            object_type=candidate.object_type,
            intensity=candidate.intensity,
            confidence=candidate.confidence,
            category=candidate.category,
            metadata=dict(candidate.metadata or {}),
            status=candidate.status or DEFAULT_FACT_STATUS,
            valid_from=candidate.valid_from,
            valid_to=candidate.valid_to,
            extraction_reason=candidate.extraction_reason,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "story_id": self.story_id,
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
            "valid_from": to_iso(self.valid_from),
            "valid_to": to_iso(self.valid_to),
            "review_status": self.review_status,
            "reviewed_at": to_iso(self.reviewed_at),
            "review_notes": self.review_notes,
            "extraction_reason": self.extraction_reason,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PendingExtraction":
        """Create from database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            story_id=row["story_id"],
            subject_id=row["subject_id"],
            subject_name=row["subject_name"] or "",
            relation_kind=row["relation_kind"],
            object_label=row["object_label"],
            object_type=row["object_type"],
            intensity=row["intensity"],
            confidence=row["confidence"] if row["confidence"] is not None else DEFAULT_CONFIDENCE,
            category=row["category"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            status=row["status"] or DEFAULT_FACT_STATUS,
            valid_from=parse_iso(row["valid_from"]),
            valid_to=parse_iso(row["valid_to"]),
            review_status=row["review_status"],
            reviewed_at=parse_iso(row["reviewed_at"]),
            review_notes=row["review_notes"],
            extraction_reason=row["extraction_reason"],
            created_at=parse_iso(row["created_at"]) or utc_now(),
            updated_at=parse_iso(row["updated_at"]) or utc_now(),
        )


class PendingExtractionStore:
    """SQLite-backed staging area for extracted facts."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_db_path()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pending_extractions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    story_id TEXT,
                    subject_id TEXT NOT NULL,
                    subject_name TEXT,
                    relation_kind TEXT NOT NULL,
                    object_label TEXT NOT NULL,
                    object_type TEXT,
                    intensity TEXT,
                    confidence REAL DEFAULT 0.5,
                    category TEXT,
                    metadata TEXT,
                    status TEXT DEFAULT 'current',
                    valid_from TEXT,
                    valid_to TEXT,
                    review_status TEXT NOT NULL DEFAULT 'pending',
                    reviewed_at TEXT,
                    review_notes TEXT,
                    extraction_reason TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_pending_user_status
                ON pending_extractions(user_id, review_status, confidence)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_pending_story
                ON pending_extractions(story_id)
            """)
            conn.commit()
        finally:
            conn.close()

    def _insert(self, conn: sqlite3.Connection, item: PendingExtraction) -> None:
        conn.execute("""
            INSERT INTO pending_extractions
            (id, user_id, story_id, subject_id, subject_name, relation_kind, object_label,
             object_type, intensity, confidence, category, metadata, status, valid_from,
             valid_to, review_status, reviewed_at, review_notes, extraction_reason,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            item.id,
            item.user_id,
            item.story_id,
            item.subject_id,
            item.subject_name,
            item.relation_kind,
            item.object_label,
            item.object_type,
            item.intensity,
            item.confidence,
            item.category,
            json.dumps(item.metadata or {}),
            item.status,
            to_iso(item.valid_from),
            to_iso(item.valid_to),
            item.review_status,
            to_iso(item.reviewed_at),
            item.review_notes,
            item.extraction_reason,
            to_iso(item.created_at),
            to_iso(item.updated_at),
        ))

    def find_pending_duplicate(
        self,
        user_id: str,
        subject_id: str,
        relation_kind: str,
        object_label: str,
    ) -> Optional[PendingExtraction]:
        """An identical proposal that is still awaiting review."""
        conn = self._get_connection()
        try:
            row = conn.execute("""
                SELECT * FROM pending_extractions
                WHERE user_id = ? AND subject_id = ? AND relation_kind = ?
                  AND object_label = ? AND review_status = 'pending'
                LIMIT 1
            """, (user_id, subject_id, relation_kind, object_label)).fetchone()
            return PendingExtraction.from_row(row) if row else None
        finally:
            conn.close()

    def stage(self, user_id: str, candidate: CandidateFact) -> Optional[PendingExtraction]:
        """
        Stage a validated candidate.

        Returns:
            The new PendingExtraction, or None if an identical proposal is
            already pending.
        """
        existing = self.find_pending_duplicate(
            user_id, candidate.subject_id, candidate.relation_kind, candidate.object_label
        )
        if existing:
            logger.debug(
                f"Skipping staged duplicate {candidate.relation_kind} '{candidate.object_label}' "
                f"(pending {existing.id[:8]})"
            )
            return None

        item = PendingExtraction.from_candidate(user_id, candidate)
        conn = self._get_connection()
        try:
            self._insert(conn, item)
            conn.commit()
        finally:
            conn.close()

        logger.info(
            f"Staged {item.relation_kind} '{item.object_label}' for {item.subject_name or item.subject_id[:8]} "
            f"(confidence {item.confidence:.2f})"
        )
        return item

    def get_by_id(self, user_id: str, item_id: str) -> Optional[PendingExtraction]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM pending_extractions WHERE id = ? AND user_id = ?",
                (item_id, user_id),
            ).fetchone()
            return PendingExtraction.from_row(row) if row else None
        finally:
            conn.close()

    def list_pending(
        self,
        user_id: str,
        person_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[PendingExtraction]:
        """
        Pending records, lowest confidence first (ties by creation time).

        Args:
            user_id: Owning user
            person_id: Optional filter by subject
            limit: Maximum items to return
            offset: Offset for pagination
        """
        conn = self._get_connection()
        try:
            if person_id:
                rows = conn.execute("""
                    SELECT * FROM pending_extractions
                    WHERE user_id = ? AND review_status = 'pending' AND subject_id = ?
                    ORDER BY confidence ASC, created_at ASC
                    LIMIT ? OFFSET ?
                """, (user_id, person_id, limit, offset)).fetchall()
            else:
                rows = conn.execute("""
                    SELECT * FROM pending_extractions
                    WHERE user_id = ? AND review_status = 'pending'
                    ORDER BY confidence ASC, created_at ASC
                    LIMIT ? OFFSET ?
                """, (user_id, limit, offset)).fetchall()
            return [PendingExtraction.from_row(row) for row in rows]
        finally:
            conn.close()

    def list_for_story(self, user_id: str, story_id: str) -> list[PendingExtraction]:
        """Every record staged from a story, any review status."""
        conn = self._get_connection()
        try:
            rows = conn.execute("""
                SELECT * FROM pending_extractions
                WHERE user_id = ? AND story_id = ?
                ORDER BY created_at ASC
            """, (user_id, story_id)).fetchall()
            return [PendingExtraction.from_row(row) for row in rows]
        finally:
            conn.close()

    def count_pending(self, user_id: str) -> int:
        conn = self._get_connection()
        try:
            row = conn.execute("""
                SELECT COUNT(*) AS count FROM pending_extractions
                WHERE user_id = ? AND review_status = 'pending'
            """, (user_id,)).fetchone()
            return row["count"]
        finally:
            conn.close()

    def get_stats(self, user_id: str) -> dict:
        """
        Counts by review status.

        Returns:
            Dict with total_pending, total_reviewed and by_status
        """
        conn = self._get_connection()
        try:
            rows = conn.execute("""
                SELECT review_status, COUNT(*) AS count
                FROM pending_extractions
                WHERE user_id = ?
                GROUP BY review_status
            """, (user_id,)).fetchall()
        finally:
            conn.close()

        by_status = {status: 0 for status in REVIEW_STATUSES}
        by_status.update({row["review_status"]: row["count"] for row in rows})
        return {
            "total_pending": by_status["pending"],
            "total_reviewed": sum(c for s, c in by_status.items() if s != "pending"),
            "by_status": by_status,
        }

    def _reassign_subject(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        source_id: str,
        target_id: str,
    ) -> int:
        """Point pending records at a merge target (caller owns the transaction)."""
        cursor = conn.execute("""
            UPDATE pending_extractions SET subject_id = ?, updated_at = ?
            WHERE user_id = ? AND subject_id = ? AND review_status = 'pending'
        """, (target_id, to_iso(utc_now()), user_id, source_id))
        return cursor.rowcount


# Singleton instance
_pending_store: Optional[PendingExtractionStore] = None


def get_pending_store(db_path: Optional[str] = None) -> PendingExtractionStore:
    """Get the singleton PendingExtractionStore instance."""
    global _pending_store
    if _pending_store is None or (db_path and _pending_store.db_path != db_path):
        _pending_store = PendingExtractionStore(db_path)
    return _pending_store


def reset_pending_store() -> None:
    global _pending_store
    _pending_store = None
