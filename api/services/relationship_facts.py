"""
Canonical relationship graph for Friends.

A RelationshipFact is a labelled edge from a person (the subject) to an
object label, e.g. Sarah LIKES "hiking". Facts are soft-deleted. Within the
active set a (subject, kind, exact label) triple is unique; this is checked
when a fact is created, not enforced by the schema.
"""
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from api.utils.datetime_utils import parse_iso, to_iso, utc_now
from api.utils.db_paths import get_db_path
from config.relations import DEFAULT_CONFIDENCE, DEFAULT_FACT_STATUS

logger = logging.getLogger(__name__)


@dataclass
class RelationshipFact:
    """A committed fact about a person."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = ""
    subject_id: str = ""
    relation_kind: str = ""
    object_label: str = ""
    object_type: Optional[str] = None
    intensity: Optional[str] = None  # weak, medium, strong, very_strong
    confidence: float = DEFAULT_CONFIDENCE
    category: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    status: str = DEFAULT_FACT_STATUS  # current, past, future, aspiration
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    source: str = "manual"
    deleted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "subject_id": self.subject_id,
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
            "source": self.source,
            "deleted_at": to_iso(self.deleted_at),
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "RelationshipFact":
        """Create from database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            subject_id=row["subject_id"],
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
            source=row["source"],
            deleted_at=parse_iso(row["deleted_at"]),
            created_at=parse_iso(row["created_at"]) or utc_now(),
            updated_at=parse_iso(row["updated_at"]) or utc_now(),
        )


class RelationshipFactStore:
    """SQLite-backed store for committed relationship facts."""

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
                CREATE TABLE IF NOT EXISTS relationship_facts (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    subject_id TEXT NOT NULL,
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
                    source TEXT NOT NULL,
                    deleted_at TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_facts_subject
                ON relationship_facts(user_id, subject_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_facts_triple
                ON relationship_facts(subject_id, relation_kind, object_label)
            """)
            conn.commit()
        finally:
            conn.close()

    def _insert(self, conn: sqlite3.Connection, fact: RelationshipFact) -> None:
        """Insert a fact using an existing connection (caller commits)."""
        conn.execute("""
            INSERT INTO relationship_facts
            (id, user_id, subject_id, relation_kind, object_label, object_type,
             intensity, confidence, category, metadata, status, valid_from, valid_to,
             source, deleted_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            fact.id,
            fact.user_id,
            fact.subject_id,
            fact.relation_kind,
            fact.object_label,
            fact.object_type,
            fact.intensity,
            fact.confidence,
            fact.category,
            json.dumps(fact.metadata or {}),
            fact.status,
            to_iso(fact.valid_from),
            to_iso(fact.valid_to),
            fact.source,
            to_iso(fact.deleted_at),
            to_iso(fact.created_at),
            to_iso(fact.updated_at),
        ))

    def _find_active_duplicate(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        subject_id: str,
        relation_kind: str,
        object_label: str,
    ) -> Optional[RelationshipFact]:
        row = conn.execute("""
            SELECT * FROM relationship_facts
            WHERE user_id = ? AND subject_id = ? AND relation_kind = ?
              AND object_label = ? AND deleted_at IS NULL
            ORDER BY created_at ASC
            LIMIT 1
        """, (user_id, subject_id, relation_kind, object_label)).fetchone()
        return RelationshipFact.from_row(row) if row else None

    def find_active_duplicate(
        self,
        user_id: str,
        subject_id: str,
        relation_kind: str,
        object_label: str,
    ) -> Optional[RelationshipFact]:
        """Exact (subject, kind, label) match among non-deleted facts."""
        conn = self._get_connection()
        try:
            return self._find_active_duplicate(conn, user_id, subject_id, relation_kind, object_label)
        finally:
            conn.close()

    def add(self, fact: RelationshipFact) -> RelationshipFact:
        """Insert a fact. Callers run the validator first."""
        conn = self._get_connection()
        try:
            self._insert(conn, fact)
            conn.commit()
        finally:
            conn.close()
        logger.info(
            f"Added fact {fact.relation_kind} '{fact.object_label}' "
            f"for person {fact.subject_id[:8]} ({fact.source})"
        )
        return fact

    def get_by_id(self, user_id: str, fact_id: str) -> Optional[RelationshipFact]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM relationship_facts WHERE id = ? AND user_id = ?",
                (fact_id, user_id),
            ).fetchone()
            return RelationshipFact.from_row(row) if row else None
        finally:
            conn.close()

    def list_for_person(
        self,
        user_id: str,
        subject_id: str,
        include_deleted: bool = False,
    ) -> list[RelationshipFact]:
        """Facts about a person, newest first."""
        conn = self._get_connection()
        try:
            query = """
                SELECT * FROM relationship_facts
                WHERE user_id = ? AND subject_id = ?
            """
            if not include_deleted:
                query += " AND deleted_at IS NULL"
            query += " ORDER BY created_at DESC"
            rows = conn.execute(query, (user_id, subject_id)).fetchall()
            return [RelationshipFact.from_row(row) for row in rows]
        finally:
            conn.close()

    def count_for_user(self, user_id: str) -> int:
        conn = self._get_connection()
        try:
            row = conn.execute("""
                SELECT COUNT(*) AS count FROM relationship_facts
                WHERE user_id = ? AND deleted_at IS NULL
            """, (user_id,)).fetchone()
            return row["count"]
        finally:
            conn.close()

    def soft_delete(self, user_id: str, fact_id: str) -> bool:
        now = to_iso(utc_now())
        conn = self._get_connection()
        try:
            cursor = conn.execute("""
                UPDATE relationship_facts SET deleted_at = ?, updated_at = ?
                WHERE id = ? AND user_id = ? AND deleted_at IS NULL
            """, (now, now, fact_id, user_id))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def _reassign_subject(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        source_id: str,
        target_id: str,
    ) -> tuple[int, int]:
        """
        Move every fact of source onto target (caller owns the transaction).

        Moved facts that would duplicate an active target fact are
        soft-deleted instead.

        Returns:
            (moved, deduplicated)
        """
        now = to_iso(utc_now())
        rows = conn.execute("""
            SELECT * FROM relationship_facts
            WHERE user_id = ? AND subject_id = ? AND deleted_at IS NULL
        """, (user_id, source_id)).fetchall()

        moved = 0
        deduplicated = 0
        for row in rows:
            fact = RelationshipFact.from_row(row)
            if self._find_active_duplicate(conn, user_id, target_id, fact.relation_kind, fact.object_label):
                conn.execute("""
                    UPDATE relationship_facts SET subject_id = ?, deleted_at = ?, updated_at = ?
                    WHERE id = ?
                """, (target_id, now, now, fact.id))
                deduplicated += 1
            else:
                conn.execute("""
                    UPDATE relationship_facts SET subject_id = ?, updated_at = ?
                    WHERE id = ?
                """, (target_id, now, fact.id))
                moved += 1

        # Already-deleted facts follow the person too
        conn.execute("""
            UPDATE relationship_facts SET subject_id = ?
            WHERE user_id = ? AND subject_id = ? AND deleted_at IS NOT NULL
        """, (target_id, user_id, source_id))
        return moved, deduplicated


# Singleton instance
_fact_store: Optional[RelationshipFactStore] = None


def get_fact_store(db_path: Optional[str] = None) -> RelationshipFactStore:
    """Get the singleton RelationshipFactStore instance."""
    global _fact_store
    if _fact_store is None or (db_path and _fact_store.db_path != db_path):
        _fact_store = RelationshipFactStore(db_path)
    return _fact_store


def reset_fact_store() -> None:
    global _fact_store
    _fact_store = None
