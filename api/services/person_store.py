"""
Person records for Friends.

A Person is created the first time someone is referenced (by hand or by
extraction) and is never hard-deleted: archiving, death and merging are
status transitions. A merged person keeps a canonical_id pointing at the
surviving record and is excluded from lookups.
"""
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from api.utils.datetime_utils import parse_iso, to_iso, utc_now
from api.utils.db_paths import get_db_path
from config.relations import (
    ADDED_BY,
    DATA_COMPLETENESS,
    IMPORTANCE_LEVELS,
    PERSON_STATUSES,
    PERSON_TYPES,
)

logger = logging.getLogger(__name__)


@dataclass
class Person:
    """Identity record for someone the user knows or has mentioned."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = ""
    name: str = ""
    nickname: Optional[str] = None
    person_type: str = "placeholder"  # primary, mentioned, placeholder
    data_completeness: str = "minimal"  # minimal, partial, complete
    importance_to_user: str = "unknown"  # unknown, peripheral, important, very_important
    status: str = "active"  # active, archived, deceased, placeholder, merged
    added_by: str = "user"  # user, ai_extraction, auto_created, import
    date_of_birth: Optional[datetime] = None
    mention_count: int = 0
    canonical_id: Optional[str] = None  # merge target when status == merged
    merged_from: list[str] = field(default_factory=list)
    extraction_context: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_merged(self) -> bool:
        return self.status == "merged"

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "nickname": self.nickname,
            "person_type": self.person_type,
            "data_completeness": self.data_completeness,
            "importance_to_user": self.importance_to_user,
            "status": self.status,
            "added_by": self.added_by,
            "date_of_birth": to_iso(self.date_of_birth),
            "mention_count": self.mention_count,
            "canonical_id": self.canonical_id,
            "merged_from": list(self.merged_from),
            "extraction_context": self.extraction_context,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Person":
        """Create from database row."""
        merged_from = []
        if row["merged_from"]:
            try:
                merged_from = json.loads(row["merged_from"])
            except json.JSONDecodeError:
                logger.warning(f"Corrupt merged_from for person {row['id']}")

        return cls(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            nickname=row["nickname"],
            person_type=row["person_type"],
            data_completeness=row["data_completeness"],
            importance_to_user=row["importance_to_user"],
            status=row["status"],
            added_by=row["added_by"],
            date_of_birth=parse_iso(row["date_of_birth"]),
            mention_count=row["mention_count"] or 0,
            canonical_id=row["canonical_id"],
            merged_from=merged_from,
            extraction_context=row["extraction_context"],
            created_at=parse_iso(row["created_at"]) or utc_now(),
            updated_at=parse_iso(row["updated_at"]) or utc_now(),
        )


def validate_person(person: Person) -> None:
    """Raise ValueError if any enum field is outside its closed set."""
    if not person.name or not person.name.strip():
        raise ValueError("Person name is required")
    checks = (
        ("person_type", person.person_type, PERSON_TYPES),
        ("data_completeness", person.data_completeness, DATA_COMPLETENESS),
        ("importance_to_user", person.importance_to_user, IMPORTANCE_LEVELS),
        ("status", person.status, PERSON_STATUSES),
        ("added_by", person.added_by, ADDED_BY),
    )
    for field_name, value, allowed in checks:
        if value not in allowed:
            raise ValueError(f"Invalid {field_name}: {value}. Must be one of {allowed}")


class PersonStore:
    """SQLite-backed store for people, scoped by owning user."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the store."""
        self.db_path = db_path or get_db_path()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the people table if it doesn't exist."""
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS people (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    nickname TEXT,
                    person_type TEXT DEFAULT 'placeholder',
                    data_completeness TEXT DEFAULT 'minimal',
                    importance_to_user TEXT DEFAULT 'unknown',
                    status TEXT NOT NULL DEFAULT 'active',
                    added_by TEXT DEFAULT 'user',
                    date_of_birth TEXT,
                    mention_count INTEGER DEFAULT 0,
                    canonical_id TEXT,
                    merged_from TEXT,
                    extraction_context TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_people_user
                ON people(user_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_people_name
                ON people(user_id, name)
            """)
            conn.commit()
        finally:
            conn.close()

    def _insert(self, conn: sqlite3.Connection, person: Person) -> None:
        """Insert a person using an existing connection."""
        conn.execute("""
            INSERT INTO people
            (id, user_id, name, nickname, person_type, data_completeness,
             importance_to_user, status, added_by, date_of_birth, mention_count,
             canonical_id, merged_from, extraction_context, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            person.id,
            person.user_id,
            person.name,
            person.nickname,
            person.person_type,
            person.data_completeness,
            person.importance_to_user,
            person.status,
            person.added_by,
            to_iso(person.date_of_birth),
            person.mention_count,
            person.canonical_id,
            json.dumps(person.merged_from) if person.merged_from else None,
            person.extraction_context,
            to_iso(person.created_at),
            to_iso(person.updated_at),
        ))

    def add(self, person: Person) -> Person:
        """Add a new person."""
        validate_person(person)
        person.name = person.name.strip()
        conn = self._get_connection()
        try:
            self._insert(conn, person)
            conn.commit()
        finally:
            conn.close()
        logger.info(f"Added person {person.name} ({person.id[:8]}, {person.person_type})")
        return person

    def create_placeholder(
        self,
        user_id: str,
        name: str,
        person_type: str = "placeholder",
        added_by: str = "auto_created",
        extraction_context: Optional[str] = None,
    ) -> Person:
        """
        Create a stub person awaiting enrichment.

        Used for "@+name" directives, NEW ambiguity resolutions and
        mentions that matched nobody.
        """
        return self.add(Person(
            user_id=user_id,
            name=name,
            person_type=person_type,
            status="placeholder",
            added_by=added_by,
            mention_count=1,
            extraction_context=extraction_context,
        ))

    def get_by_id(self, user_id: str, person_id: str) -> Optional[Person]:
        """Get a person by ID (merged records included)."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM people WHERE id = ? AND user_id = ?",
                (person_id, user_id),
            ).fetchone()
            return Person.from_row(row) if row else None
        finally:
            conn.close()

    def resolve_canonical(self, user_id: str, person_id: str) -> Optional[Person]:
        """
        Follow merge links to the surviving person.

        Returns None if the id is unknown or the chain is broken.
        """
        conn = self._get_connection()
        try:
            return self._resolve_canonical(conn, user_id, person_id)
        finally:
            conn.close()

    def _resolve_canonical(
        self, conn: sqlite3.Connection, user_id: str, person_id: str
    ) -> Optional[Person]:
        """resolve_canonical() on an existing connection (inside a review transaction)."""
        seen = set()
        row = conn.execute(
            "SELECT * FROM people WHERE id = ? AND user_id = ?", (person_id, user_id)
        ).fetchone()
        while row is not None and row["status"] == "merged" and row["canonical_id"]:
            if row["id"] in seen:
                logger.error(f"Merge cycle detected at person {row['id']}")
                return None
            seen.add(row["id"])
            row = conn.execute(
                "SELECT * FROM people WHERE id = ? AND user_id = ?", (row["canonical_id"], user_id)
            ).fetchone()
        return Person.from_row(row) if row else None

    def list_for_user(self, user_id: str, include_merged: bool = False) -> list[Person]:
        """List a user's people sorted by name."""
        conn = self._get_connection()
        try:
            if include_merged:
                rows = conn.execute("""
                    SELECT * FROM people WHERE user_id = ?
                    ORDER BY name COLLATE NOCASE
                """, (user_id,)).fetchall()
            else:
                rows = conn.execute("""
                    SELECT * FROM people WHERE user_id = ? AND status != 'merged'
                    ORDER BY name COLLATE NOCASE
                """, (user_id,)).fetchall()
            return [Person.from_row(row) for row in rows]
        finally:
            conn.close()

    def update(self, person: Person) -> Person:
        """Update an existing person."""
        validate_person(person)
        person.updated_at = utc_now()
        conn = self._get_connection()
        try:
            conn.execute("""
                UPDATE people
                SET name = ?, nickname = ?, person_type = ?, data_completeness = ?,
                    importance_to_user = ?, status = ?, date_of_birth = ?,
                    extraction_context = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
            """, (
                person.name.strip(),
                person.nickname,
                person.person_type,
                person.data_completeness,
                person.importance_to_user,
                person.status,
                to_iso(person.date_of_birth),
                person.extraction_context,
                to_iso(person.updated_at),
                person.id,
                person.user_id,
            ))
            conn.commit()
            return person
        finally:
            conn.close()

    def set_status(self, user_id: str, person_id: str, status: str) -> bool:
        """Soft status transition (archive, deceased, ...). Merging goes through person_merge."""
        if status not in PERSON_STATUSES or status == "merged":
            raise ValueError(f"Invalid status transition: {status}")
        conn = self._get_connection()
        try:
            cursor = conn.execute("""
                UPDATE people SET status = ?, updated_at = ?
                WHERE id = ? AND user_id = ? AND status != 'merged'
            """, (status, to_iso(utc_now()), person_id, user_id))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def increment_mention_count(self, user_id: str, person_id: str) -> None:
        """Bump mention_count after a story references this person."""
        conn = self._get_connection()
        try:
            conn.execute("""
                UPDATE people SET mention_count = COALESCE(mention_count, 0) + 1, updated_at = ?
                WHERE id = ? AND user_id = ?
            """, (to_iso(utc_now()), person_id, user_id))
            conn.commit()
        finally:
            conn.close()

    def _merge_in_transaction(
        self, conn: sqlite3.Connection, user_id: str, source_id: str, target_id: str
    ) -> Person:
        """
        Person-table part of a merge (see person_merge.merge_people).

        Source becomes inert (status merged, canonical_id = target) and the
        target records the merged id. Caller owns the transaction.
        """
        if source_id == target_id:
            raise ValueError("Cannot merge a person into itself")

        source_row = conn.execute(
            "SELECT * FROM people WHERE id = ? AND user_id = ?", (source_id, user_id)
        ).fetchone()
        target_row = conn.execute(
            "SELECT * FROM people WHERE id = ? AND user_id = ?", (target_id, user_id)
        ).fetchone()
        if source_row is None or target_row is None:
            raise LookupError(f"Cannot merge {source_id} into {target_id}: person not found")

        source = Person.from_row(source_row)
        target = Person.from_row(target_row)
        if source.is_merged:
            raise ValueError(f"Person {source_id} is already merged")
        if target.is_merged:
            raise ValueError(f"Cannot merge into merged person {target_id}")

        now = to_iso(utc_now())
        target.merged_from = list(dict.fromkeys(target.merged_from + [source.id] + source.merged_from))
        target.mention_count += source.mention_count
        if not target.nickname and source.nickname:
            target.nickname = source.nickname

        conn.execute("""
            UPDATE people SET status = 'merged', canonical_id = ?, updated_at = ?
            WHERE id = ? AND user_id = ?
        """, (target.id, now, source.id, user_id))
        # Earlier merges into source now point straight at target
        conn.execute("""
            UPDATE people SET canonical_id = ?, updated_at = ?
            WHERE canonical_id = ? AND user_id = ?
        """, (target.id, now, source.id, user_id))
        conn.execute("""
            UPDATE people SET merged_from = ?, mention_count = ?, nickname = ?, updated_at = ?
            WHERE id = ? AND user_id = ?
        """, (json.dumps(target.merged_from), target.mention_count, target.nickname,
              now, target.id, user_id))

        logger.info(f"Merged person {source.name} ({source.id[:8]}) into {target.name} ({target.id[:8]})")
        return target


# Singleton instance
_person_store: Optional[PersonStore] = None


def get_person_store(db_path: Optional[str] = None) -> PersonStore:
    """Get the singleton PersonStore instance."""
    global _person_store
    if _person_store is None or (db_path and _person_store.db_path != db_path):
        _person_store = PersonStore(db_path)
    return _person_store


def reset_person_store() -> None:
    """Drop the singleton (tests)."""
    global _person_store
    _person_store = None
