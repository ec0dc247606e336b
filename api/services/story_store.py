"""
Story storage for Friends.

A story is free text the user writes about people they know. Content is
immutable once saved; the only later change is the processed marker set
after an extraction pass. Deletion is soft.
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
from config.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class Story:
    """A free-text story about one or more people."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = ""
    title: Optional[str] = None
    content: str = ""
    story_date: Optional[datetime] = None
    ai_processed: bool = False
    ai_processed_at: Optional[datetime] = None
    extracted_data: Optional[dict[str, Any]] = None
    people_ids: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    deleted_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "content": self.content,
            "story_date": to_iso(self.story_date),
            "ai_processed": self.ai_processed,
            "ai_processed_at": to_iso(self.ai_processed_at),
            "extracted_data": self.extracted_data,
            "people_ids": list(self.people_ids),
            "created_at": to_iso(self.created_at),
            "deleted_at": to_iso(self.deleted_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Story":
        """Create from database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            content=row["content"],
            story_date=parse_iso(row["story_date"]),
            ai_processed=bool(row["ai_processed"]),
            ai_processed_at=parse_iso(row["ai_processed_at"]),
            extracted_data=json.loads(row["extracted_data"]) if row["extracted_data"] else None,
            people_ids=json.loads(row["people_ids"]) if row["people_ids"] else [],
            created_at=parse_iso(row["created_at"]) or utc_now(),
            deleted_at=parse_iso(row["deleted_at"]),
        )


class StoryStore:
    """SQLite-backed store for stories."""

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
                CREATE TABLE IF NOT EXISTS stories (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT,
                    content TEXT NOT NULL,
                    story_date TEXT,
                    ai_processed INTEGER DEFAULT 0,
                    ai_processed_at TEXT,
                    extracted_data TEXT,
                    people_ids TEXT,
                    created_at TEXT,
                    deleted_at TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_stories_user
                ON stories(user_id, created_at)
            """)
            conn.commit()
        finally:
            conn.close()

    def add(self, story: Story) -> Story:
        """
        Save a new story.

        Raises:
            ValueError: content shorter than settings.min_story_length
        """
        content = (story.content or "").strip()
        if len(content) < settings.min_story_length:
            raise ValueError(
                f"Story content must be at least {settings.min_story_length} characters"
            )

        conn = self._get_connection()
        try:
            conn.execute("""
                INSERT INTO stories
                (id, user_id, title, content, story_date, ai_processed, ai_processed_at,
                 extracted_data, people_ids, created_at, deleted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                story.id,
                story.user_id,
                story.title,
                story.content,
                to_iso(story.story_date),
                1 if story.ai_processed else 0,
                to_iso(story.ai_processed_at),
                json.dumps(story.extracted_data) if story.extracted_data is not None else None,
                json.dumps(story.people_ids),
                to_iso(story.created_at),
                to_iso(story.deleted_at),
            ))
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Saved story {story.id[:8]} ({len(story.content)} chars)")
        return story

    def get_by_id(self, user_id: str, story_id: str, include_deleted: bool = False) -> Optional[Story]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM stories WHERE id = ? AND user_id = ?",
                (story_id, user_id),
            ).fetchone()
        finally:
            conn.close()

        if not row:
            return None
        story = Story.from_row(row)
        if story.deleted_at and not include_deleted:
            return None
        return story

    def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Story]:
        """List non-deleted stories, newest first."""
        conn = self._get_connection()
        try:
            rows = conn.execute("""
                SELECT * FROM stories
                WHERE user_id = ? AND deleted_at IS NULL
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
            """, (user_id, limit, offset)).fetchall()
            return [Story.from_row(row) for row in rows]
        finally:
            conn.close()

    def mark_processed(
        self,
        user_id: str,
        story_id: str,
        extracted_data: dict[str, Any],
        people_ids: Optional[list[str]] = None,
    ) -> bool:
        """Record the last extraction result. Content is left untouched."""
        conn = self._get_connection()
        try:
            cursor = conn.execute("""
                UPDATE stories
                SET ai_processed = 1, ai_processed_at = ?, extracted_data = ?,
                    people_ids = COALESCE(?, people_ids)
                WHERE id = ? AND user_id = ?
            """, (
                to_iso(utc_now()),
                json.dumps(extracted_data),
                json.dumps(people_ids) if people_ids is not None else None,
                story_id,
                user_id,
            ))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def set_people(self, user_id: str, story_id: str, people_ids: list[str]) -> bool:
        """Record the people bound from the story's mentions."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "UPDATE stories SET people_ids = ? WHERE id = ? AND user_id = ?",
                (json.dumps(people_ids), story_id, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def soft_delete(self, user_id: str, story_id: str) -> bool:
        conn = self._get_connection()
        try:
            cursor = conn.execute("""
                UPDATE stories SET deleted_at = ?
                WHERE id = ? AND user_id = ? AND deleted_at IS NULL
            """, (to_iso(utc_now()), story_id, user_id))
            conn.commit()
        finally:
            conn.close()

        if cursor.rowcount:
            logger.info(f"Deleted story {story_id[:8]}")
        return cursor.rowcount > 0


# Singleton instance
_story_store: Optional[StoryStore] = None


def get_story_store(db_path: Optional[str] = None) -> StoryStore:
    """Get the singleton StoryStore instance."""
    global _story_store
    if _story_store is None or (db_path and _story_store.db_path != db_path):
        _story_store = StoryStore(db_path)
    return _story_store


def reset_story_store() -> None:
    global _story_store
    _story_store = None
