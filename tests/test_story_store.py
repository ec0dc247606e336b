"""
Tests for StoryStore.
"""
import pytest

from api.services.story_store import Story

pytestmark = pytest.mark.unit


class TestStoryStore:
    """Tests for StoryStore."""

    def test_add_and_get(self, story_store, user_id):
        story = story_store.add(Story(user_id=user_id, title="Gym", content="Went climbing with @Sarah"))
        loaded = story_store.get_by_id(user_id, story.id)
        assert loaded.content == "Went climbing with @Sarah"
        assert loaded.title == "Gym"
        assert loaded.ai_processed is False
        assert loaded.people_ids == []

    def test_too_short(self, story_store, user_id):
        with pytest.raises(ValueError):
            story_store.add(Story(user_id=user_id, content="   hi    "))

    def test_scoped_by_user(self, story_store, user_id):
        story = story_store.add(Story(user_id=user_id, content="A long enough story"))
        assert story_store.get_by_id("other", story.id) is None

    def test_list_newest_first(self, story_store, user_id):
        first = story_store.add(Story(user_id=user_id, content="The first story text"))
        second = story_store.add(Story(user_id=user_id, content="The second story text"))
        assert [s.id for s in story_store.list_for_user(user_id)] == [second.id, first.id]

    def test_mark_processed_keeps_content(self, story_store, user_id):
        story = story_store.add(Story(user_id=user_id, content="Dinner with @Sarah"))
        assert story_store.mark_processed(user_id, story.id, {"staged": 2}, people_ids=["p-1"])

        loaded = story_store.get_by_id(user_id, story.id)
        assert loaded.ai_processed is True
        assert loaded.ai_processed_at is not None
        assert loaded.extracted_data == {"staged": 2}
        assert loaded.people_ids == ["p-1"]
        assert loaded.content == "Dinner with @Sarah"

    def test_mark_processed_without_people_keeps_existing(self, story_store, user_id):
        story = story_store.add(Story(user_id=user_id, content="Dinner with @Sarah"))
        story_store.set_people(user_id, story.id, ["p-1"])
        story_store.mark_processed(user_id, story.id, {})
        assert story_store.get_by_id(user_id, story.id).people_ids == ["p-1"]

    def test_soft_delete(self, story_store, user_id):
        story = story_store.add(Story(user_id=user_id, content="Dinner with @Sarah"))
        assert story_store.soft_delete(user_id, story.id) is True
        assert story_store.get_by_id(user_id, story.id) is None
        assert story_store.get_by_id(user_id, story.id, include_deleted=True) is not None
        assert story_store.list_for_user(user_id) == []
        assert story_store.soft_delete(user_id, story.id) is False
