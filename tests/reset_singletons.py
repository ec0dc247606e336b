"""
Centralized singleton reset utilities for testing.

These functions reset global singleton instances to prevent test pollution.
Singletons that persist across tests can cause:
- Stores bound to a previous test's temporary database
- Mock objects leaking between tests

Usage in conftest.py:
    @pytest.fixture(autouse=True)
    def reset_singletons_after_test():
        yield
        reset_store_singletons()
"""


def reset_store_singletons() -> None:
    """
    Reset the store and review engine singletons.

    Safe to call after every test. Resets:
    - PersonStore
    - StoryStore
    - RelationshipFactStore
    - PendingExtractionStore
    - ReviewEngine
    """
    from api.services.person_store import reset_person_store
    from api.services.story_store import reset_story_store
    from api.services.relationship_facts import reset_fact_store
    from api.services.pending_extractions import reset_pending_store
    from api.services.review_engine import reset_review_engine

    reset_person_store()
    reset_story_store()
    reset_fact_store()
    reset_pending_store()
    reset_review_engine()
