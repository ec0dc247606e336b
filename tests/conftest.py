"""
Pytest configuration and shared fixtures for Friends tests.

Test Categories:
- unit: Fast tests with no external dependencies (< 100ms each)
- slow: Tests that spin up the FastAPI app or use real threads
- integration: Tests requiring external APIs (Anthropic)

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not slow"        # Skip slow tests
- pytest -m "not integration" # Skip integration tests
- pytest                      # All tests

Every test runs against its own temporary data directory, so the SQLite
database and preferences file never touch real data.
"""
import pytest

from tests.reset_singletons import reset_store_singletons


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "slow: Slow tests (app startup, threads)")
    config.addinivalue_line("markers", "integration: Integration tests (external APIs)")


@pytest.fixture(autouse=True)
def isolated_data_path(tmp_path, monkeypatch):
    """
    Point settings at a per-test data directory and drop store singletons.

    Returns:
        The temporary data directory
    """
    from config.settings import settings

    monkeypatch.setattr(settings, "data_path", tmp_path)
    reset_store_singletons()
    yield tmp_path
    reset_store_singletons()


@pytest.fixture
def db_path(isolated_data_path):
    """Path to the per-test SQLite database."""
    return str(isolated_data_path / "friends.db")


@pytest.fixture
def mock_settings(isolated_data_path, monkeypatch):
    """
    Mock settings for testing.

    Uses temporary paths and a fake API key.
    """
    from config.settings import Settings

    mock = Settings(
        data_path=isolated_data_path,
        anthropic_api_key="test-key-for-testing",
    )

    # Patch the global settings
    monkeypatch.setattr("config.settings.settings", mock)
    return mock


@pytest.fixture
def person_store(db_path):
    from api.services.person_store import get_person_store
    return get_person_store(db_path)


@pytest.fixture
def story_store(db_path):
    from api.services.story_store import get_story_store
    return get_story_store(db_path)


@pytest.fixture
def fact_store(db_path):
    from api.services.relationship_facts import get_fact_store
    return get_fact_store(db_path)


@pytest.fixture
def pending_store(db_path):
    from api.services.pending_extractions import get_pending_store
    return get_pending_store(db_path)


@pytest.fixture
def review_engine(pending_store, fact_store, person_store):
    from api.services.review_engine import ReviewEngine
    return ReviewEngine(pending_store, fact_store, person_store)


@pytest.fixture
def user_id():
    return "user-1"


@pytest.fixture
def make_person(person_store, user_id):
    """Factory: store a person and return it."""
    from api.services.person_store import Person

    def _make(name: str, nickname: str = None, **kwargs):
        return person_store.add(Person(
            user_id=kwargs.pop("owner", user_id),
            name=name,
            nickname=nickname,
            person_type=kwargs.pop("person_type", "primary"),
            **kwargs,
        ))
    return _make


@pytest.fixture
def make_candidate():
    """Factory: an unvalidated CandidateFact with sensible defaults."""
    from api.services.fact_validator import CandidateFact

    def _make(subject_id: str, relation_kind: str = "LIKES", object_label: str = "hiking", **kwargs):
        return CandidateFact(
            subject_id=subject_id,
            relation_kind=relation_kind,
            object_label=object_label,
            **kwargs,
        )
    return _make


def pytest_collection_modifyitems(config, items):
    """
    Auto-mark tests based on location/name for better organization.

    Tests with 'integration' or 'real_' in the name get the 'integration' marker.
    """
    for item in items:
        if "integration" in item.name or "real_" in item.name:
            item.add_marker(pytest.mark.integration)
