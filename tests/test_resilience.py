"""
Tests for Error Handling & Resilience.
Acceptance Criteria:
- Extraction service failures retry, then surface as a friendly message
- Malformed requests return 400 with helpful message
- Service continues running after any single request error
"""
import pytest
from unittest.mock import AsyncMock, patch

# These tests use TestClient which initializes the app (slow)
pytestmark = pytest.mark.slow
from fastapi.testclient import TestClient

from api.main import app
from api.services.errors import CollaboratorUnavailable
from api.services.resilience import (
    COLLABORATOR_RETRY,
    RetryConfig,
    retry_async,
    user_friendly_error,
    is_retryable_status,
    ServiceUnavailableError,
)


class TestRetryAsync:
    """Test async retry decorator."""

    @pytest.mark.asyncio
    async def test_succeeds_without_retry(self):
        calls = []

        @retry_async()
        async def extract():
            calls.append(1)
            return "facts"

        assert await extract() == "facts"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        """ConnectionError and TimeoutError are retried until success."""
        failures = [ConnectionError("reset"), TimeoutError("slow")]

        @retry_async(config=RetryConfig(max_retries=3, base_delay=0.01))
        async def extract():
            if failures:
                raise failures.pop(0)
            return "facts"

        assert await extract() == "facts"
        assert failures == []

    @pytest.mark.asyncio
    async def test_exhausts_retries(self):
        calls = []

        @retry_async(config=RetryConfig(max_retries=2, base_delay=0.01))
        async def always_fails():
            calls.append(1)
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await always_fails()

        assert len(calls) == 3  # 1 initial + 2 retries

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        """A malformed reply is not a transient failure."""
        calls = []

        @retry_async(config=RetryConfig(max_retries=2, base_delay=0.01))
        async def bad_reply():
            calls.append(1)
            raise ValueError("Malformed JSON")

        with pytest.raises(ValueError):
            await bad_reply()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_backoff_delays(self):
        """Delays grow exponentially from base_delay and are capped."""
        @retry_async(config=RetryConfig(max_retries=3, base_delay=1.0, max_delay=3.0))
        async def always_fails():
            raise TimeoutError("slow")

        with patch("api.services.resilience.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(TimeoutError):
                await always_fails()

        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0, 3.0]

    def test_collaborator_retry_settings(self):
        assert COLLABORATOR_RETRY.max_retries == 2
        assert COLLABORATOR_RETRY.base_delay == 2.0
        assert COLLABORATOR_RETRY.retryable_exceptions == (ConnectionError, TimeoutError)


class TestUserFriendlyError:
    """Test user-friendly error messages."""

    def test_timeout_error(self):
        msg = user_friendly_error(TimeoutError("Request timed out"))
        assert "timed out" in msg

    def test_connection_error(self):
        msg = user_friendly_error(ConnectionError("Network unreachable"))
        assert "Unable to reach" in msg

    def test_auth_error(self):
        msg = user_friendly_error(Exception("401 Unauthorized"))
        assert "API key" in msg

    def test_rate_limit_error(self):
        msg = user_friendly_error(Exception("Rate limit exceeded"))
        assert "wait" in msg

    def test_overloaded(self):
        msg = user_friendly_error(Exception("HTTP 529: overloaded"))
        assert "busy" in msg

    def test_unknown_error_names_type(self):
        assert "KeyError" in user_friendly_error(KeyError("x"))

    def test_service_unavailable_error(self):
        msg = user_friendly_error(ServiceUnavailableError("Extraction service", "API quota exceeded"))
        assert msg.startswith("Extraction service is currently unavailable.")
        assert "wait" in msg

    def test_collaborator_unavailable(self):
        """CollaboratorUnavailable is a ServiceUnavailableError."""
        msg = user_friendly_error(CollaboratorUnavailable("Request timed out"))
        assert msg.startswith("Extraction service is currently unavailable")
        assert "timed out" in msg

    def test_service_unavailable_without_detail(self):
        msg = user_friendly_error(CollaboratorUnavailable("something odd"))
        assert msg == "Extraction service is currently unavailable."


class TestIsRetryableStatus:
    """Test retryable status code detection."""

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 529])
    def test_retryable(self, status):
        assert is_retryable_status(status) is True

    @pytest.mark.parametrize("status", [400, 401, 404, 501])
    def test_not_retryable(self, status):
        assert is_retryable_status(status) is False


class TestAPIErrorHandling:
    """Test API error handling in endpoints."""

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def test_malformed_json_returns_400(self, client):
        response = client.post(
            "/api/stories",
            content="not valid json",
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_short_story_returns_400(self, client):
        """Too-short story content should return 400 with helpful message."""
        response = client.post("/api/stories", json={"content": "hi"})
        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"

    def test_missing_field_returns_400(self, client):
        response = client.post("/api/stories", json={})
        assert response.status_code == 400

    def test_service_continues_after_error(self, client):
        client.post("/api/stories", json={"content": ""})

        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] in ["healthy", "degraded"]
        assert response.json()["service"] == "friends"
