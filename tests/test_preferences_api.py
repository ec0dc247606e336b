"""
Tests for the Preferences API routes.
"""
import pytest

pytestmark = pytest.mark.unit


class TestPreferencesAPI:
    """Tests for the /api/preferences endpoints."""

    @pytest.fixture
    def client(self, isolated_data_path):
        from fastapi.testclient import TestClient
        from api.main import app
        from api.services.app_context import AppContext

        app.state.context = AppContext.load(isolated_data_path / "preferences.json")
        yield TestClient(app)
        app.state.context = None

    def test_get_defaults(self, client):
        data = client.get("/api/preferences").json()
        assert data["auto_accept_enabled"] is False
        assert data["theme_color"] == "#6366f1"

    def test_update(self, client, isolated_data_path):
        response = client.patch("/api/preferences", json={"auto_accept_enabled": True, "theme_color": "#112233"})
        assert response.status_code == 200
        assert response.json()["auto_accept_enabled"] is True
        assert (isolated_data_path / "preferences.json").exists()
        assert client.get("/api/preferences").json()["theme_color"] == "#112233"

    def test_invalid_color(self, client):
        assert client.patch("/api/preferences", json={"theme_color": "blue"}).status_code == 400
