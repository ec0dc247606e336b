"""
Tests for the persisted application context (preferences).
"""
import json

import pytest

from api.services.app_context import DEFAULT_THEME_COLOR, AppContext
from config.settings import settings

pytestmark = pytest.mark.unit


class TestAppContext:
    """Tests for AppContext load/save/update."""

    def test_defaults_when_missing(self, tmp_path):
        context = AppContext.load(tmp_path / "preferences.json")
        assert context.theme_color == DEFAULT_THEME_COLOR
        assert context.auto_accept_enabled is False
        assert context.extraction_model

    def test_defaults_when_corrupt(self, tmp_path):
        path = tmp_path / "preferences.json"
        path.write_text("{not json")
        assert AppContext.load(path).auto_accept_enabled is False

    def test_defaults_when_not_object(self, tmp_path):
        path = tmp_path / "preferences.json"
        path.write_text("[1, 2]")
        assert AppContext.load(path).theme_color == DEFAULT_THEME_COLOR

    def test_update_persists(self, tmp_path):
        path = tmp_path / "preferences.json"
        context = AppContext.load(path)
        context.update(auto_accept_enabled=True, theme_color="#ff0000")

        data = json.loads(path.read_text())
        assert data["auto_accept_enabled"] is True
        assert data["theme_color"] == "#ff0000"
        assert "path" not in data

        reloaded = AppContext.load(path)
        assert reloaded.auto_accept_enabled is True
        assert reloaded.theme_color == "#ff0000"

    def test_unknown_keys_ignored_on_load(self, tmp_path):
        path = tmp_path / "preferences.json"
        path.write_text(json.dumps({"theme_color": "#000000", "legacy_flag": 1}))
        assert AppContext.load(path).theme_color == "#000000"

    def test_invalid_values_fall_back_to_defaults(self, tmp_path):
        """A hand-edited "false" string must not switch auto-accept on."""
        path = tmp_path / "preferences.json"
        path.write_text(json.dumps({
            "auto_accept_enabled": "false",
            "theme_color": "blue",
            "extraction_model": 42,
        }))

        context = AppContext.load(path)

        assert context.auto_accept_enabled is False
        assert context.theme_color == DEFAULT_THEME_COLOR
        assert context.extraction_model == settings.extraction_model

    def test_valid_values_kept_next_to_invalid(self, tmp_path):
        path = tmp_path / "preferences.json"
        path.write_text(json.dumps({"auto_accept_enabled": True, "theme_color": None, "extraction_model": ""}))

        context = AppContext.load(path)

        assert context.auto_accept_enabled is True
        assert context.theme_color == DEFAULT_THEME_COLOR
        assert context.extraction_model == settings.extraction_model

    def test_update_rejects_unknown_key(self, tmp_path):
        context = AppContext.load(tmp_path / "preferences.json")
        with pytest.raises(ValueError):
            context.update(font_size=14)
        with pytest.raises(ValueError):
            context.update(path="/etc/passwd")

    def test_default_path_from_settings(self, isolated_data_path):
        context = AppContext.load()
        context.save()
        assert (isolated_data_path / "preferences.json").exists()
