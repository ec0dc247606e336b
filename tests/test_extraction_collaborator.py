"""
Tests for the extraction collaborator.

Tests cover:
- Reply parsing (fenced and bare JSON, camelCase and snake_case keys)
- Prompt construction
- Null collaborator
- Claude collaborator with a mocked client
"""
import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from api.services.errors import CollaboratorUnavailable
from api.services.extraction_collaborator import (
    ClaudeExtractionCollaborator,
    ExtractionCollaborator,
    NullExtractionCollaborator,
    build_extraction_prompt,
    extract_json,
    get_extraction_collaborator,
    parse_extraction_response,
    relation_from_dict,
)
from api.services.person_store import Person

pytestmark = pytest.mark.unit


REPLY = {
    "relations": [
        {
            "subjectId": "p-1",
            "subjectName": "Sarah",
            "relationType": "LIKES",
            "objectLabel": "hiking",
            "intensity": "strong",
            "confidence": 0.8,
            "metadata": {"category": "outdoor"},
            "reasoning": "she goes every weekend",
        },
        "not a relation",
    ],
    "conflicts": [
        {
            "type": "direct_contradiction",
            "description": "said she hates hiking before",
            "existingRelationId": "f-9",
            "newRelation": {"subjectId": "p-1", "relationType": "LIKES", "objectLabel": "hiking"},
        }
    ],
}


class TestParsing:
    """Tests for reply parsing."""

    def test_extract_json_fenced(self):
        text = "Here you go:\n```json\n{\"relations\": []}\n```\nThanks"
        assert extract_json(text) == {"relations": []}

    def test_extract_json_bare(self):
        assert extract_json('  {"relations": []}  ') == {"relations": []}

    def test_extract_json_invalid(self):
        with pytest.raises(ValueError):
            extract_json("I could not find anything")

    def test_extract_json_not_object(self):
        with pytest.raises(ValueError):
            extract_json("[1, 2]")

    def test_parse_response(self):
        result = parse_extraction_response(json.dumps(REPLY))
        assert len(result.relations) == 1
        relation = result.relations[0]
        assert relation.subject_id == "p-1"
        assert relation.relation_kind == "LIKES"
        assert relation.object_label == "hiking"
        assert relation.metadata == {"category": "outdoor"}
        assert relation.extraction_reason == "she goes every weekend"

        assert len(result.conflicts) == 1
        assert result.conflicts[0].existing_fact_id == "f-9"
        assert result.conflicts[0].new_relation.object_label == "hiking"

    def test_snake_case_keys(self):
        relation = relation_from_dict({
            "subject_id": "p-2",
            "relation_kind": "FEARS",
            "object_label": "spiders",
            "status": "past",
        })
        assert relation.subject_id == "p-2"
        assert relation.relation_kind == "FEARS"
        assert relation.status == "past"
        assert relation.confidence == 0.5

    def test_missing_sections(self):
        result = parse_extraction_response("{}")
        assert result.relations == []
        assert result.conflicts == []


class TestPrompt:
    """Tests for build_extraction_prompt()."""

    def test_prompt_lists_tagged_and_roster(self):
        sarah = Person(id="p-1", user_id="u", name="Sarah Lee", nickname="Sare")
        prompt = build_extraction_prompt("Went hiking with @Sarah", {"Sarah": "p-1"}, [sarah])
        assert "@Sarah -> Sarah Lee (ID: p-1) [CONFIRMED]" in prompt
        assert "- Sarah Lee (Sare) (ID: p-1)" in prompt
        assert "Went hiking with @Sarah" in prompt
        assert "STRUGGLES_WITH" in prompt

    def test_prompt_without_people(self):
        prompt = build_extraction_prompt("A story about nobody", {}, [])
        assert "(none)" in prompt


class TestCollaborators:
    """Tests for collaborator implementations."""

    @pytest.mark.asyncio
    async def test_null_collaborator(self):
        result = await NullExtractionCollaborator().extract("story", {}, [])
        assert result.relations == []

    def test_interface_requires_extract(self):
        """A collaborator missing extract() cannot be created."""
        class Incomplete(ExtractionCollaborator):
            pass

        with pytest.raises(TypeError):
            Incomplete()

    def test_factory_without_api_key(self, monkeypatch):
        from config.settings import settings
        monkeypatch.setattr(settings, "anthropic_api_key", "")
        assert isinstance(get_extraction_collaborator(), NullExtractionCollaborator)

    def test_factory_with_api_key(self, monkeypatch):
        from config.settings import settings
        monkeypatch.setattr(settings, "anthropic_api_key", "test-key")
        collaborator = get_extraction_collaborator("claude-haiku-4-5")
        assert isinstance(collaborator, ClaudeExtractionCollaborator)
        assert collaborator.model == "claude-haiku-4-5"

    @pytest.mark.asyncio
    async def test_claude_success(self):
        collaborator = ClaudeExtractionCollaborator(model="test-model", api_key="test-key")
        block = MagicMock(type="text", text=json.dumps(REPLY))
        response = MagicMock(content=[block])
        response.usage.input_tokens = 100
        response.usage.output_tokens = 50
        collaborator._client = MagicMock()
        collaborator._client.messages.create.return_value = response

        result = await collaborator.extract("Went hiking with @Sarah", {"Sarah": "p-1"}, [])

        assert len(result.relations) == 1
        assert result.tokens_used == 150
        kwargs = collaborator._client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_claude_failure_raises_unavailable(self):
        collaborator = ClaudeExtractionCollaborator(api_key="test-key")
        collaborator._client = MagicMock()
        collaborator._client.messages.create.side_effect = RuntimeError("overloaded")

        with pytest.raises(CollaboratorUnavailable) as exc_info:
            await collaborator.extract("story text", {}, [])
        assert exc_info.value.service == "Extraction service"

    @pytest.mark.asyncio
    async def test_claude_malformed_reply(self):
        collaborator = ClaudeExtractionCollaborator(api_key="test-key")
        collaborator._client = MagicMock()
        collaborator._client.messages.create.return_value = MagicMock(
            content=[MagicMock(type="text", text="Sorry, I can't help with that")]
        )

        with pytest.raises(CollaboratorUnavailable):
            await collaborator.extract("story text", {}, [])

    @pytest.mark.asyncio
    async def test_claude_connection_error_retried(self):
        collaborator = ClaudeExtractionCollaborator(api_key="test-key")
        collaborator._client = MagicMock()
        block = MagicMock(type="text", text='{"relations": []}')
        collaborator._client.messages.create.side_effect = [
            ConnectionError("reset"),
            MagicMock(content=[block], usage=None),
        ]

        with patch("api.services.resilience.asyncio.sleep", new_callable=AsyncMock):
            result = await collaborator.extract("story text", {}, [])

        assert result.relations == []
        assert collaborator._client.messages.create.call_count == 2
