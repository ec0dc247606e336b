"""
Extraction collaborator for Friends.

Sends a story plus the resolved mention map and the user's roster to
Claude and parses the structured reply into candidate facts. The model's
reasoning is out of our hands; everything it returns is treated as
untrusted and goes through the validator afterwards.

Any failure (network, timeout, malformed JSON) surfaces as
CollaboratorUnavailable, which the pipeline degrades to "no facts".
"""
import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from api.services.errors import CollaboratorUnavailable
from api.services.fact_validator import CandidateFact
from api.services.person_store import Person
from api.services.resilience import COLLABORATOR_RETRY, is_retryable_status, retry_async
from config.relations import RELATION_KINDS
from config.settings import settings

logger = logging.getLogger(__name__)

JSON_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


@dataclass
class ExtractionConflict:
    """A contradiction the collaborator noticed while reading the story."""
    conflict_type: str
    description: str
    new_relation: CandidateFact
    existing_fact_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": self.conflict_type,
            "description": self.description,
            "new_relation": self.new_relation.to_dict(),
            "existing_fact_id": self.existing_fact_id,
        }


@dataclass
class ExtractionResult:
    """Raw (unvalidated) output of one extraction call."""
    relations: list[CandidateFact] = field(default_factory=list)
    conflicts: list[ExtractionConflict] = field(default_factory=list)
    people: list[dict[str, Any]] = field(default_factory=list)
    raw_response: Optional[str] = None
    tokens_used: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "relations": [r.to_dict() for r in self.relations],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "people": self.people,
            "tokens_used": self.tokens_used,
        }


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    """First present key; accepts both camelCase and snake_case replies."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def relation_from_dict(data: dict) -> CandidateFact:
    """Build an unvalidated CandidateFact from one reply relation."""
    return CandidateFact(
        subject_id=_pick(data, "subjectId", "subject_id", default=""),
        subject_name=_pick(data, "subjectName", "subject_name", default=""),
        relation_kind=_pick(data, "relationType", "relation_kind", "relation_type", default=""),
        object_label=_pick(data, "objectLabel", "object_label", default=""),
        object_type=_pick(data, "objectType", "object_type"),
        intensity=_pick(data, "intensity"),
        confidence=_pick(data, "confidence", default=0.5),
        category=_pick(data, "category"),
        metadata=_pick(data, "metadata", default={}),
        status=_pick(data, "status"),
        extraction_reason=_pick(data, "reasoning", "extractionReason", "extraction_reason"),
    )


def extract_json(response_text: str) -> dict:
    """
    Pull the JSON object out of a reply, with or without markdown fences.

    Raises:
        ValueError: no parseable JSON object
    """
    match = JSON_FENCE_PATTERN.search(response_text)
    text = match.group(1) if match else response_text
    data = json.loads(text.strip())
    if not isinstance(data, dict):
        raise ValueError("Extraction reply is not a JSON object")
    return data


def parse_extraction_response(response_text: str) -> ExtractionResult:
    """
    Parse a reply into an ExtractionResult.

    Raises:
        ValueError: reply is not valid JSON
    """
    data = extract_json(response_text)

    relations = []
    for item in data.get("relations") or []:
        if isinstance(item, dict):
            relations.append(relation_from_dict(item))
        else:
            logger.warning(f"Skipping non-object relation in extraction reply: {item!r}")

    conflicts = []
    for item in data.get("conflicts") or []:
        if not isinstance(item, dict):
            continue
        new_relation = _pick(item, "newRelation", "new_relation", default={})
        conflicts.append(ExtractionConflict(
            conflict_type=item.get("type", "unknown"),
            description=item.get("description", ""),
            new_relation=relation_from_dict(new_relation if isinstance(new_relation, dict) else {}),
            existing_fact_id=_pick(item, "existingRelationId", "existing_fact_id"),
        ))

    people = [p for p in data.get("people") or [] if isinstance(p, dict)]
    return ExtractionResult(
        relations=relations,
        conflicts=conflicts,
        people=people,
        raw_response=response_text,
    )


def build_extraction_prompt(
    story_text: str,
    mention_map: dict[str, str],
    roster: list[Person],
) -> str:
    """Lightweight context: names and ids only, never full profiles."""
    by_id = {p.id: p for p in roster}
    tagged_lines = []
    for name, person_id in mention_map.items():
        person = by_id.get(person_id)
        label = person.name if person else name
        tagged_lines.append(f"- @{name} -> {label} (ID: {person_id}) [CONFIRMED]")

    roster_lines = [
        f"- {p.name}" + (f" ({p.nickname})" if p.nickname else "") + f" (ID: {p.id})"
        for p in roster
    ]

    kinds = "\n".join(f"- {kind}" for kind in RELATION_KINDS)
    tagged = "\n".join(tagged_lines) or "(none)"
    people = "\n".join(roster_lines) or "(none)"

    return f"""You extract structured relationship facts from a personal story.

RELATION TYPES (use exactly these):
{kinds}

EXPLICITLY TAGGED PEOPLE (use these ids with full confidence):
{tagged}

EXISTING PEOPLE:
{people}

RULES:
- Only emit relations whose subject is one of the people above, using their exact ID
- Do not invent relations for people who are not listed
- Be conservative with confidence (0.7-0.85 for clear facts, 0.5-0.7 for implied)
- For allergies and sensitivities use SENSITIVE_TO
- For IS relations metadata.category must be one of: profession, role, trait, identity, health, relationship_status
- status is one of: current, past, future, aspiration

Respond with JSON only:
{{
  "relations": [
    {{
      "subjectId": "person-id",
      "subjectName": "Person Name",
      "relationType": "LIKES",
      "objectLabel": "what the fact is about",
      "objectType": "food | activity | person | place | ...",
      "intensity": "weak | medium | strong | very_strong",
      "confidence": 0.0,
      "category": "optional category",
      "metadata": {{}},
      "status": "current",
      "reasoning": "short quote or reason from the story"
    }}
  ],
  "conflicts": [
    {{
      "type": "direct_contradiction | logical_implication | ingredient_conflict",
      "description": "what contradicts what",
      "existingRelationId": "optional id",
      "newRelation": {{"subjectId": "...", "relationType": "...", "objectLabel": "..."}}
    }}
  ]
}}

STORY:
{story_text}
"""


class ExtractionCollaborator(ABC):
    """Interface: turn a story into candidate facts."""

    @abstractmethod
    async def extract(
        self,
        story_text: str,
        mention_map: dict[str, str],
        roster: list[Person],
    ) -> ExtractionResult:
        """Propose candidate facts and conflicts for story_text."""


class NullExtractionCollaborator(ExtractionCollaborator):
    """Used when no API key is configured: extracts nothing."""

    async def extract(
        self,
        story_text: str,
        mention_map: dict[str, str],
        roster: list[Person],
    ) -> ExtractionResult:
        logger.info("Extraction collaborator not configured, skipping extraction")
        return ExtractionResult()


class ClaudeExtractionCollaborator(ExtractionCollaborator):
    """Claude-backed extraction."""

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        self.model = model or settings.extraction_model
        self._api_key = api_key or settings.anthropic_api_key
        self._client: Any = None

    @property
    def client(self):
        """Lazy-load the Anthropic client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self._api_key)
        return self._client

    def _create_message(self, prompt: str):
        import anthropic
        try:
            return self.client.messages.create(
                model=self.model,
                max_tokens=settings.extraction_max_tokens,
                temperature=settings.extraction_temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise TimeoutError(str(e)) from e
        except anthropic.APIConnectionError as e:
            raise ConnectionError(str(e)) from e
        except anthropic.APIStatusError as e:
            if is_retryable_status(e.status_code):
                raise ConnectionError(f"HTTP {e.status_code}: {e}") from e
            raise

    @retry_async(config=COLLABORATOR_RETRY)
    async def _call(self, prompt: str):
        return await asyncio.wait_for(
            asyncio.to_thread(self._create_message, prompt),
            timeout=settings.extraction_timeout,
        )

    async def extract(
        self,
        story_text: str,
        mention_map: dict[str, str],
        roster: list[Person],
    ) -> ExtractionResult:
        prompt = build_extraction_prompt(story_text, mention_map, roster)
        try:
            response = await self._call(prompt)
            text = "".join(
                getattr(block, "text", "") for block in response.content
                if getattr(block, "type", "text") == "text"
            )
            result = parse_extraction_response(text)
        except Exception as e:
            logger.warning(f"Extraction call failed ({type(e).__name__}): {e}")
            raise CollaboratorUnavailable(str(e)) from e

        usage = getattr(response, "usage", None)
        if usage is not None:
            result.tokens_used = usage.input_tokens + usage.output_tokens
        logger.info(
            f"Extracted {len(result.relations)} relations, {len(result.conflicts)} conflicts "
            f"with {self.model}"
        )
        return result


def get_extraction_collaborator(model: Optional[str] = None) -> ExtractionCollaborator:
    """Claude when an API key is configured, otherwise the null collaborator."""
    if settings.extraction_enabled:
        return ClaudeExtractionCollaborator(model=model)
    return NullExtractionCollaborator()
