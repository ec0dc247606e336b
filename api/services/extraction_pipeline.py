"""
Extraction pipeline for Friends.

Orchestrates one story end to end:

    story text -> mentions -> identity resolution -> (ambiguity choices)
    -> extraction collaborator -> validator -> pending store (or auto-accept)

prepare() runs the resolution pass so the caller can ask the user about
ambiguous names; process_story() takes the completed choices and stages
the extracted facts. The story itself is always kept; a collaborator
failure only means nothing was extracted this time.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from api.services.ambiguity import IGNORE, NEW
from api.services.app_context import AppContext
from api.services.conflict_detection import detect_conflicts
from api.services.errors import (
    CandidateRejected,
    CollaboratorUnavailable,
    DuplicateFact,
    NotFound,
    UnresolvedAmbiguity,
)
from api.services.extraction_collaborator import ExtractionCollaborator, get_extraction_collaborator
from api.services.fact_validator import CandidateFact, FactValidator
from api.services.identity_resolver import ResolutionPass, resolve_text
from api.services.mentions import mentions_with_context
from api.services.pending_extractions import PendingExtraction, PendingExtractionStore, get_pending_store
from api.services.person_store import Person, PersonStore, get_person_store
from api.services.relationship_facts import RelationshipFact, RelationshipFactStore, get_fact_store
from api.services.resilience import user_friendly_error
from api.services.review_engine import ReviewEngine
from api.services.story_store import Story, StoryStore, get_story_store
from config.relations import should_auto_accept
from config.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    """What happened to one story's extraction."""
    story_id: str
    mention_map: dict[str, str] = field(default_factory=dict)
    created_people: list[Person] = field(default_factory=list)
    staged: list[PendingExtraction] = field(default_factory=list)
    auto_accepted: list[RelationshipFact] = field(default_factory=list)
    rejected: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    duplicates: int = 0
    conflicts: list[dict] = field(default_factory=list)
    collaborator_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "story_id": self.story_id,
            "mention_map": dict(self.mention_map),
            "created_people": [p.to_dict() for p in self.created_people],
            "staged": [p.to_dict() for p in self.staged],
            "auto_accepted": [f.to_dict() for f in self.auto_accepted],
            "rejected": list(self.rejected),
            "skipped": list(self.skipped),
            "duplicates": self.duplicates,
            "conflicts": list(self.conflicts),
            "collaborator_error": self.collaborator_error,
        }


class ExtractionPipeline:
    """Runs the staging pipeline for stories."""

    def __init__(
        self,
        context: Optional[AppContext] = None,
        collaborator: Optional[ExtractionCollaborator] = None,
        person_store: Optional[PersonStore] = None,
        story_store: Optional[StoryStore] = None,
        pending_store: Optional[PendingExtractionStore] = None,
        fact_store: Optional[RelationshipFactStore] = None,
        review_engine: Optional[ReviewEngine] = None,
    ):
        self.context = context or AppContext()
        self.collaborator = collaborator or get_extraction_collaborator(self.context.extraction_model)
        self.people = person_store or get_person_store()
        self.stories = story_store or get_story_store()
        self.pending = pending_store or get_pending_store()
        self.facts = fact_store or get_fact_store()
        self.validator = FactValidator(self.facts)
        self.review = review_engine or ReviewEngine(self.pending, self.facts, self.people)

    def _get_story(self, user_id: str, story_id: str) -> Story:
        story = self.stories.get_by_id(user_id, story_id)
        if story is None:
            raise NotFound("Story", story_id)
        return story

    def prepare(self, user_id: str, story_id: str) -> ResolutionPass:
        """Resolution pass over a saved story. Mutates nothing."""
        story = self._get_story(user_id, story_id)
        return resolve_text(story.content, self.people.list_for_user(user_id))

    def _placeholder(
        self,
        user_id: str,
        story: Story,
        name: str,
        person_type: str,
        outcome: ExtractionOutcome,
        reusable: dict[str, Person],
    ) -> str:
        """Create (or reuse, when re-processing the same story) a stub person."""
        existing = reusable.get(name.lower())
        if existing:
            return existing.id

        context = next(
            (f"{m['context_before']} @{name} {m['context_after']}".strip()
             for m in mentions_with_context(story.content, settings.mention_context_length)
             if m["name"] == name),
            None,
        )
        person = self.people.create_placeholder(
            user_id,
            name,
            person_type=person_type,
            added_by="auto_created",
            extraction_context=context,
        )
        outcome.created_people.append(person)
        reusable[name.lower()] = person
        return person.id

    def _apply_resolutions(
        self,
        user_id: str,
        story: Story,
        resolution: ResolutionPass,
        resolutions: dict[str, str],
        outcome: ExtractionOutcome,
    ) -> set[str]:
        """
        Bind every mentioned name to a person id or mark it ignored.

        Returns:
            Lower-cased ignored names
        """
        missing = [name for name in resolution.ambiguous_names if name not in resolutions]
        if missing:
            raise UnresolvedAmbiguity(missing)

        # Placeholders from an earlier run of this story are reused
        reusable = {}
        for person_id in story.people_ids:
            person = self.people.get_by_id(user_id, person_id)
            if person and person.status == "placeholder":
                reusable[person.name.lower()] = person

        ignored = {name.lower() for name, choice in resolutions.items() if choice == IGNORE}
        mention_map = {
            name: person_id for name, person_id in resolution.bound.items()
            if name.lower() not in ignored
        }

        for name in resolution.forced_new:
            if name.lower() not in ignored:
                mention_map[name] = self._placeholder(user_id, story, name, "placeholder", outcome, reusable)

        for name in resolution.unknown:
            if name.lower() not in ignored:
                mention_map[name] = self._placeholder(user_id, story, name, "mentioned", outcome, reusable)

        for name, choice in resolutions.items():
            if choice == IGNORE:
                continue
            if choice == NEW:
                mention_map[name] = self._placeholder(user_id, story, name, "placeholder", outcome, reusable)
            else:
                person = self.people.resolve_canonical(user_id, choice)
                if person is None:
                    raise NotFound("Person", choice)
                mention_map[name] = person.id

        outcome.mention_map = mention_map
        return ignored

    def _map_subject(
        self,
        candidate: CandidateFact,
        mention_map: dict[str, str],
        roster: dict[str, Person],
    ) -> Optional[str]:
        """Pin a reply relation to a known person id."""
        if candidate.subject_id in roster:
            return roster[candidate.subject_id].id
        name = (candidate.subject_name or "").strip().lower()
        if not name:
            return None
        for mention, person_id in mention_map.items():
            if mention.lower() == name:
                return person_id
        matches = [p.id for p in roster.values() if p.name.lower() == name]
        return matches[0] if len(matches) == 1 else None

    async def process_story(
        self,
        user_id: str,
        story_id: str,
        resolutions: Optional[dict[str, str]] = None,
    ) -> ExtractionOutcome:
        """
        Extract and stage facts for a story.

        Args:
            user_id: Owning user
            story_id: Saved story
            resolutions: Completed ambiguity map (name -> person id | NEW | IGNORE)

        Raises:
            NotFound: story, or a chosen person, does not exist
            UnresolvedAmbiguity: an ambiguous name has no choice
        """
        resolutions = resolutions or {}
        story = self._get_story(user_id, story_id)
        outcome = ExtractionOutcome(story_id=story.id)

        resolution = resolve_text(story.content, self.people.list_for_user(user_id))
        ignored = self._apply_resolutions(user_id, story, resolution, resolutions, outcome)
        people_ids = list(dict.fromkeys(outcome.mention_map.values()))
        self.stories.set_people(user_id, story.id, people_ids)

        created_ids = {p.id for p in outcome.created_people}
        for name, person_id in resolution.bound.items():
            if name in outcome.mention_map and person_id not in created_ids:
                self.people.increment_mention_count(user_id, person_id)

        roster_people = self.people.list_for_user(user_id)
        try:
            result = await self.collaborator.extract(story.content, outcome.mention_map, roster_people)
        except Exception as e:
            # Any collaborator failure means zero candidate facts; the story stays saved
            error = e if isinstance(e, CollaboratorUnavailable) else CollaboratorUnavailable(
                f"{type(e).__name__}: {e}"
            )
            outcome.collaborator_error = user_friendly_error(error)
            logger.warning(f"No facts extracted for story {story.id[:8]}: {error}")
            return outcome

        roster = {p.id: p for p in roster_people}
        for candidate in result.relations:
            if (
                (candidate.subject_name or "").strip().lower() in ignored
                or (candidate.object_label or "").strip().lower() in ignored
            ):
                logger.debug(
                    f"Dropping fact referencing an ignored name: "
                    f"{candidate.subject_name!r} {candidate.relation_kind} {candidate.object_label!r}"
                )
                outcome.skipped.append({"subject_name": candidate.subject_name, "reason": "ignored"})
                continue

            subject_id = self._map_subject(candidate, outcome.mention_map, roster)
            if subject_id is None:
                logger.warning(
                    f"Dropping fact with unknown subject {candidate.subject_name!r} ({candidate.subject_id!r})"
                )
                outcome.skipped.append({"subject_name": candidate.subject_name, "reason": "unknown_subject"})
                continue
            candidate = replace(
                candidate,
                subject_id=subject_id,
                subject_name=candidate.subject_name or roster[subject_id].name,
                story_id=story.id,
            )

            try:
                candidate = self.validator.validate(user_id, candidate)
            except DuplicateFact as e:
                logger.debug(f"Dropping duplicate: {e}")
                outcome.duplicates += 1
                continue
            except CandidateRejected as e:
                logger.warning(f"Rejected candidate for story {story.id[:8]}: {e.message}")
                outcome.rejected.append({
                    "candidate": candidate.to_dict(),
                    "reason": e.reason,
                    "message": e.message,
                })
                continue

            for conflict in detect_conflicts(
                candidate.relation_kind,
                candidate.object_label,
                self.facts.list_for_person(user_id, subject_id),
                status=candidate.status,
            ):
                outcome.conflicts.append(conflict.to_dict())

            if self.context.auto_accept_enabled and should_auto_accept(
                candidate.relation_kind, candidate.confidence
            ):
                try:
                    outcome.auto_accepted.append(self.review.commit_candidate(user_id, candidate))
                except DuplicateFact:
                    outcome.duplicates += 1
                continue

            staged = self.pending.stage(user_id, candidate)
            if staged is None:
                outcome.duplicates += 1
            else:
                outcome.staged.append(staged)

        outcome.conflicts.extend(c.to_dict() for c in result.conflicts)

        self.stories.mark_processed(
            user_id,
            story.id,
            extracted_data={
                "relations": len(result.relations),
                "staged": len(outcome.staged),
                "auto_accepted": len(outcome.auto_accepted),
                "rejected": len(outcome.rejected),
                "duplicates": outcome.duplicates,
                "conflicts": outcome.conflicts,
                "tokens_used": result.tokens_used,
            },
            people_ids=people_ids,
        )
        logger.info(
            f"Story {story.id[:8]}: {len(outcome.staged)} staged, {len(outcome.auto_accepted)} auto-accepted, "
            f"{len(outcome.rejected)} rejected, {outcome.duplicates} duplicates"
        )
        return outcome
