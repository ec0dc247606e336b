"""
Identity Resolver for Friends.

Maps a mention name to zero, one or several existing people:
- zero candidates -> unknown (caller may create a placeholder)
- exactly one candidate whose name or nickname equals the token -> unambiguous
- anything else -> ambiguous (goes through the ambiguity protocol)

Matching is a case-insensitive substring test over name, nickname and the
compacted mention token of the name ("Sarah Lee" -> "sarahlee"). Resolution
never mutates a person.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from rapidfuzz import fuzz

from api.services.mentions import extract_mentions, mention_token_for
from api.services.person_store import Person, PersonStore, get_person_store
from config.settings import settings

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
UNAMBIGUOUS = "unambiguous"
AMBIGUOUS = "ambiguous"


@dataclass
class IdentityCandidate:
    """A person that matched a mention name."""
    person: Person
    score: float  # rapidfuzz WRatio, 0-100
    exact: bool  # name, nickname or compact name equals the token

    def to_dict(self) -> dict:
        return {
            "person_id": self.person.id,
            "name": self.person.name,
            "nickname": self.person.nickname,
            "person_type": self.person.person_type,
            "score": round(self.score, 1),
            "exact": self.exact,
        }


@dataclass
class IdentityResolution:
    """Classification of one mention name."""
    name: str
    status: str  # unknown, unambiguous, ambiguous
    candidates: list[IdentityCandidate] = field(default_factory=list)

    @property
    def person_id(self) -> Optional[str]:
        """Bound person id when unambiguous."""
        if self.status == UNAMBIGUOUS:
            return self.candidates[0].person.id
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "person_id": self.person_id,
            "candidates": [c.to_dict() for c in self.candidates],
        }


@dataclass
class ResolutionPass:
    """Outcome of resolving every mention in a text."""
    bound: dict[str, str] = field(default_factory=dict)  # name -> person id
    ambiguous: list[IdentityResolution] = field(default_factory=list)  # first-detected order
    unknown: list[str] = field(default_factory=list)
    forced_new: list[str] = field(default_factory=list)

    @property
    def ambiguous_names(self) -> list[str]:
        return [r.name for r in self.ambiguous]

    @property
    def needs_resolution(self) -> bool:
        return bool(self.ambiguous)

    def to_dict(self) -> dict:
        return {
            "bound": dict(self.bound),
            "ambiguous": [r.to_dict() for r in self.ambiguous],
            "unknown": list(self.unknown),
            "forced_new": list(self.forced_new),
        }


def _match_fields(person: Person) -> list[str]:
    fields = [person.name.lower(), mention_token_for(person.name).lower()]
    if person.nickname:
        fields.append(person.nickname.lower())
    return [f for f in fields if f]


def _is_exact(token: str, person: Person) -> bool:
    return token.lower() in _match_fields(person)


def _similarity(token: str, person: Person) -> float:
    scores = [fuzz.WRatio(token, person.name)]
    if person.nickname:
        scores.append(fuzz.WRatio(token, person.nickname))
    return max(scores)


def search_candidates(
    name: str,
    people: Iterable[Person],
    limit: Optional[int] = None,
) -> list[IdentityCandidate]:
    """
    Find people whose name or nickname contains the token.

    Ranked exact matches first, then by similarity, then by name.
    Merged people are never candidates.

    Args:
        name: Mention name (without "@")
        people: The user's person set
        limit: Max candidates (default settings.mention_suggestion_limit)

    Returns:
        Ranked list of IdentityCandidate
    """
    limit = settings.mention_suggestion_limit if limit is None else limit
    token = (name or "").strip().lower()
    if not token:
        return []

    candidates = []
    for person in people:
        if person.is_merged:
            continue
        if not any(token in f for f in _match_fields(person)):
            continue
        candidates.append(IdentityCandidate(
            person=person,
            score=_similarity(token, person),
            exact=_is_exact(token, person),
        ))

    candidates.sort(key=lambda c: (not c.exact, -c.score, c.person.name.lower()))
    return candidates[:limit]


def classify(
    name: str,
    people: Iterable[Person],
    limit: Optional[int] = None,
) -> IdentityResolution:
    """Classify a mention name as unknown, unambiguous or ambiguous."""
    candidates = search_candidates(name, people, limit)
    if not candidates:
        status = UNKNOWN
    elif len(candidates) == 1 and candidates[0].exact:
        status = UNAMBIGUOUS
    else:
        status = AMBIGUOUS
    return IdentityResolution(name=name, status=status, candidates=candidates)


def resolve_text(text: str, people: Iterable[Person], limit: Optional[int] = None) -> ResolutionPass:
    """
    Resolve every mention in a text against a person set.

    Names marked "@+" anywhere in the text are never looked up; they end
    up in forced_new. Every other unique name lands in exactly one of
    bound, ambiguous or unknown.
    """
    people = list(people)
    mentions = extract_mentions(text)
    forced = []
    for m in mentions:
        if m.force_new and m.name not in forced:
            forced.append(m.name)

    result = ResolutionPass(forced_new=forced)
    seen = set(forced)
    for mention in mentions:
        if mention.name in seen:
            continue
        seen.add(mention.name)

        resolution = classify(mention.name, people, limit)
        if resolution.status == UNAMBIGUOUS:
            result.bound[mention.name] = resolution.person_id
        elif resolution.status == AMBIGUOUS:
            result.ambiguous.append(resolution)
        else:
            result.unknown.append(mention.name)

    logger.debug(
        f"Resolved {len(seen)} names: {len(result.bound)} bound, "
        f"{len(result.ambiguous)} ambiguous, {len(result.unknown)} unknown, "
        f"{len(result.forced_new)} forced new"
    )
    return result


class IdentityResolver:
    """
    Resolves mention names against a user's stored people.

    Thin store-backed wrapper over the pure functions above.
    """

    def __init__(self, person_store: Optional[PersonStore] = None):
        self._store = person_store or get_person_store()

    @property
    def store(self) -> PersonStore:
        return self._store

    def suggest(self, user_id: str, query: str, limit: Optional[int] = None) -> list[IdentityCandidate]:
        """Live-token suggestions for the editor."""
        if not query:
            return []
        return search_candidates(query, self._store.list_for_user(user_id), limit)

    def resolve(self, user_id: str, name: str) -> IdentityResolution:
        return classify(name, self._store.list_for_user(user_id))

    def resolve_text(self, user_id: str, text: str) -> ResolutionPass:
        return resolve_text(text, self._store.list_for_user(user_id))
