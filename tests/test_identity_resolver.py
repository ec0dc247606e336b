"""
Tests for identity resolution of mention names.

Tests cover:
- Candidate search (substring over name, nickname, compact name)
- Classification into unknown / unambiguous / ambiguous
- Resolving every mention in a text
- The store-backed IdentityResolver
"""
import pytest

from api.services.identity_resolver import (
    AMBIGUOUS,
    UNAMBIGUOUS,
    UNKNOWN,
    IdentityResolver,
    classify,
    resolve_text,
    search_candidates,
)
from api.services.person_store import Person

pytestmark = pytest.mark.unit


def _person(name, nickname=None, status="active", person_id=None):
    person = Person(user_id="user-1", name=name, nickname=nickname, status=status)
    if person_id:
        person.id = person_id
    return person


@pytest.fixture
def roster():
    return [
        _person("Sarah Lee", person_id="p-sarah-lee"),
        _person("Sarah Kim", person_id="p-sarah-kim"),
        _person("Alexander Stone", nickname="Alex", person_id="p-alex"),
        _person("Marco Rossi", person_id="p-marco"),
    ]


class TestSearchCandidates:
    """Tests for search_candidates()."""

    def test_case_insensitive_substring(self, roster):
        candidates = search_candidates("sarah", roster)
        assert {c.person.id for c in candidates} == {"p-sarah-lee", "p-sarah-kim"}

    def test_nickname_match(self, roster):
        candidates = search_candidates("alex", roster)
        assert [c.person.id for c in candidates] == ["p-alex"]
        assert candidates[0].exact is True

    def test_compact_name_match(self, roster):
        """A completed token like "SarahLee" matches "Sarah Lee"."""
        candidates = search_candidates("SarahLee", roster)
        assert [c.person.id for c in candidates] == ["p-sarah-lee"]
        assert candidates[0].exact is True

    def test_exact_matches_rank_first(self):
        people = [_person("Annabel", person_id="p-annabel"), _person("Ann", person_id="p-ann")]
        candidates = search_candidates("ann", people)
        assert candidates[0].person.id == "p-ann"

    def test_merged_people_never_returned(self, roster):
        roster.append(_person("Sarah Old", status="merged", person_id="p-merged"))
        ids = {c.person.id for c in search_candidates("sarah", roster)}
        assert "p-merged" not in ids

    def test_limit(self, roster):
        assert len(search_candidates("a", roster, limit=2)) == 2

    def test_empty_query(self, roster):
        assert search_candidates("", roster) == []
        assert search_candidates("   ", roster) == []

    def test_no_match(self, roster):
        assert search_candidates("zed", roster) == []


class TestClassify:
    """Tests for classify()."""

    def test_unknown(self, roster):
        resolution = classify("Priya", roster)
        assert resolution.status == UNKNOWN
        assert resolution.person_id is None

    def test_unambiguous_exact(self, roster):
        resolution = classify("Alex", roster)
        assert resolution.status == UNAMBIGUOUS
        assert resolution.person_id == "p-alex"

    def test_single_partial_match_is_ambiguous(self, roster):
        """One candidate that is not an exact match still needs confirmation."""
        resolution = classify("Mar", roster)
        assert resolution.status == AMBIGUOUS
        assert len(resolution.candidates) == 1

    def test_several_candidates_ambiguous(self, roster):
        resolution = classify("Sarah", roster)
        assert resolution.status == AMBIGUOUS
        assert len(resolution.candidates) == 2
        assert resolution.person_id is None

    def test_to_dict(self, roster):
        data = classify("Alex", roster).to_dict()
        assert data["status"] == UNAMBIGUOUS
        assert data["person_id"] == "p-alex"
        assert data["candidates"][0]["name"] == "Alexander Stone"


class TestResolveText:
    """Tests for resolve_text()."""

    def test_partitions_names(self, roster):
        result = resolve_text("@Alex and @Sarah met @Priya and @+Marco", roster)
        assert result.bound == {"Alex": "p-alex"}
        assert result.ambiguous_names == ["Sarah"]
        assert result.unknown == ["Priya"]
        assert result.forced_new == ["Marco"]
        assert result.needs_resolution is True

    def test_force_new_never_looked_up(self, roster):
        """@+Marco wins over a plain @Marco elsewhere in the text."""
        result = resolve_text("@Marco then @+Marco", roster)
        assert result.forced_new == ["Marco"]
        assert "Marco" not in result.bound
        assert result.unknown == []

    def test_each_name_once(self, roster):
        result = resolve_text("@Sarah @Sarah @Sarah", roster)
        assert result.ambiguous_names == ["Sarah"]

    def test_ambiguous_in_first_detected_order(self):
        people = [
            _person("Sam One"), _person("Sam Two"),
            _person("Jo One"), _person("Jo Two"),
        ]
        result = resolve_text("@Jo and @Sam", people)
        assert result.ambiguous_names == ["Jo", "Sam"]

    def test_no_mentions(self, roster):
        result = resolve_text("Nobody here", roster)
        assert result.to_dict() == {"bound": {}, "ambiguous": [], "unknown": [], "forced_new": []}
        assert result.needs_resolution is False


class TestIdentityResolver:
    """Tests for the store-backed resolver."""

    def test_suggest_uses_user_people(self, person_store, make_person, user_id):
        sarah = make_person("Sarah Lee")
        make_person("Sarah Other", owner="someone-else")
        resolver = IdentityResolver(person_store)

        suggestions = resolver.suggest(user_id, "sar")
        assert [c.person.id for c in suggestions] == [sarah.id]

    def test_suggest_empty_query(self, person_store, user_id):
        assert IdentityResolver(person_store).suggest(user_id, "") == []

    def test_resolve_text(self, person_store, make_person, user_id):
        alex = make_person("Alex")
        result = IdentityResolver(person_store).resolve_text(user_id, "@Alex and @Nobody")
        assert result.bound == {"Alex": alex.id}
        assert result.unknown == ["Nobody"]

    def test_resolution_does_not_mutate(self, person_store, make_person, user_id):
        alex = make_person("Alex")
        IdentityResolver(person_store).resolve(user_id, "Alex")
        assert person_store.get_by_id(user_id, alex.id).mention_count == 0
