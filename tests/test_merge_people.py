"""
Tests for the merge_people maintenance script.

Tests cover:
- Person search
- Duplicate detection
- Merge preview (dry run)
"""
import pytest

from api.services.relationship_facts import RelationshipFact

pytestmark = pytest.mark.unit


class TestSearchPeople:
    """Tests for person search."""

    def test_matches_name_and_nickname(self, make_person, user_id):
        from scripts.merge_people import search_people

        make_person("Sarah Lee")
        make_person("Alexander Stone", nickname="Sar")
        make_person("Marco Rossi")

        names = [p.name for p in search_people(user_id, "SAR")]
        assert names == ["Alexander Stone", "Sarah Lee"]

    def test_other_users_hidden(self, make_person, user_id):
        from scripts.merge_people import search_people

        make_person("Sarah Lee", owner="someone-else")
        assert search_people(user_id, "sarah") == []


class TestFindPotentialDuplicates:
    """Tests for duplicate detection."""

    def test_near_identical_names_paired(self, make_person, user_id):
        from scripts.merge_people import find_potential_duplicates

        a = make_person("Sarah Lee")
        b = make_person("Lee Sarah")
        make_person("Marco Rossi")

        duplicates = find_potential_duplicates(user_id)
        assert len(duplicates) == 1
        assert {p.id for p in duplicates[0]["people"]} == {a.id, b.id}
        assert duplicates[0]["score"] == 100

    def test_threshold(self, make_person, user_id):
        from scripts.merge_people import find_potential_duplicates

        make_person("Sarah Lee")
        make_person("Sarah Kim")

        assert find_potential_duplicates(user_id) == []
        assert len(find_potential_duplicates(user_id, threshold=50)) == 1


class TestPreviewMerge:
    """Tests for the dry-run summary."""

    def test_counts(self, make_person, make_candidate, fact_store, pending_store, user_id):
        from scripts.merge_people import preview_merge

        primary = make_person("Sarah Lee")
        secondary = make_person("Sarah L")
        for owner_id, label in [(primary.id, "tea"), (secondary.id, "tea"), (secondary.id, "chess")]:
            fact_store.add(RelationshipFact(user_id=user_id, subject_id=owner_id,
                                            relation_kind="LIKES", object_label=label))
        pending_store.stage(user_id, make_candidate(secondary.id, object_label="hiking"))

        preview = preview_merge(user_id, primary.id, secondary.id)

        assert preview == {
            "primary": "Sarah Lee",
            "secondary": "Sarah L",
            "facts_to_move": 1,
            "facts_to_deduplicate": 1,
            "pending_to_redirect": 1,
        }

    def test_preview_changes_nothing(self, make_person, person_store, user_id):
        from scripts.merge_people import preview_merge

        primary = make_person("Sarah Lee")
        secondary = make_person("Sarah L")
        preview_merge(user_id, primary.id, secondary.id)

        assert person_store.get_by_id(user_id, secondary.id).status == "active"

    def test_missing_person(self, make_person, user_id):
        from scripts.merge_people import preview_merge

        primary = make_person("Sarah Lee")
        with pytest.raises(LookupError):
            preview_merge(user_id, primary.id, "missing")
