#!/usr/bin/env python3
"""
Merge duplicate person records.

Merges a secondary person into a primary one: the secondary becomes an inert
"merged" record pointing at the primary, its facts are rewritten onto the
primary (duplicates soft-deleted) and its pending extractions follow.

Usage:
    python scripts/merge_people.py --user <id> --primary <id> --secondary <id> [--execute]
    python scripts/merge_people.py --user <id> --list-duplicates
    python scripts/merge_people.py --user <id> --search "name pattern"
"""
import sys
import logging
import argparse
from pathlib import Path

from rapidfuzz import fuzz

sys.path.insert(0, str(Path(__file__).parent.parent))

from api.services.person_merge import merge_people
from api.services.person_store import get_person_store
from api.services.pending_extractions import get_pending_store
from api.services.relationship_facts import get_fact_store
from config.settings import settings

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)

DUPLICATE_NAME_THRESHOLD = 90


def search_people(user_id: str, pattern: str) -> list:
    """Case-insensitive substring search over name and nickname."""
    pattern = pattern.lower()
    return [
        p for p in get_person_store().list_for_user(user_id)
        if pattern in p.name.lower() or (p.nickname and pattern in p.nickname.lower())
    ]


def find_potential_duplicates(user_id: str, threshold: int = DUPLICATE_NAME_THRESHOLD) -> list:
    """
    Group people whose names are near-identical.

    Returns:
        List of {"name": ..., "score": ..., "people": [a, b]} sorted by score
    """
    people = get_person_store().list_for_user(user_id)
    duplicates = []
    for i, a in enumerate(people):
        for b in people[i + 1:]:
            score = fuzz.token_sort_ratio(a.name.lower(), b.name.lower())
            if score >= threshold:
                duplicates.append({"name": a.name, "score": score, "people": [a, b]})
    duplicates.sort(key=lambda d: -d["score"])
    return duplicates


def preview_merge(user_id: str, primary_id: str, secondary_id: str) -> dict:
    """Dry run: what a merge would touch."""
    people = get_person_store()
    primary = people.get_by_id(user_id, primary_id)
    secondary = people.get_by_id(user_id, secondary_id)
    if not primary or not secondary:
        raise LookupError("Both people must exist")

    primary_facts = {
        (f.relation_kind, f.object_label)
        for f in get_fact_store().list_for_person(user_id, primary_id)
    }
    secondary_facts = get_fact_store().list_for_person(user_id, secondary_id)
    overlapping = sum(1 for f in secondary_facts if (f.relation_kind, f.object_label) in primary_facts)
    pending = get_pending_store().list_pending(user_id, person_id=secondary_id)

    return {
        "primary": primary.name,
        "secondary": secondary.name,
        "facts_to_move": len(secondary_facts) - overlapping,
        "facts_to_deduplicate": overlapping,
        "pending_to_redirect": len(pending),
    }


def main():
    parser = argparse.ArgumentParser(description='Merge duplicate person records')
    parser.add_argument('--user', default=settings.default_user_id, help='Owning user id')
    parser.add_argument('--primary', help='ID of the person to keep')
    parser.add_argument('--secondary', help='ID of the person to merge into primary')
    parser.add_argument('--execute', action='store_true', help='Actually apply changes')
    parser.add_argument('--list-duplicates', action='store_true', help='List potential duplicates')
    parser.add_argument('--search', help='Search for people by name or nickname')
    args = parser.parse_args()

    if args.list_duplicates:
        duplicates = find_potential_duplicates(args.user)
        print(f"\nFound {len(duplicates)} potential duplicate pairs:\n")
        for i, dup in enumerate(duplicates, 1):
            print(f"{i}. {dup['name']} (similarity {dup['score']:.0f})")
            for p in dup['people']:
                print(f"   - {p.name} (ID: {p.id[:8]}..., mentions: {p.mention_count}, {p.person_type})")
            print()
        return

    if args.search:
        matches = search_people(args.user, args.search)
        print(f"\nFound {len(matches)} matches for '{args.search}':\n")
        for p in matches:
            print(f"  ID: {p.id}")
            print(f"  Name: {p.name}")
            print(f"  Nickname: {p.nickname}")
            print(f"  Type: {p.person_type} ({p.status})")
            print(f"  Mentions: {p.mention_count}")
            print()
        return

    if not args.primary or not args.secondary:
        parser.print_help()
        print("\nExamples:")
        print("  python scripts/merge_people.py --search 'Alex'")
        print("  python scripts/merge_people.py --list-duplicates")
        print("  python scripts/merge_people.py --primary abc123 --secondary def456")
        print("  python scripts/merge_people.py --primary abc123 --secondary def456 --execute")
        return

    if not args.execute:
        preview = preview_merge(args.user, args.primary, args.secondary)
        print(f"\nDRY RUN: merge {preview['secondary']} into {preview['primary']}")
        print(f"  Facts to move: {preview['facts_to_move']}")
        print(f"  Facts to deduplicate: {preview['facts_to_deduplicate']}")
        print(f"  Pending extractions to redirect: {preview['pending_to_redirect']}")
        print("\nRe-run with --execute to apply.")
        return

    result = merge_people(args.user, args.secondary, args.primary)
    logger.info(
        f"Merged into {result.target.name}: {result.facts_moved} facts moved, "
        f"{result.facts_deduplicated} deduplicated, {result.pending_redirected} pending redirected"
    )


if __name__ == '__main__':
    main()
