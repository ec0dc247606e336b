"""
Mention parsing for story text.

Detects @name tokens in free text:
- "@Sarah" references an existing person (looked up by the identity resolver)
- "@+Marco" forces creation of a new person (never looked up)

Also exposes the "live" token under the caret so the editor can offer
suggestions while the user is typing. Everything here is pure: the same
(text, caret) always yields the same result.
"""
import re
from dataclasses import dataclass
from typing import Callable, Optional

# "@" + optional "+" (force-create) + word characters
MENTION_PATTERN = re.compile(r"@(\+?)(\w+)")
VALID_MENTION_PATTERN = re.compile(r"^@\+?\w+$")
# "@Sarah (my sister)" -> ("Sarah", "sister")
RELATIONSHIP_HINT_PATTERN = re.compile(r"@\+?(\w+)\s*\((?:my\s+)?([^)]+)\)", re.IGNORECASE)

FORCE_NEW_MARKER = "+"


@dataclass
class Mention:
    """A single @name token found in text."""
    name: str
    start: int  # index of "@"
    end: int  # index one past the last name character
    full_match: str
    force_new: bool = False
    person_id: Optional[str] = None  # bound after resolution

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "start": self.start,
            "end": self.end,
            "full_match": self.full_match,
            "force_new": self.force_new,
            "person_id": self.person_id,
        }


@dataclass
class LiveMention:
    """The unterminated @token the caret currently sits in."""
    query: str  # characters typed after "@" (and after "+" for force-create)
    start: int  # index of "@"
    caret: int
    force_new: bool = False

    @property
    def needs_lookup(self) -> bool:
        """Force-create tokens never trigger an identity search."""
        return not self.force_new

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "start": self.start,
            "caret": self.caret,
            "force_new": self.force_new,
            "needs_lookup": self.needs_lookup,
        }


@dataclass
class MentionParseResult:
    """All mentions in a text plus the live token (if any)."""
    mentions: list[Mention]
    live: Optional[LiveMention] = None

    @property
    def lookup_names(self) -> list[str]:
        """Unique names that need an identity lookup, in first-detected order."""
        forced = {m.name for m in self.mentions if m.force_new}
        return _unique([m.name for m in self.mentions if m.name not in forced])

    @property
    def force_new_names(self) -> list[str]:
        """Unique names marked with @+, in first-detected order."""
        return _unique([m.name for m in self.mentions if m.force_new])


def _unique(names: list[str]) -> list[str]:
    seen = set()
    result = []
    for name in names:
        if name not in seen:
            seen.add(name)
            result.append(name)
    return result


def extract_mentions(text: str) -> list[Mention]:
    """
    Extract all @mentions from text.

    Matches patterns like: @Sarah, @John, @+Marco
    """
    if not text:
        return []
    return [
        Mention(
            name=match.group(2),
            start=match.start(),
            end=match.end(),
            full_match=match.group(0),
            force_new=match.group(1) == FORCE_NEW_MARKER,
        )
        for match in MENTION_PATTERN.finditer(text)
    ]


def get_live_mention(text: str, caret: int) -> Optional[LiveMention]:
    """
    Find the in-progress @token immediately before the caret.

    The token is live while everything between the "@" and the caret is
    made of word characters (an optional leading "+" is allowed). A space,
    punctuation or a second "@" ends it.
    """
    if not text:
        return None
    caret = max(0, min(caret, len(text)))
    before_caret = text[:caret]
    at_index = before_caret.rfind("@")
    if at_index == -1:
        return None

    typed = before_caret[at_index + 1:]
    force_new = typed.startswith(FORCE_NEW_MARKER)
    query = typed[1:] if force_new else typed

    # Empty query is still live: the user has just typed "@"
    if query and not re.fullmatch(r"\w+", query):
        return None

    return LiveMention(query=query, start=at_index, caret=caret, force_new=force_new)


def parse_mentions(text: str, caret: Optional[int] = None) -> MentionParseResult:
    """
    Parse text for mentions and the live token.

    Args:
        text: Story text
        caret: Caret offset; None means no live-token detection

    Returns:
        MentionParseResult
    """
    live = get_live_mention(text, caret) if caret is not None else None
    return MentionParseResult(mentions=extract_mentions(text), live=live)


def mention_token_for(name: str) -> str:
    """Compact a display name into a parseable token ("Sarah Lee" -> "SarahLee")."""
    return re.sub(r"\W+", "", name)


def complete_live_mention(text: str, caret: int, name: str) -> tuple[str, int]:
    """
    Replace the live token with "@<name> " after a suggestion is picked.

    Returns:
        (new_text, new_caret). Unchanged input when there is no live token.
    """
    live = get_live_mention(text, caret)
    if live is None:
        return text, caret

    token = mention_token_for(name)
    prefix = "@+" if live.force_new else "@"
    replacement = f"{prefix}{token} "
    new_text = text[:live.start] + replacement + text[live.caret:]
    return new_text, live.start + len(replacement)


def unique_mention_names(text: str) -> list[str]:
    """Get unique mentioned names in the order they first appear."""
    return _unique([m.name for m in extract_mentions(text)])


def mentions_with_context(text: str, context_length: int = 50) -> list[dict]:
    """Get each mention with surrounding text for disambiguation."""
    results = []
    for mention in extract_mentions(text):
        start_context = max(0, mention.start - context_length)
        end_context = min(len(text), mention.end + context_length)
        results.append({
            "name": mention.name,
            "context_before": text[start_context:mention.start].strip(),
            "context_after": text[mention.end:end_context].strip(),
        })
    return results


def highlight_mentions(text: str, highlight_fn: Callable[[Mention], str]) -> str:
    """
    Replace every mention token with highlight_fn(mention).

    With highlight_fn=lambda m: m.full_match the text is returned unchanged,
    so re-parsing yields the original mention set.
    """
    if not text:
        return text

    def _replace(match: re.Match) -> str:
        mention = Mention(
            name=match.group(2),
            start=match.start(),
            end=match.end(),
            full_match=match.group(0),
            force_new=match.group(1) == FORCE_NEW_MARKER,
        )
        return highlight_fn(mention)

    return MENTION_PATTERN.sub(_replace, text)


def has_mentions(text: str) -> bool:
    return bool(text) and MENTION_PATTERN.search(text) is not None


def count_mentions(text: str) -> int:
    return len(extract_mentions(text))


def count_unique_mentions(text: str) -> int:
    return len(unique_mention_names(text))


def is_valid_mention(token: str) -> bool:
    """True for a bare token such as "@Sarah" or "@+Marco"."""
    return bool(VALID_MENTION_PATTERN.match(token or ""))


def format_mentions_for_ai(text: str) -> str:
    """Prefix the text with a header listing the mentioned people."""
    names = unique_mention_names(text)
    if not names:
        return text
    return f"[People mentioned: {', '.join(names)}]\n\n{text}"


def extract_mentions_with_relationships(text: str) -> list[dict]:
    """
    Extract mentions with relationship hints.

    "@Sarah (my sister)" -> {"name": "Sarah", "relationship": "sister"}.
    Mentions without a hint are appended as {"name": ...}.
    """
    results = []
    hinted = set()
    for match in RELATIONSHIP_HINT_PATTERN.finditer(text or ""):
        results.append({"name": match.group(1), "relationship": match.group(2).strip()})
        hinted.add(match.group(1))

    for name in unique_mention_names(text):
        if name not in hinted:
            results.append({"name": name})
    return results
