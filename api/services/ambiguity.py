"""
Ambiguity resolution protocol.

When several people match a mention, the user picks one name at a time:
an existing person id, NEW (create a placeholder) or IGNORE (drop every
fact about that name). State is an immutable value; transitions are pure
functions returning a new state.

    state = start(["Sarah", "Alex"])
    state = select(state, "Sarah", "p-123")
    state, done = advance(state)      # done is None, now on "Alex"
    state = select(state, "Alex", NEW)
    state, done = advance(state)      # done == {"Sarah": "p-123", "Alex": NEW}
"""
import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional

from api.services.errors import NoResolutionSelected

logger = logging.getLogger(__name__)

NEW = "NEW"
IGNORE = "IGNORE"


@dataclass(frozen=True)
class AmbiguityState:
    """Names to resolve, the current position and the choices made so far."""
    names: tuple[str, ...] = ()
    index: int = 0
    resolutions: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def active(self) -> bool:
        return bool(self.names)

    @property
    def current_name(self) -> Optional[str]:
        if not self.active or self.index >= len(self.names):
            return None
        return self.names[self.index]

    @property
    def is_last(self) -> bool:
        return self.active and self.index == len(self.names) - 1

    def to_dict(self) -> dict:
        return {
            "names": list(self.names),
            "index": self.index,
            "current_name": self.current_name,
            "resolutions": dict(self.resolutions),
        }


EMPTY_STATE = AmbiguityState()


def start(names: list[str]) -> AmbiguityState:
    """Begin resolving names in first-detected order (duplicates collapsed)."""
    ordered = tuple(dict.fromkeys(names))
    return AmbiguityState(names=ordered, index=0)


def select(state: AmbiguityState, name: str, choice: str) -> AmbiguityState:
    """
    Record a choice for a name. Overwrites any earlier choice, does not advance.

    Args:
        state: Current state
        name: One of state.names
        choice: A person id, NEW or IGNORE
    """
    if name not in state.names:
        raise ValueError(f"'{name}' is not being resolved")
    if not choice:
        raise ValueError("Choice must be a person id, NEW or IGNORE")
    resolutions = dict(state.resolutions)
    resolutions[name] = choice
    return replace(state, resolutions=MappingProxyType(resolutions))


def advance(state: AmbiguityState) -> tuple[AmbiguityState, Optional[dict[str, str]]]:
    """
    Move past the current name.

    Returns:
        (next_state, None) while names remain, or (empty_state, resolutions)
        once the last name has been passed.

    Raises:
        NoResolutionSelected: the current name has no choice yet
    """
    name = state.current_name
    if name is None:
        raise ValueError("No ambiguity resolution in progress")
    if name not in state.resolutions:
        raise NoResolutionSelected(name)

    if state.is_last:
        completed = {n: state.resolutions[n] for n in state.names}
        logger.info(f"Ambiguity resolution complete for {len(completed)} names")
        return EMPTY_STATE, completed

    return replace(state, index=state.index + 1), None


def cancel(state: AmbiguityState) -> AmbiguityState:
    """Abandon resolution; every partial choice is discarded."""
    if state.active:
        logger.info(f"Ambiguity resolution cancelled after {len(state.resolutions)} choices")
    return EMPTY_STATE


class AmbiguityResolutionSession:
    """Mutable wrapper around the pure protocol."""

    def __init__(self, names: list[str]):
        self.state = start(names)
        self.result: Optional[dict[str, str]] = None

    @property
    def current_name(self) -> Optional[str]:
        return self.state.current_name

    @property
    def completed(self) -> bool:
        return self.result is not None

    def select(self, name: str, choice: str) -> None:
        self.state = select(self.state, name, choice)

    def advance(self) -> Optional[dict[str, str]]:
        self.state, result = advance(self.state)
        if result is not None:
            self.result = result
        return result

    def cancel(self) -> None:
        self.state = cancel(self.state)
        self.result = None
