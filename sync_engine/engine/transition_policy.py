"""Status transition rules for stateful records."""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..schemas.models import PendingEdit

NONE_STATUS = "--None--"


@dataclass(frozen=True)
class TransitionRule:
    allowed: Tuple[str, ...]
    description: str


DEFAULT_TRANSITION_RULES: Dict[str, TransitionRule] = {
    NONE_STATUS: TransitionRule(
        allowed=("Calibration Queue", "Production Queue", "Test Queue", NONE_STATUS),
        description="Can transition to any queue status",
    ),
    "Calibration Queue": TransitionRule(
        allowed=("Production Queue", "Test Queue", NONE_STATUS),
        description="Can transition to Production Queue, Test Queue, or remove (--None--)",
    ),
    "Production Queue": TransitionRule(
        allowed=("Test Queue", "Calibration Queue", NONE_STATUS),
        description="Can transition to Test Queue, Calibration Queue, or remove (--None--)",
    ),
    "Test Queue": TransitionRule(
        allowed=("Production Queue", "Calibration Queue", NONE_STATUS),
        description="Can transition to Production Queue, Calibration Queue, or remove (--None--)",
    ),
}


@dataclass(frozen=True)
class BulkOptions:
    """What the bulk selector may offer for the current selection."""
    options: Tuple[str, ...]
    enabled: bool
    message: Optional[str] = None


class TransitionPolicy:
    """Finite-state machine over a closed status set plus the ``--None--`` state.

    ``allowed`` fails open for statuses it does not know, so a record carrying
    an unexpected status can still be moved somewhere. Target statuses are
    never failed open: a transition into an unknown status is always invalid.
    """

    def __init__(self, rules: Optional[Dict[str, TransitionRule]] = None):
        self.rules = dict(rules or DEFAULT_TRANSITION_RULES)
        named = tuple(sorted(s for s in self.rules if s != NONE_STATUS))
        self._order: Tuple[str, ...] = (NONE_STATUS,) + named if NONE_STATUS in self.rules else named
        self._all: FrozenSet[str] = frozenset(self._order)

    @property
    def states(self) -> FrozenSet[str]:
        return self._all

    @staticmethod
    def normalise(state: Optional[str]) -> str:
        """Map ``None`` and blank values onto the ``--None--`` state."""
        if state is None or str(state).strip() == "":
            return NONE_STATUS
        return str(state)

    @staticmethod
    def to_server(state: Optional[str]) -> Optional[str]:
        """Inverse of ``normalise``: the remote API stores ``--None--`` as null."""
        normalised = TransitionPolicy.normalise(state)
        return None if normalised == NONE_STATUS else normalised

    def is_known(self, state: Optional[str]) -> bool:
        return self.normalise(state) in self.rules

    def allowed(self, state: Optional[str]) -> FrozenSet[str]:
        rule = self.rules.get(self.normalise(state))
        if rule is None:
            return self._all
        return frozenset(rule.allowed)

    def is_valid(self, from_state: Optional[str], to_state: Optional[str]) -> bool:
        return self.normalise(to_state) in self.allowed(from_state)

    def options(self, state: Optional[str]) -> List[str]:
        """Allowed targets in display order."""
        allowed = self.allowed(state)
        return [s for s in self._order if s in allowed]

    def describe(self, state: Optional[str]) -> str:
        rule = self.rules.get(self.normalise(state))
        return rule.description if rule else "No restrictions"

    def common_allowed(self, states: Iterable[Optional[str]]) -> FrozenSet[str]:
        common: Optional[FrozenSet[str]] = None
        for state in states:
            allowed = self.allowed(state)
            common = allowed if common is None else common & allowed
        return self._all if common is None else common

    def bulk_options(self, states: Iterable[Optional[str]]) -> BulkOptions:
        states = list(states)
        common = self.common_allowed(states)
        ordered = tuple(s for s in self._order if s in common)
        if not ordered:
            current = sorted({self.normalise(s) for s in states})
            return BulkOptions(
                options=(),
                enabled=False,
                message=(
                    "No status is a valid transition for every selected record "
                    f"(current statuses: {', '.join(current)}). Narrow the selection "
                    "or update records individually."
                ),
            )
        return BulkOptions(options=ordered, enabled=True)

    def validate_transitions(self, edits: Iterable[PendingEdit]) -> List[Dict[str, str]]:
        """Return one error entry per edit whose transition is not allowed."""
        errors = []
        for edit in edits:
            if not self.is_valid(edit.from_state, edit.to_state):
                errors.append({
                    "record_id": edit.record_id,
                    "error": (
                        f'Invalid transition from "{self.normalise(edit.from_state)}" '
                        f'to "{self.normalise(edit.to_state)}"'
                    ),
                })
        return errors
