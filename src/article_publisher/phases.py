"""Phase state machine: one static transition table plus pure lookup functions."""

from __future__ import annotations

from .errors import StateError
from .models import Phase

_APPROVAL_AND_REJECT = frozenset({Phase.AWAITING_APPROVAL, Phase.REJECTED})

TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.CREATED: frozenset({Phase.RESEARCHING}) | _APPROVAL_AND_REJECT,
    Phase.RESEARCHING: frozenset({Phase.DRAFTING}) | _APPROVAL_AND_REJECT,
    Phase.DRAFTING: frozenset({Phase.FACT_CHECKING}) | _APPROVAL_AND_REJECT,
    Phase.FACT_CHECKING: frozenset({Phase.EDITING, Phase.DRAFTING}) | _APPROVAL_AND_REJECT,
    Phase.EDITING: frozenset({Phase.CRITIQUING, Phase.FACT_CHECKING, Phase.DRAFTING}) | _APPROVAL_AND_REJECT,
    Phase.CRITIQUING: frozenset({Phase.PUBLISHED, Phase.EDITING, Phase.DRAFTING}) | _APPROVAL_AND_REJECT,
    Phase.AWAITING_APPROVAL: frozenset({
        Phase.RESEARCHING,
        Phase.DRAFTING,
        Phase.FACT_CHECKING,
        Phase.EDITING,
        Phase.CRITIQUING,
        Phase.PUBLISHED,
        Phase.REJECTED,
    }),
    Phase.PUBLISHED: frozenset(),
    Phase.REJECTED: frozenset(),
}

# Happy path, in order.
FLOW: tuple[Phase, ...] = (
    Phase.CREATED,
    Phase.RESEARCHING,
    Phase.DRAFTING,
    Phase.FACT_CHECKING,
    Phase.EDITING,
    Phase.CRITIQUING,
    Phase.PUBLISHED,
)

PROCESSING_PHASES: tuple[Phase, ...] = FLOW[1:-1]

_REVISION_TARGET: dict[Phase, Phase] = {
    Phase.FACT_CHECKING: Phase.DRAFTING,
    Phase.EDITING: Phase.FACT_CHECKING,
    Phase.CRITIQUING: Phase.EDITING,
}


def can_transition(source: Phase, target: Phase) -> bool:
    return target in TRANSITIONS[source]


def require_transition(source: Phase, target: Phase) -> None:
    """Raise ``StateError`` unless ``source -> target`` is in the table."""
    if not can_transition(source, target):
        raise StateError(source, target)


def valid_transitions(phase: Phase) -> frozenset[Phase]:
    return TRANSITIONS[phase]


def is_terminal(phase: Phase) -> bool:
    return not TRANSITIONS[phase]


def is_processing(phase: Phase) -> bool:
    """True for phases owned by an agent."""
    return phase in PROCESSING_PHASES


def next_in_flow(phase: Phase) -> Phase | None:
    """The next phase on the happy path, or None where the caller has to decide."""
    if phase is Phase.AWAITING_APPROVAL or is_terminal(phase):
        return None
    return FLOW[FLOW.index(phase) + 1]


def previous_for_revision(phase: Phase) -> Phase | None:
    """Default backward target when a phase's own output asks for rework."""
    return _REVISION_TARGET.get(phase)


def flow_index(phase: Phase) -> int:
    """Position on the happy path; -1 for phases not on it."""
    try:
        return FLOW.index(phase)
    except ValueError:
        return -1


def is_backward(source: Phase, target: Phase) -> bool:
    """True when moving from *source* to *target* goes back along the flow."""
    src, dst = flow_index(source), flow_index(target)
    return src >= 0 and dst >= 0 and dst < src
