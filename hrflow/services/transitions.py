"""
Transition graphs for every stateful entity, kept as plain data.

Each graph maps a current status to the frozenset of statuses it may move to.
``validate`` never raises; orchestrators turn a denial into an
``InvalidTransitionError`` through ``ensure_transition``.
"""
import enum
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from hrflow.core.exceptions import InvalidTransitionError
from hrflow.models.appraisal import AppraisalStatus
from hrflow.models.leave import LeaveStatus
from hrflow.models.onboarding import WorkflowStatus


class EntityType(str, enum.Enum):
    APPRAISAL = "appraisal"
    WORKFLOW = "onboarding_workflow"
    LEAVE_REQUEST = "leave_request"


TRANSITIONS: Dict[EntityType, Dict[enum.Enum, FrozenSet[enum.Enum]]] = {
    EntityType.APPRAISAL: {
        AppraisalStatus.DRAFT: frozenset({AppraisalStatus.SUBMITTED}),
        AppraisalStatus.SUBMITTED: frozenset({AppraisalStatus.COMPLETED}),
        AppraisalStatus.COMPLETED: frozenset(),
    },
    EntityType.WORKFLOW: {
        WorkflowStatus.NOT_STARTED: frozenset({WorkflowStatus.IN_PROGRESS}),
        WorkflowStatus.IN_PROGRESS: frozenset({WorkflowStatus.COMPLETED}),
        WorkflowStatus.COMPLETED: frozenset(),
    },
    EntityType.LEAVE_REQUEST: {
        LeaveStatus.PENDING: frozenset({LeaveStatus.APPROVED, LeaveStatus.REJECTED}),
        LeaveStatus.APPROVED: frozenset(),
        LeaveStatus.REJECTED: frozenset(),
    },
}

STATUS_TYPES = {
    EntityType.APPRAISAL: AppraisalStatus,
    EntityType.WORKFLOW: WorkflowStatus,
    EntityType.LEAVE_REQUEST: LeaveStatus,
}

# Statuses of these entities are outputs of the progress calculator, never caller input.
DERIVED_ONLY = frozenset({EntityType.WORKFLOW})


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    reason: Optional[str] = None
    allowed_next: Tuple[str, ...] = field(default_factory=tuple)


def _coerce(entity_type: EntityType, status):
    status_type = STATUS_TYPES[entity_type]
    if isinstance(status, status_type):
        return status
    try:
        return status_type(status)
    except ValueError:
        return None


def _label(status) -> str:
    return status.value if isinstance(status, enum.Enum) else str(status)


def allowed_next(entity_type: EntityType, current) -> Tuple[str, ...]:
    state = _coerce(entity_type, current)
    targets = TRANSITIONS[entity_type].get(state, frozenset())
    order = list(STATUS_TYPES[entity_type])
    return tuple(_label(s) for s in sorted(targets, key=order.index))


def validate(entity_type: EntityType, current, requested, derived: bool = False) -> TransitionDecision:
    """Checks ``current -> requested`` against the graph of ``entity_type``."""
    next_states = allowed_next(entity_type, current)

    if entity_type in DERIVED_ONLY and not derived:
        return TransitionDecision(
            allowed=False,
            reason=f"{entity_type.value} status is derived from its tasks and cannot be set directly",
            allowed_next=next_states,
        )

    source = _coerce(entity_type, current)
    target = _coerce(entity_type, requested)
    if source is not None and target is not None and target in TRANSITIONS[entity_type].get(source, frozenset()):
        return TransitionDecision(allowed=True, allowed_next=next_states)

    return TransitionDecision(
        allowed=False,
        reason=(
            f"Invalid status transition from {_label(current)} to {_label(requested)}. "
            f"Allowed transitions: {', '.join(next_states) or 'none'}"
        ),
        allowed_next=next_states,
    )


def ensure_transition(entity_type: EntityType, current, requested, derived: bool = False) -> None:
    decision = validate(entity_type, current, requested, derived=derived)
    if not decision.allowed:
        raise InvalidTransitionError(
            decision.reason,
            details={
                "entity": entity_type.value,
                "current": _label(current),
                "requested": _label(requested),
                "allowed": list(decision.allowed_next),
            },
        )


def route(entity_type: EntityType, current, target) -> Optional[List]:
    """
    Shortest chain of statuses leading from ``current`` to ``target``.

    Returns the statuses to step through (``current`` excluded), an empty list
    when already there, or None when the graph has no path.
    """
    source = _coerce(entity_type, current)
    goal = _coerce(entity_type, target)
    if source is None or goal is None:
        return None
    if source == goal:
        return []

    graph = TRANSITIONS[entity_type]
    parents = {source: None}
    queue = deque([source])
    while queue:
        state = queue.popleft()
        for nxt in graph.get(state, frozenset()):
            if nxt in parents:
                continue
            parents[nxt] = state
            if nxt == goal:
                path = [nxt]
                while parents[path[-1]] != source:
                    path.append(parents[path[-1]])
                return list(reversed(path))
            queue.append(nxt)
    return None
