import enum
from dataclasses import dataclass
from typing import FrozenSet, Iterable

from hrflow.models.appraisal import GoalStatus
from hrflow.models.onboarding import TaskStatus


class DerivedStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class ProgressRule:
    """Which child statuses count as closed and which as merely started."""
    completed: FrozenSet
    started: FrozenSet


TASK_PROGRESS = ProgressRule(
    completed=frozenset({TaskStatus.COMPLETED}),
    started=frozenset({TaskStatus.IN_PROGRESS}),
)

# A goal judged NOT_ACHIEVED is still closed for the purpose of the cycle.
GOAL_PROGRESS = ProgressRule(
    completed=frozenset({GoalStatus.ACHIEVED, GoalStatus.NOT_ACHIEVED}),
    started=frozenset({GoalStatus.IN_PROGRESS}),
)


@dataclass(frozen=True)
class ProgressSnapshot:
    progress: int
    status: DerivedStatus
    completed_count: int
    total_count: int


def percent(completed: int, total: int) -> int:
    """
    round(100 * completed / total) with halves rounded up; 0 for an empty set.

    Returns 100 exactly when every item is closed, so a parent derived as
    COMPLETED always reports 100 and any open child keeps it at 99 or below,
    whatever the set size. From 200 items up this can sit one point under
    plain rounding (199 of 200 gives 99, not 100).
    """
    if total <= 0:
        return 0
    value = (200 * completed + total) // (2 * total)
    if completed < total:
        return min(value, 99)
    return value


def compute(statuses: Iterable, rule: ProgressRule = TASK_PROGRESS) -> ProgressSnapshot:
    statuses = list(statuses)
    total = len(statuses)
    completed = sum(1 for s in statuses if s in rule.completed)
    started = sum(1 for s in statuses if s in rule.started)

    if total and completed == total:
        status = DerivedStatus.COMPLETED
    elif completed or started:
        status = DerivedStatus.IN_PROGRESS
    else:
        status = DerivedStatus.NOT_STARTED

    return ProgressSnapshot(
        progress=percent(completed, total),
        status=status,
        completed_count=completed,
        total_count=total,
    )
