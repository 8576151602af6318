"""
Relationship-based authorization.

A role only says what kind of action a caller may attempt; whether the
caller may act on a particular entity depends on how the caller's employee
record relates to it (owner, reviewer, or manager of the owner).
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from hrflow.core.exceptions import AccessDeniedError, ErrorKind, NotFoundError
from hrflow.models.employee import Employee
from hrflow.models.user import User, UserRole

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    VIEW_APPRAISAL = "view_appraisal"
    CREATE_APPRAISAL = "create_appraisal"
    SUBMIT_SELF_ASSESSMENT = "submit_self_assessment"
    SUBMIT_REVIEW = "submit_review"
    UPDATE_GOALS = "update_goals"
    LIST_ALL_APPRAISALS = "list_all_appraisals"

    CREATE_TEMPLATE = "create_template"
    VIEW_TEMPLATES = "view_templates"
    ASSIGN_WORKFLOW = "assign_workflow"
    VIEW_WORKFLOW = "view_workflow"
    COMPLETE_TASK = "complete_task"

    SUBMIT_LEAVE = "submit_leave"
    DECIDE_LEAVE = "decide_leave"
    VIEW_LEAVE = "view_leave"

    VIEW_TEAM = "view_team"


READ_ACTIONS = frozenset({
    Action.VIEW_APPRAISAL,
    Action.LIST_ALL_APPRAISALS,
    Action.VIEW_TEMPLATES,
    Action.VIEW_WORKFLOW,
    Action.VIEW_LEAVE,
    Action.VIEW_TEAM,
})

ADMIN_WRITES = frozenset({
    Action.CREATE_TEMPLATE,
    Action.ASSIGN_WORKFLOW,
    Action.CREATE_APPRAISAL,
})

OWNER_ACTIONS = frozenset({
    Action.SUBMIT_SELF_ASSESSMENT,
    Action.COMPLETE_TASK,
    Action.SUBMIT_LEAVE,
})

REVIEWER_ACTIONS = frozenset({
    Action.SUBMIT_REVIEW,
    Action.UPDATE_GOALS,
})

MANAGING_ROLES = frozenset({UserRole.MANAGER, UserRole.HR_ADMIN})


@dataclass(frozen=True)
class CallerIdentity:
    user_id: int
    role: UserRole
    employee_id: Optional[int] = None
    manager_id: Optional[int] = None

    @property
    def is_hr(self) -> bool:
        return self.role == UserRole.HR_ADMIN


@dataclass(frozen=True)
class EntityRefs:
    """Relationship fields of the target: its owner, reviewer, and the owner's manager."""
    employee_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    manager_id: Optional[int] = None


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: Optional[str] = None
    error_code: Optional[str] = None
    kind: Optional[ErrorKind] = None

    def raise_if_denied(self) -> None:
        if self.allowed:
            return
        if self.kind == ErrorKind.NOT_FOUND:
            raise NotFoundError(self.reason, error_code=self.error_code)
        raise AccessDeniedError(self.reason, error_code=self.error_code)


ALLOW = AuthorizationDecision(allowed=True)


def _deny(reason: str, error_code: str = "UNAUTHORIZED") -> AuthorizationDecision:
    return AuthorizationDecision(allowed=False, reason=reason, error_code=error_code, kind=ErrorKind.UNAUTHORIZED)


def authorize(caller: CallerIdentity, refs: EntityRefs, action: Action) -> AuthorizationDecision:
    if caller.employee_id is None:
        return AuthorizationDecision(
            allowed=False,
            reason="Employee record not found for the current user",
            error_code="EMPLOYEE_RECORD_NOT_FOUND",
            kind=ErrorKind.NOT_FOUND,
        )

    is_owner = refs.employee_id is not None and refs.employee_id == caller.employee_id
    is_reviewer = refs.reviewer_id is not None and refs.reviewer_id == caller.employee_id
    is_manager = refs.manager_id is not None and refs.manager_id == caller.employee_id

    if caller.is_hr and (action in READ_ACTIONS or action in ADMIN_WRITES):
        return ALLOW

    if action in OWNER_ACTIONS:
        if is_owner:
            return ALLOW
        return _deny(f"Only the owning employee may {action.value.replace('_', ' ')}")

    if action in REVIEWER_ACTIONS:
        if caller.role in MANAGING_ROLES and is_reviewer:
            return ALLOW
        return _deny(f"Only the assigned reviewer may {action.value.replace('_', ' ')}")

    if action == Action.CREATE_APPRAISAL:
        if caller.role == UserRole.MANAGER and is_manager:
            return ALLOW
        return _deny("Only HR or the employee's manager may create an appraisal")

    if action == Action.DECIDE_LEAVE:
        if caller.role in MANAGING_ROLES and is_manager:
            return ALLOW
        return _deny("Only the employee's manager may decide on this leave request")

    if action == Action.VIEW_APPRAISAL:
        if is_owner or is_reviewer:
            return ALLOW
        return _deny("You do not have access to this appraisal")

    if action in (Action.VIEW_WORKFLOW, Action.VIEW_LEAVE):
        if is_owner or is_manager:
            return ALLOW
        return _deny("You do not have access to this employee's records")

    if action == Action.VIEW_TEAM:
        if caller.role == UserRole.MANAGER:
            return ALLOW
        return _deny("Manager role required")

    if action == Action.VIEW_TEMPLATES:
        if caller.role in MANAGING_ROLES:
            return ALLOW
        return _deny("Manager role required")

    return _deny("HR admin role required")


class IdentityResolver:
    """Maps an authenticated account id onto the caller's employee identity."""

    def resolve(self, db: Session, user_id: int) -> Optional[CallerIdentity]:
        user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
        if not user:
            return None

        employee = db.query(Employee).filter(Employee.user_id == user.id).first()
        if not employee:
            logger.info("No employee record linked to user", extra={"user_id": user.id})
            return CallerIdentity(user_id=user.id, role=user.role)

        return CallerIdentity(
            user_id=user.id,
            role=user.role,
            employee_id=employee.id,
            manager_id=employee.manager_id,
        )
