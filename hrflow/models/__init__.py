# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import user, employee, appraisal, onboarding, leave, notification

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .employee import Employee
from .appraisal import Appraisal, AppraisalStatus, Goal, GoalStatus
from .onboarding import (
    OnboardingTemplate, OnboardingTemplateTask,
    OnboardingWorkflow, OnboardingTask,
    TaskStatus, WorkflowStatus,
)
from .leave import LeaveRequest, LeaveBalance, LeaveStatus, LeaveType
from .notification import Notification

__all__ = [
    "User",
    "UserRole",
    "Employee",
    "Appraisal",
    "AppraisalStatus",
    "Goal",
    "GoalStatus",
    "OnboardingTemplate",
    "OnboardingTemplateTask",
    "OnboardingWorkflow",
    "OnboardingTask",
    "TaskStatus",
    "WorkflowStatus",
    "LeaveRequest",
    "LeaveBalance",
    "LeaveStatus",
    "LeaveType",
    "Notification",
]
