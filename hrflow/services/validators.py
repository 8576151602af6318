"""
Input checks run before any persistence access.

Each check returns a list of messages; ``raise_if_errors`` folds them into a
single ``ValidationFailedError``.
"""
from datetime import date, timedelta
from typing import Iterable, List, Optional

from hrflow.core.exceptions import ValidationFailedError

MAX_ASSESSMENT_LENGTH = 5000
MAX_FEEDBACK_LENGTH = 5000
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_NOTES_LENGTH = 2000
MAX_REASON_LENGTH = 500

MIN_RATING = 1
MAX_RATING = 5

MIN_REVIEW_PERIOD_DAYS = 30
MAX_REVIEW_PERIOD_DAYS = 365
MAX_LEAVE_SPAN_DAYS = 365

MAX_PAGE_LIMIT = 100


def raise_if_errors(errors: Iterable[str]) -> None:
    errors = list(errors)
    if errors:
        raise ValidationFailedError(errors)


def check_text(value: Optional[str], field: str, max_length: int, required: bool = True) -> List[str]:
    if value is None or not value.strip():
        return [f"{field} is required"] if required else []
    if len(value.strip()) > max_length:
        return [f"{field} must not exceed {max_length} characters"]
    return []


def check_rating(rating) -> List[str]:
    if rating is None:
        return ["Rating is required"]
    if isinstance(rating, bool) or not isinstance(rating, int):
        return ["Rating must be an integer"]
    if not MIN_RATING <= rating <= MAX_RATING:
        return [f"Rating must be between {MIN_RATING} and {MAX_RATING}"]
    return []


def check_review_period(start: Optional[date], end: Optional[date]) -> List[str]:
    if start is None or end is None:
        return ["Review period start and end dates are required"]
    if end <= start:
        return ["Review period end date must be after start date"]
    days = (end - start).days
    if days < MIN_REVIEW_PERIOD_DAYS:
        return [f"Review period must be at least {MIN_REVIEW_PERIOD_DAYS} days"]
    if days > MAX_REVIEW_PERIOD_DAYS:
        return [f"Review period must not exceed {MAX_REVIEW_PERIOD_DAYS} days"]
    return []


def check_goal(goal, index: Optional[int] = None, partial: bool = False) -> List[str]:
    """Validates a goal payload; ``partial`` for updates where every field is optional."""
    prefix = f"Goal {index + 1}: " if index is not None else ""
    errors = []
    title = goal.get("title")
    description = goal.get("description")
    if not partial or title is not None:
        errors += check_text(title, "Goal title", MAX_TITLE_LENGTH)
    if not partial or description is not None:
        errors += check_text(description, "Goal description", MAX_DESCRIPTION_LENGTH)
    if not partial and goal.get("target_date") is None:
        errors.append("Goal target date is required")
    errors += check_text(goal.get("notes"), "Goal notes", MAX_NOTES_LENGTH, required=False)
    return [prefix + e for e in errors]


def check_template(name: Optional[str], description: Optional[str], tasks: list) -> List[str]:
    errors = check_text(name, "Template name", MAX_TITLE_LENGTH)
    errors += check_text(description, "Template description", MAX_DESCRIPTION_LENGTH)
    if not tasks:
        errors.append("Template must contain at least one task")
    for i, task in enumerate(tasks or []):
        prefix = f"Task {i + 1}: "
        errors += [prefix + e for e in check_text(task.get("title"), "Task title", MAX_TITLE_LENGTH)]
        errors += [prefix + e for e in check_text(task.get("description"), "Task description", MAX_DESCRIPTION_LENGTH)]
        if (task.get("days_until_due") or 0) < 0:
            errors.append(prefix + "Days until due must be non-negative")
        if (task.get("order") or 0) < 0:
            errors.append(prefix + "Task order must be non-negative")
    return errors


def check_leave_dates(start: Optional[date], end: Optional[date], today: date) -> List[str]:
    if start is None or end is None:
        return ["Start and end dates are required"]
    errors = []
    if start > end:
        errors.append("Start date must be on or before end date")
    if start < today:
        errors.append("Start date cannot be in the past")
    if (end - start).days > MAX_LEAVE_SPAN_DAYS:
        errors.append(f"Leave request cannot exceed {MAX_LEAVE_SPAN_DAYS} days")
    return errors


def leave_days(start: date, end: date) -> int:
    """Inclusive calendar days, never less than one."""
    return max(1, (end - start).days + 1)


def check_pagination(page: int, limit: int) -> List[str]:
    errors = []
    if page < 1:
        errors.append("Page must be at least 1")
    if not 1 <= limit <= MAX_PAGE_LIMIT:
        errors.append(f"Limit must be between 1 and {MAX_PAGE_LIMIT}")
    return errors


def default_due_date(start: date, days_until_due: int) -> date:
    return start + timedelta(days=days_until_due)
