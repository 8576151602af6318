import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from hrflow.core.config import settings
from hrflow.database import SessionLocal, execute_transaction
from hrflow.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    APPRAISAL_CREATED = "APPRAISAL_CREATED"
    SELF_ASSESSMENT_SUBMITTED = "SELF_ASSESSMENT_SUBMITTED"
    REVIEW_COMPLETED = "REVIEW_COMPLETED"
    GOALS_UPDATED = "GOALS_UPDATED"
    WORKFLOW_ASSIGNED = "WORKFLOW_ASSIGNED"
    TASK_COMPLETED = "TASK_COMPLETED"
    WORKFLOW_COMPLETED = "WORKFLOW_COMPLETED"
    LEAVE_REQUESTED = "LEAVE_REQUESTED"
    LEAVE_APPROVED = "LEAVE_APPROVED"
    LEAVE_REJECTED = "LEAVE_REJECTED"


TITLES = {
    NotificationKind.APPRAISAL_CREATED: "New appraisal cycle",
    NotificationKind.SELF_ASSESSMENT_SUBMITTED: "Self-assessment submitted",
    NotificationKind.REVIEW_COMPLETED: "Your review is complete",
    NotificationKind.GOALS_UPDATED: "Appraisal goals updated",
    NotificationKind.WORKFLOW_ASSIGNED: "Onboarding assigned",
    NotificationKind.TASK_COMPLETED: "Onboarding task completed",
    NotificationKind.WORKFLOW_COMPLETED: "Onboarding completed",
    NotificationKind.LEAVE_REQUESTED: "Leave request awaiting approval",
    NotificationKind.LEAVE_APPROVED: "Leave request approved",
    NotificationKind.LEAVE_REJECTED: "Leave request rejected",
}


@dataclass(frozen=True)
class NotificationReceipt:
    kind: NotificationKind
    recipient_user_id: int
    notification_id: Optional[int] = None


class Notifier(Protocol):
    def send(self, kind: NotificationKind, recipient_user_id: int, payload: Dict[str, Any]) -> NotificationReceipt:
        ...


class NullNotifier:
    """Accepts every notification and delivers none."""

    def send(self, kind, recipient_user_id, payload):
        return NotificationReceipt(kind=kind, recipient_user_id=recipient_user_id)


class InAppNotifier:
    """Writes notifications into the in-app inbox, in a transaction of its own."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, max_attempts: Optional[int] = None,
                 retry_wait: Optional[float] = None):
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.notifications.max_attempts
        self.retry_wait = settings.notifications.retry_wait_seconds if retry_wait is None else retry_wait

    def send(self, kind, recipient_user_id, payload):
        sender = retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait, max=10),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        )(self._write)
        notification_id = sender(kind, recipient_user_id, payload)
        logger.info(f"Notification {kind.value} delivered to user {recipient_user_id}")
        return NotificationReceipt(kind=kind, recipient_user_id=recipient_user_id, notification_id=notification_id)

    def _write(self, kind, recipient_user_id, payload) -> int:
        def insert(db: Session) -> int:
            notification = Notification(
                user_id=recipient_user_id,
                kind=kind.value,
                title=TITLES.get(kind, kind.value),
                message=payload.get("message") or TITLES.get(kind, kind.value),
                payload=payload,
                link=payload.get("link"),
            )
            db.add(notification)
            db.flush()
            return notification.id

        return execute_transaction(insert, self.session_factory)


def dispatch_after_commit(
    notifier: Optional[Notifier],
    kind: NotificationKind,
    recipient_user_id: Optional[int],
    payload: Dict[str, Any],
) -> Optional[NotificationReceipt]:
    """
    Best-effort delivery once the business transaction has committed.
    Never raises: a failed notification is logged and the caller carries on.
    """
    if notifier is None or recipient_user_id is None:
        return None
    if not settings.notifications.enabled:
        logger.debug(f"Notifications disabled; dropping {kind.value}")
        return None
    try:
        return notifier.send(kind, recipient_user_id, payload)
    except Exception:
        logger.warning(
            f"Failed to send {kind.value} notification to user {recipient_user_id}",
            exc_info=True,
        )
        return None
