from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from hrflow.database import get_db
from hrflow.models.notification import Notification
from hrflow.routers.auth_deps import get_current_user
from hrflow.schemas.notification import NotificationResponse
from hrflow.services.authorization import CallerIdentity

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=List[NotificationResponse])
def get_notifications(
    unread_only: bool = False,
    kind: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    query = db.query(Notification).filter(Notification.user_id == current_user.user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    if kind:
        query = query.filter(Notification.kind == kind.upper())
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(50).all()


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == current_user.user_id
    ).first()

    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")

    notification.is_read = True
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(notification)
    return notification


@router.post("/mark-all-read")
def mark_all_notifications_as_read(
    db: Session = Depends(get_db),
    current_user: CallerIdentity = Depends(get_current_user)
):
    updated = db.query(Notification).filter(
        Notification.user_id == current_user.user_id,
        Notification.is_read.is_(False)
    ).update({Notification.is_read: True}, synchronize_session=False)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"message": "All notifications marked as read", "updated": updated}
