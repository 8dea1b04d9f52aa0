import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import Notification, User
from ..schemas import MessageResponse, NotificationsResponse, NotificationsUpdate

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationsResponse)
async def get_notifications(
    unread_only: bool = False,
    type: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the user's notifications, newest first"""
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    if type:
        query = query.filter(Notification.type == type)

    total = query.count()
    notifications = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "notifications": notifications,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


@router.patch("", response_model=MessageResponse)
async def update_notifications(
    body: NotificationsUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark the user's notifications as read or unread"""
    db.query(Notification).filter(
        Notification.user_id == current_user.id,
        Notification.id.in_(body.notification_ids),
    ).update({Notification.read: body.mark_as_read}, synchronize_session=False)
    db.commit()

    return {"message": "Notifications updated successfully"}
