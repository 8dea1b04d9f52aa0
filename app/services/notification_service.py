"""
Notification Sink
Stores in-app notifications for users. Delivery (push, email, SMS) is handled
elsewhere; callers treat inserts here as fire-and-forget.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import AnalyticsEvent, Notification

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    notification_type: str,
    data: Optional[dict] = None,
) -> Optional[Notification]:
    """
    Insert a notification for a user.

    Never raises: a failed insert is logged and rolled back so that the
    operation the notification is attached to still succeeds.

    Returns:
        The stored Notification, or None if the insert failed
    """
    try:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=notification_type,
            data=data or {},
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
        logger.info(f"🔔 {notification_type} notification stored for user {user_id}: {title}")
        return notification
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to store {notification_type} notification for user {user_id}: {e}")
        return None


def record_analytics_event(
    db: Session, event_type: str, user_id: Optional[int], data: Optional[dict] = None
) -> None:
    """Append an analytics event; failures are logged and swallowed"""
    try:
        db.add(AnalyticsEvent(event_type=event_type, user_id=user_id, data=data or {}))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to record analytics event {event_type}: {e}")


def send_appointment_booked_notifications(db: Session, appointment, owner, slot) -> None:
    """Notify the pet owner and the veterinarian about a new booking"""
    day = appointment.scheduled_at.strftime("%Y-%m-%d")
    pet_name = appointment.pet.name if appointment.pet else "your pet"
    mode = appointment.appointment_mode

    create_notification(
        db,
        user_id=owner.id,
        title="Appointment Confirmed",
        message=f"Your appointment for {pet_name} has been scheduled for {day} at {slot.start_time}",
        notification_type="appointment",
        data={
            "appointment_id": appointment.id,
            "appointment_type": mode,
            "date": appointment.scheduled_at.isoformat(),
        },
    )
    create_notification(
        db,
        user_id=appointment.vet_id,
        title="New Appointment Booked",
        message=f"New {mode} appointment scheduled for {day} at {slot.start_time}",
        notification_type="appointment",
        data={
            "appointment_id": appointment.id,
            "pet_name": pet_name,
            "owner_name": owner.full_name or owner.email,
        },
    )


def send_payment_result_notification(
    db: Session, payment, receipt: Optional[str] = None, amount: Optional[float] = None
) -> None:
    """Tell the payer whether their payment went through"""
    amount = amount if amount is not None else payment.amount
    if payment.status == "completed":
        title = "Payment Successful"
        message = f"Your payment of {payment.currency} {amount:g} has been processed successfully."
        if receipt:
            message += f" Receipt: {receipt}"
    else:
        title = "Payment Failed"
        message = f"Your payment failed: {payment.failure_reason or 'Unknown error'}"

    create_notification(
        db,
        user_id=payment.user_id,
        title=title,
        message=message,
        notification_type="payment",
        data={
            "payment_id": payment.id,
            "mpesa_receipt": receipt,
            "amount": amount,
            "status": payment.status,
        },
    )
