"""Payments repository - Database operations for payments and M-Pesa transactions"""

from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...models import Appointment
from ...models_payment import MpesaTransaction, Payment


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def create_payment(db: Session, **payment_data) -> Payment:
        payment = Payment(**payment_data)
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment

    @staticmethod
    def get_payment(db: Session, payment_id: int, lock: bool = False) -> Optional[Payment]:
        query = db.query(Payment).filter(Payment.id == payment_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_payments(db: Session, user_id: int) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def list_stale_pending(db: Session, created_before: datetime) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.status == "pending", Payment.created_at <= created_before)
            .order_by(Payment.created_at)
            .all()
        )

    @staticmethod
    def transition_status(db: Session, payment_id: int, new_status: str, **fields) -> bool:
        """
        Move a payment out of "pending".

        Guarded by status = 'pending', so of two concurrent deliveries of the
        same result only one updates the row. Does not commit.

        Returns:
            True if this call performed the transition
        """
        result = db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == "pending")
            .values(status=new_status, **fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def set_missing_receipt(db: Session, payment_id: int, receipt: str) -> bool:
        """Record a receipt on a completed payment that has none. Does not commit."""
        result = db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == "completed",
                Payment.transaction_id.is_(None),
            )
            .values(transaction_id=receipt)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def get_owned_appointment(db: Session, appointment_id: int, owner_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.owner_id == owner_id)
            .first()
        )


class TransactionRepository:
    """Repository for M-Pesa transaction records"""

    @staticmethod
    def create_transaction(db: Session, **transaction_data) -> MpesaTransaction:
        transaction = MpesaTransaction(**transaction_data)
        db.add(transaction)
        db.commit()
        db.refresh(transaction)
        return transaction

    @staticmethod
    def get_by_checkout_request_id(
        db: Session, checkout_request_id: str, lock: bool = False
    ) -> Optional[MpesaTransaction]:
        query = db.query(MpesaTransaction).filter(
            MpesaTransaction.checkout_request_id == checkout_request_id
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_by_payment_id(db: Session, payment_id: int) -> Optional[MpesaTransaction]:
        return db.query(MpesaTransaction).filter(MpesaTransaction.payment_id == payment_id).first()
