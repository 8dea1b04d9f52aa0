"""
Payment Models for M-Pesa (STK push) payment collection
"""

import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import one_of

PAYMENT_STATUSES = ("pending", "completed", "failed")


def generate_public_id():
    """Generate a unique public ID for account references"""
    return str(uuid.uuid4())


class Payment(Base):
    """Payment requested from a pet owner; settled asynchronously by the gateway"""

    __tablename__ = "payments"
    __table_args__ = (one_of("status", PAYMENT_STATUSES, "ck_payment_status"),)

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, nullable=False, index=True, default=generate_public_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # Payer
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)

    amount = Column(Float, nullable=False)
    currency = Column(String(10), default="KES")
    method = Column(String(20), default="mpesa", nullable=False)

    # pending -> completed | failed (terminal)
    status = Column(String(20), default="pending", nullable=False, index=True)
    transaction_id = Column(String(100), nullable=True)  # Gateway receipt number
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime, nullable=True)

    appointment = relationship("Appointment")
    mpesa_transaction = relationship(
        "MpesaTransaction", back_populates="payment", uselist=False
    )


class MpesaTransaction(Base):
    """STK push request details, correlated to callbacks by checkout_request_id"""

    __tablename__ = "mpesa_transactions"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, unique=True)
    merchant_request_id = Column(String(100), nullable=True)
    checkout_request_id = Column(String(100), unique=True, nullable=False, index=True)
    phone_number = Column(String(20), nullable=False)
    amount = Column(Float, nullable=False)
    account_reference = Column(String(50), nullable=True)
    transaction_desc = Column(String(255), nullable=True)

    # Populated from the callback / status query
    result_code = Column(Integer, nullable=True)
    result_desc = Column(Text, nullable=True)
    mpesa_receipt_number = Column(String(50), nullable=True)
    transaction_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    payment = relationship("Payment", back_populates="mpesa_transaction")
