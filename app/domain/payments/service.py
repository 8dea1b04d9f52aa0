"""Payment service - STK push initiation, callback reconciliation and status queries"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import PAYMENT_CURRENCY
from ...models import User
from ...models_payment import MpesaTransaction, Payment
from ...security_utils import mask_sensitive_data
from ...services.notification_service import send_payment_result_notification
from ...shared.exceptions import GatewayError, NotFoundError, StoreError, ValidationError
from ...shared.validators import normalize_msisdn, parse_gateway_timestamp
from .mpesa_service import MpesaClient
from .repository import PaymentRepository, TransactionRepository
from .schemas import InitiatePaymentRequest, PaymentResponse, StkCallback

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Pet Care Payment"


def default_account_reference(payment: Payment) -> str:
    return f"PET-{payment.public_id[:8]}"


class PaymentService:
    """Service layer for M-Pesa payments"""

    def __init__(self, db: Session, mpesa: Optional[MpesaClient] = None):
        self.db = db
        self.mpesa = mpesa
        self.payments = PaymentRepository()
        self.transactions = TransactionRepository()

    def _require_gateway(self) -> MpesaClient:
        if not self.mpesa:
            raise GatewayError("Payment gateway not configured")
        return self.mpesa

    # ========================================================================
    # INITIATION
    # ========================================================================

    async def initiate_payment(self, payer: User, data: InitiatePaymentRequest) -> dict:
        """
        Create a pending payment and push the charge prompt to the payer's phone.

        Input is validated before anything is written. A gateway failure marks
        the payment failed and is re-raised; nothing is retried here.
        """
        if data.amount is None or not data.phone_number:
            raise ValidationError("Amount and phone number are required")
        if data.amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        try:
            phone_number = normalize_msisdn(data.phone_number)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if data.appointment_id is not None:
            appointment = self.payments.get_owned_appointment(self.db, data.appointment_id, payer.id)
            if not appointment:
                raise NotFoundError("Appointment not found")

        mpesa = self._require_gateway()

        try:
            payment = self.payments.create_payment(
                self.db,
                user_id=payer.id,
                appointment_id=data.appointment_id,
                amount=data.amount,
                currency=PAYMENT_CURRENCY,
                method="mpesa",
                status="pending",
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create payment record for user {payer.id}: {e}")
            raise StoreError("Failed to create payment record") from e

        account_reference = data.account_reference or default_account_reference(payment)
        description = data.description or DEFAULT_DESCRIPTION
        logger.info(
            f"💳 Payment {payment.id} created: {payment.amount} {payment.currency} "
            f"from {mask_sensitive_data(phone_number)}"
        )

        try:
            gateway_response = await mpesa.stk_push(
                phone_number=phone_number,
                amount=data.amount,
                account_reference=account_reference,
                description=description,
            )
        except GatewayError as e:
            logger.error(f"❌ STK push failed for payment {payment.id}: {e.message}")
            self._mark_failed(payment, e.message)
            raise

        try:
            self.transactions.create_transaction(
                self.db,
                payment_id=payment.id,
                merchant_request_id=gateway_response.get("MerchantRequestID"),
                checkout_request_id=gateway_response["CheckoutRequestID"],
                phone_number=phone_number,
                amount=data.amount,
                account_reference=account_reference,
                transaction_desc=description,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            # The prompt is already on the payer's phone; reconciliation expires this payment
            logger.error(
                f"❌ Failed to store M-Pesa transaction {gateway_response.get('CheckoutRequestID')} "
                f"for payment {payment.id}: {e}"
            )
            raise StoreError("Failed to record payment request") from e

        self.db.refresh(payment)
        return {
            "payment": PaymentResponse.model_validate(payment),
            "gateway_response": gateway_response,
            "message": "STK Push initiated. Please check your phone to complete payment.",
        }

    def _mark_failed(self, payment: Payment, reason: str) -> None:
        try:
            self.payments.transition_status(self.db, payment.id, "failed", failure_reason=reason)
            self.db.commit()
            self.db.refresh(payment)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to mark payment {payment.id} as failed: {e}")

    # ========================================================================
    # RECONCILIATION
    # ========================================================================

    def handle_callback(self, callback: StkCallback) -> bool:
        """
        Apply an asynchronous gateway result.

        Raises:
            NotFoundError: if the checkout id is unknown (nothing is mutated)

        Returns:
            True if this delivery settled the payment, False for redeliveries
            and for processing failures (which are logged)
        """
        transaction = self.transactions.get_by_checkout_request_id(
            self.db, callback.CheckoutRequestID, lock=True
        )
        if not transaction:
            self.db.rollback()
            logger.error(f"❌ Transaction not found: {callback.CheckoutRequestID}")
            raise NotFoundError("Transaction not found")

        logger.info(
            f"📥 M-Pesa callback for {callback.CheckoutRequestID}: "
            f"ResultCode={callback.ResultCode} ({callback.ResultDesc})"
        )

        try:
            return self._apply_result(
                transaction,
                result_code=callback.ResultCode,
                result_desc=callback.ResultDesc,
                metadata=callback.metadata_by_name(),
            )
        except (SQLAlchemyError, TypeError, ValueError) as e:
            self.db.rollback()
            logger.error(f"❌ Failed to apply callback for {callback.CheckoutRequestID}: {e}")
            return False

    def _apply_result(
        self,
        transaction: MpesaTransaction,
        result_code: int,
        result_desc: Optional[str],
        metadata: dict[str, Any],
    ) -> bool:
        payment = self.payments.get_payment(self.db, transaction.payment_id, lock=True)
        if not payment:
            self.db.rollback()
            logger.error(f"❌ Payment {transaction.payment_id} missing for transaction {transaction.id}")
            return False

        succeeded = result_code == MpesaClient.SUCCESS_RESULT_CODE
        receipt = metadata.get("MpesaReceiptNumber") if succeeded else None
        confirmed_amount = metadata.get("Amount") if succeeded else None
        if confirmed_amount is not None:
            confirmed_amount = float(confirmed_amount)

        if payment.status != "pending":
            if succeeded and receipt and payment.status == "completed" and not payment.transaction_id:
                return self._backfill_receipt(
                    payment, transaction, result_desc, metadata, receipt, confirmed_amount
                )
            self.db.rollback()
            logger.info(
                f"ℹ️ Payment {payment.id} already {payment.status}; ignoring redelivered result"
            )
            return False

        if succeeded:
            transitioned = self.payments.transition_status(
                self.db,
                payment.id,
                "completed",
                transaction_id=receipt,
                completed_at=datetime.utcnow(),
                failure_reason=None,
            )
        else:
            transitioned = self.payments.transition_status(
                self.db, payment.id, "failed", failure_reason=result_desc or "Payment failed"
            )

        if not transitioned:
            # Another delivery settled the payment between our read and write
            self.db.rollback()
            logger.info(f"ℹ️ Payment {payment.id} settled concurrently; skipping")
            return False

        transaction.result_code = result_code
        transaction.result_desc = result_desc
        if succeeded:
            self._record_receipt_details(transaction, metadata, receipt, confirmed_amount)

        self.db.commit()
        self.db.refresh(payment)

        if succeeded:
            logger.info(f"✅ Payment {payment.id} completed (receipt {receipt})")
        else:
            logger.warning(f"⚠️ Payment {payment.id} failed: {result_desc}")

        send_payment_result_notification(
            self.db, payment, receipt=receipt, amount=confirmed_amount
        )
        return True

    @staticmethod
    def _record_receipt_details(
        transaction: MpesaTransaction,
        metadata: dict[str, Any],
        receipt: Optional[str],
        confirmed_amount: Optional[float],
    ) -> None:
        transaction.mpesa_receipt_number = receipt
        transaction.transaction_date = parse_gateway_timestamp(metadata.get("TransactionDate"))
        payer_phone = metadata.get("PhoneNumber")
        if payer_phone:
            transaction.phone_number = str(payer_phone)
        if confirmed_amount is not None:
            transaction.amount = confirmed_amount

    def _backfill_receipt(
        self,
        payment: Payment,
        transaction: MpesaTransaction,
        result_desc: Optional[str],
        metadata: dict[str, Any],
        receipt: str,
        confirmed_amount: Optional[float],
    ) -> bool:
        """
        Store the receipt from a callback that arrives after a status query
        already completed the payment. The status query carries no receipt.
        The payer was notified when the payment completed, so no notification
        is sent here.
        """
        if not self.payments.set_missing_receipt(self.db, payment.id, receipt):
            self.db.rollback()
            return False

        transaction.result_code = MpesaClient.SUCCESS_RESULT_CODE
        transaction.result_desc = result_desc
        self._record_receipt_details(transaction, metadata, receipt, confirmed_amount)
        self.db.commit()
        logger.info(f"🧾 Payment {payment.id} receipt recorded after settlement: {receipt}")
        return False

    async def query_status(self, user: User, checkout_request_id: str) -> dict:
        """
        Ask the gateway for a push result and apply it if final.
        Diagnostic / manual reconciliation path for payments stuck in pending.
        """
        transaction = self.transactions.get_by_checkout_request_id(self.db, checkout_request_id)
        if not transaction:
            raise NotFoundError("Transaction not found")

        payment = self.payments.get_payment(self.db, transaction.payment_id)
        if not payment or (user.role != "admin" and payment.user_id != user.id):
            raise NotFoundError("Transaction not found")

        gateway_response = None
        if payment.status == "pending":
            gateway_response = await self._require_gateway().query_stk_status(checkout_request_id)
            self._apply_query_response(transaction, gateway_response)
            self.db.refresh(payment)

        return {"payment": PaymentResponse.model_validate(payment), "gateway_response": gateway_response}

    def _apply_query_response(self, transaction: MpesaTransaction, response: dict) -> bool:
        result_code = response.get("ResultCode")
        if result_code is None:
            return False
        try:
            result_code = int(result_code)
        except (TypeError, ValueError):
            logger.warning(f"⚠️ Unexpected ResultCode in status query: {result_code}")
            return False
        return self._apply_result(
            transaction, result_code=result_code, result_desc=response.get("ResultDesc"), metadata={}
        )

    async def reconcile_stale_payments(
        self, reconcile_after_minutes: int, expire_after_minutes: int
    ) -> dict:
        """
        Re-query pending payments the callback never settled, and expire the
        ones that have been pending too long.
        """
        now = datetime.utcnow()
        stale = self.payments.list_stale_pending(
            self.db, now - timedelta(minutes=reconcile_after_minutes)
        )
        expire_before = now - timedelta(minutes=expire_after_minutes)
        summary = {"checked": len(stale), "settled": 0, "expired": 0}

        for payment in stale:
            transaction = self.transactions.get_by_payment_id(self.db, payment.id)
            if transaction and self.mpesa:
                try:
                    response = await self.mpesa.query_stk_status(transaction.checkout_request_id)
                    if self._apply_query_response(transaction, response):
                        summary["settled"] += 1
                        continue
                except GatewayError as e:
                    logger.warning(
                        f"⚠️ Status query failed for payment {payment.id} "
                        f"({transaction.checkout_request_id}): {e.message}"
                    )
                except SQLAlchemyError as e:
                    self.db.rollback()
                    logger.error(f"❌ Failed to reconcile payment {payment.id}: {e}")
                    continue

            self.db.refresh(payment)
            if payment.status == "pending" and payment.created_at and payment.created_at <= expire_before:
                if self.payments.transition_status(
                    self.db, payment.id, "failed", failure_reason="Payment request expired"
                ):
                    self.db.commit()
                    self.db.refresh(payment)
                    summary["expired"] += 1
                    logger.warning(f"⌛ Payment {payment.id} expired after {expire_after_minutes} minutes")
                    send_payment_result_notification(self.db, payment)
                else:
                    self.db.rollback()

        logger.info(f"🔄 Payment reconciliation finished: {summary}")
        return summary

    def list_payments(self, user: User) -> list[Payment]:
        """Payment history for a user, newest first"""
        return self.payments.list_payments(self.db, user.id)
