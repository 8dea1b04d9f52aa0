"""Payments router - FastAPI endpoints for M-Pesa payments"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...shared.exceptions import NotFoundError, ValidationError
from .mpesa_service import MpesaClient, MpesaConfig
from .schemas import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    MpesaCallbackPayload,
    PaymentResponse,
    PaymentsResponse,
    PaymentStatusResponse,
)
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])

# Acknowledgement body the gateway expects; non-2xx responses are redelivered
CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


def get_mpesa_client(request: Request) -> MpesaClient:
    """The gateway client built at startup (see main.lifespan)"""
    client = getattr(request.app.state, "mpesa_client", None)
    if client is None:
        client = MpesaClient(MpesaConfig.from_env())
        request.app.state.mpesa_client = client
    return client


def get_payment_service(
    db: Session = Depends(get_db),
    mpesa: MpesaClient = Depends(get_mpesa_client),
) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db, mpesa)


# ============================================================================
# PAYMENTS
# ============================================================================


@router.post("/mpesa", response_model=InitiatePaymentResponse)
async def initiate_mpesa_payment(
    body: InitiatePaymentRequest,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Start an STK push; the result arrives later on the callback endpoint"""
    return await service.initiate_payment(user, body)


@router.get("", response_model=PaymentsResponse)
async def list_payments(
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Get the current user's payment history"""
    payments = service.list_payments(user)
    return {"payments": [PaymentResponse.model_validate(p) for p in payments]}


@router.get("/mpesa/{checkout_request_id}/status", response_model=PaymentStatusResponse)
async def query_mpesa_payment_status(
    checkout_request_id: str,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Query the gateway for a pending push and reconcile the payment"""
    return await service.query_status(user, checkout_request_id)


# ============================================================================
# GATEWAY CALLBACK (unauthenticated)
# ============================================================================


@router.post("/mpesa/callback")
async def handle_mpesa_callback(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Handle M-Pesa STK push result callbacks

    Responses:
    - 200 once the transaction is located, even if applying the result
      failed internally (the failure is logged; redelivery would not help)
    - 404 if the checkout id is unknown
    - 400 if the payload is not a valid callback
    """
    body = await request.body()
    try:
        payload = MpesaCallbackPayload.model_validate(json.loads(body.decode("utf-8")))
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("❌ Invalid JSON in M-Pesa callback")
        raise ValidationError("Invalid JSON") from None
    except PydanticValidationError as e:
        logger.error(f"❌ Malformed M-Pesa callback: {e.errors()}")
        raise ValidationError("Malformed callback payload") from None

    callback = payload.Body.stkCallback

    try:
        service.handle_callback(callback)
    except NotFoundError:
        raise
    except Exception as e:
        logger.error(f"❌ M-Pesa callback processing error for {callback.CheckoutRequestID}: {e}")

    return {**CALLBACK_ACK, "message": "Callback processed successfully"}
