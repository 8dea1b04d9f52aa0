"""Payments domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class InitiatePaymentRequest(BaseModel):
    """Schema for starting an M-Pesa STK push.

    amount/phone_number are checked by the service so that the caller gets a
    400 with a readable message before anything is written.
    """

    amount: Optional[float] = None
    phone_number: Optional[str] = None
    appointment_id: Optional[int] = None
    account_reference: Optional[str] = Field(default=None, max_length=12)
    description: Optional[str] = Field(default=None, max_length=100)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    public_id: str
    user_id: int
    appointment_id: Optional[int] = None
    amount: float
    currency: Optional[str] = None
    method: str
    status: str
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class InitiatePaymentResponse(BaseModel):
    payment: PaymentResponse
    gateway_response: dict[str, Any]
    message: str


class PaymentsResponse(BaseModel):
    payments: list[PaymentResponse]


class PaymentStatusResponse(BaseModel):
    payment: PaymentResponse
    gateway_response: Optional[dict[str, Any]] = None


# ============================================================================
# GATEWAY CALLBACK
# ============================================================================


class CallbackItem(BaseModel):
    Name: str
    Value: Any = None


class StkCallbackMetadata(BaseModel):
    Item: list[CallbackItem] = []


class StkCallback(BaseModel):
    MerchantRequestID: Optional[str] = None
    CheckoutRequestID: str
    ResultCode: int
    ResultDesc: Optional[str] = None
    CallbackMetadata: Optional[StkCallbackMetadata] = None

    def metadata_by_name(self) -> dict[str, Any]:
        """Metadata items keyed by name; the gateway does not guarantee order"""
        if not self.CallbackMetadata:
            return {}
        return {item.Name: item.Value for item in self.CallbackMetadata.Item}


class CallbackBody(BaseModel):
    stkCallback: StkCallback


class MpesaCallbackPayload(BaseModel):
    Body: CallbackBody
