"""M-Pesa service - Integration with the Safaricom Daraja STK push API"""

import base64
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from ...config import (
    MPESA_BUSINESS_SHORT_CODE,
    MPESA_CALLBACK_URL,
    MPESA_CONSUMER_KEY,
    MPESA_CONSUMER_SECRET,
    MPESA_ENVIRONMENT,
    MPESA_PASSKEY,
    MPESA_TIMEOUT_SECONDS,
)
from ...security_utils import mask_sensitive_data
from ...shared.exceptions import GatewayError

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_URL = "https://api.safaricom.co.ke"


def normalize_mpesa_environment(env: Optional[str]) -> str:
    """Normalize M-Pesa environment value to sandbox/production"""
    value = (env or "sandbox").strip().lower()
    if value in {"live", "production", "prod"}:
        return "production"
    if value in {"sandbox", "test", "staging", "dev", "development"}:
        return "sandbox"
    logger.warning(f"Unknown MPESA environment '{env}', defaulting to sandbox")
    return "sandbox"


@dataclass
class MpesaConfig:
    consumer_key: str
    consumer_secret: str
    business_short_code: str
    passkey: str
    callback_url: str
    environment: str = "sandbox"
    timeout: float = 30.0

    @property
    def base_url(self) -> str:
        return PRODUCTION_URL if self.environment == "production" else SANDBOX_URL

    @classmethod
    def from_env(cls) -> "MpesaConfig":
        if not MPESA_CONSUMER_KEY or not MPESA_CONSUMER_SECRET or not MPESA_PASSKEY:
            logger.warning("MPESA credentials not set; payment endpoints will fail until configured")
        return cls(
            consumer_key=MPESA_CONSUMER_KEY or "",
            consumer_secret=MPESA_CONSUMER_SECRET or "",
            business_short_code=MPESA_BUSINESS_SHORT_CODE,
            passkey=MPESA_PASSKEY or "",
            callback_url=MPESA_CALLBACK_URL,
            environment=normalize_mpesa_environment(MPESA_ENVIRONMENT),
            timeout=MPESA_TIMEOUT_SECONDS,
        )


class MpesaClient:
    """
    Client for STK push (charge prompt on the payer's phone) and STK status query.

    Each call is a single bounded-timeout request with no retries: repeating a
    push risks prompting the payer twice. Every failure surfaces as GatewayError.
    """

    # ResultCode the gateway reports for a completed payment
    SUCCESS_RESULT_CODE = 0
    # ResponseCode acknowledging that the push request was accepted
    ACCEPTED_RESPONSE_CODE = "0"

    def __init__(self, config: MpesaConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            transport=self._transport,
        )

    @staticmethod
    def timestamp(now: Optional[datetime] = None) -> str:
        return (now or datetime.now()).strftime("%Y%m%d%H%M%S")

    def password(self, timestamp: str) -> str:
        raw = f"{self.config.business_short_code}{self.config.passkey}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    async def get_access_token(self) -> str:
        """OAuth client-credentials token, cached until shortly before expiry"""
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        auth = base64.b64encode(
            f"{self.config.consumer_key}:{self.config.consumer_secret}".encode()
        ).decode()

        try:
            async with self._http_client() as client:
                response = await client.get(
                    "/oauth/v1/generate",
                    params={"grant_type": "client_credentials"},
                    headers={"Authorization": f"Basic {auth}"},
                )
        except httpx.TimeoutException as e:
            logger.error("❌ M-Pesa token request timed out")
            raise GatewayError("Payment gateway timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ M-Pesa token request failed: {e}")
            raise GatewayError("Payment gateway unreachable") from e

        if response.status_code != 200:
            logger.error(f"❌ Failed to get M-Pesa access token: HTTP {response.status_code}")
            raise GatewayError("Failed to authenticate with payment gateway")

        try:
            data = response.json()
            token = data["access_token"]
        except (ValueError, KeyError) as e:
            raise GatewayError("Malformed token response from payment gateway") from e

        expires_in = int(data.get("expires_in", 3599))
        self._access_token = token
        self._token_expires_at = time.time() + max(expires_in - 60, 0)
        return token

    async def _post(self, path: str, payload: dict) -> dict:
        token = await self.get_access_token()
        try:
            async with self._http_client() as client:
                response = await client.post(
                    path,
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.TimeoutException as e:
            logger.error(f"❌ M-Pesa request to {path} timed out")
            raise GatewayError("Payment gateway timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ M-Pesa request to {path} failed: {e}")
            raise GatewayError("Payment gateway unreachable") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code != 200:
            logger.error(f"❌ M-Pesa API error on {path}: HTTP {response.status_code} {data}")
            message = "Payment gateway rejected the request"
            if isinstance(data, dict) and data.get("errorMessage"):
                message = f"{message}: {data['errorMessage']}"
            raise GatewayError(message, gateway_response=data if isinstance(data, dict) else None)

        if not isinstance(data, dict):
            raise GatewayError("Malformed response from payment gateway")
        return data

    async def stk_push(
        self,
        phone_number: str,
        amount: float,
        account_reference: str,
        description: str,
    ) -> dict:
        """
        Push a charge prompt to the payer's phone.

        Args:
            phone_number: Normalized MSISDN (e.g. 254712345678)

        Returns:
            The gateway acknowledgement with MerchantRequestID and
            CheckoutRequestID. This only confirms the prompt was sent.
        """
        timestamp = self.timestamp()
        payload = {
            "BusinessShortCode": self.config.business_short_code,
            "Password": self.password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(round(amount)),
            "PartyA": phone_number,
            "PartyB": self.config.business_short_code,
            "PhoneNumber": phone_number,
            "CallBackURL": self.config.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }

        logger.info(
            f"📲 Initiating STK push to {mask_sensitive_data(phone_number)} "
            f"for {payload['Amount']} (ref={account_reference})"
        )
        data = await self._post("/mpesa/stkpush/v1/processrequest", payload)

        if str(data.get("ResponseCode")) != self.ACCEPTED_RESPONSE_CODE or not data.get(
            "CheckoutRequestID"
        ):
            logger.error(f"❌ STK push not accepted: {data}")
            raise GatewayError(
                data.get("ResponseDescription") or "Payment request was not accepted",
                gateway_response=data,
            )

        logger.info(f"✅ STK push accepted: {data['CheckoutRequestID']}")
        return data

    async def query_stk_status(self, checkout_request_id: str) -> dict:
        """Ask the gateway for the result of an earlier STK push"""
        timestamp = self.timestamp()
        payload = {
            "BusinessShortCode": self.config.business_short_code,
            "Password": self.password(timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }
        return await self._post("/mpesa/stkpushquery/v1/query", payload)
