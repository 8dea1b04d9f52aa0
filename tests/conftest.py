"""
Test configuration and fixtures.

The app is imported against an in-memory SQLite database (single shared
connection) and a Daraja gateway served by httpx.MockTransport.
"""

import itertools
import json
import os
from datetime import date

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.database import Base, SessionLocal, build_engine, engine  # noqa: E402
from app.domain.payments.mpesa_service import MpesaClient, MpesaConfig  # noqa: E402
from app.domain.payments.router import get_mpesa_client  # noqa: E402
from app.main import app  # noqa: E402
from app.models import AppointmentSlot, Pet, User  # noqa: E402
from app.security_utils import create_jwt_token  # noqa: E402

SLOT_DAY = date(2030, 1, 15)

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"


class FakeDaraja:
    """In-process stand-in for the Daraja API

    Responses are (status, body) tuples; an exception instance is raised
    from the transport instead.
    """

    def __init__(self):
        self.requests = []
        self.token_calls = 0
        self._checkout_ids = itertools.count(1)
        self.token_response = (200, {"access_token": "test-token", "expires_in": "3599"})
        self.stk_response = None
        self.query_response = (
            200,
            {
                "ResponseCode": "0",
                "ResponseDescription": "The service request has been accepted successsfully",
                "ResultCode": "0",
                "ResultDesc": "The service request is processed successfully.",
            },
        )

    def _accepted_push(self) -> dict:
        n = next(self._checkout_ids)
        return {
            "MerchantRequestID": f"29115-34620561-{n}",
            "CheckoutRequestID": f"ws_CO_{n}",
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CustomerMessage": "Success. Request accepted for processing",
        }

    def _respond(self, request: httpx.Request, response) -> httpx.Response:
        if isinstance(response, Exception):
            raise response
        status, body = response
        return httpx.Response(status, json=body, request=request)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == TOKEN_PATH:
            self.token_calls += 1
            return self._respond(request, self.token_response)
        if path == STK_PUSH_PATH:
            return self._respond(request, self.stk_response or (200, self._accepted_push()))
        if path == STK_QUERY_PATH:
            return self._respond(request, self.query_response)
        return httpx.Response(404, json={"errorMessage": "Not found"}, request=request)

    def payloads(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def daraja():
    return FakeDaraja()


@pytest.fixture
def mpesa_config():
    return MpesaConfig(
        consumer_key="consumer-key",
        consumer_secret="consumer-secret",
        business_short_code="174379",
        passkey="test-passkey",
        callback_url="https://api.example.com/payments/mpesa/callback",
    )


@pytest.fixture
def mpesa_client(mpesa_config, daraja):
    return MpesaClient(mpesa_config, transport=httpx.MockTransport(daraja.handler))


@pytest.fixture
def db():
    """Session on a fresh schema; shares the app's in-memory connection"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def file_sessionmaker(tmp_path):
    """Sessions on a file-backed database, for tests that need real connections per thread"""
    file_engine = build_engine(f"sqlite:///{tmp_path / 'petcare.db'}")
    Base.metadata.create_all(bind=file_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    file_engine.dispose()


@pytest.fixture
def client(db, mpesa_client):
    app.dependency_overrides[get_mpesa_client] = lambda: mpesa_client
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================================================
# FACTORIES
# ============================================================================


def _factories(session):
    emails = itertools.count(1)

    def make_user(role="pet_owner", full_name=None, phone_number=None):
        user = User(
            email=f"{role}{next(emails)}@example.com",
            full_name=full_name,
            phone_number=phone_number,
            role=role,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def make_pet(owner, name="Rex", species="dog"):
        pet = Pet(owner_id=owner.id, name=name, species=species)
        session.add(pet)
        session.commit()
        session.refresh(pet)
        return pet

    def make_slot(vet, day=SLOT_DAY, start_time="09:00", end_time="09:30", max_bookings=1, current_bookings=0):
        slot = AppointmentSlot(
            veterinarian_id=vet.id,
            date=day,
            start_time=start_time,
            end_time=end_time,
            max_bookings=max_bookings,
            current_bookings=current_bookings,
            is_available=current_bookings < max_bookings,
        )
        session.add(slot)
        session.commit()
        session.refresh(slot)
        return slot

    return make_user, make_pet, make_slot


@pytest.fixture
def make_user(db):
    return _factories(db)[0]


@pytest.fixture
def make_pet(db):
    return _factories(db)[1]


@pytest.fixture
def make_slot(db):
    return _factories(db)[2]


@pytest.fixture
def owner(make_user):
    return make_user("pet_owner", full_name="Jane Wanjiru", phone_number="0712345678")


@pytest.fixture
def vet(make_user):
    return make_user("vet", full_name="Dr. Otieno")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def pet(make_pet, owner):
    return make_pet(owner)


def auth_headers_for(user) -> dict:
    token = create_jwt_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return auth_headers_for


@pytest.fixture
def stk_callback():
    """Build a Daraja STK callback body"""

    def _build(
        checkout_request_id,
        result_code=0,
        result_desc="The service request is processed successfully.",
        receipt="QAX123",
        amount=2500,
        phone=254712345678,
    ):
        callback = {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": checkout_request_id,
            "ResultCode": result_code,
            "ResultDesc": result_desc,
        }
        if result_code == 0:
            # Item order is not guaranteed by the gateway
            callback["CallbackMetadata"] = {
                "Item": [
                    {"Name": "MpesaReceiptNumber", "Value": receipt},
                    {"Name": "Amount", "Value": amount},
                    {"Name": "Balance"},
                    {"Name": "TransactionDate", "Value": 20191219102115},
                    {"Name": "PhoneNumber", "Value": phone},
                ]
            }
        return {"Body": {"stkCallback": callback}}

    return _build
