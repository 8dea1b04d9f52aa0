from datetime import datetime, timedelta

from app.models import Notification
from app.models_payment import MpesaTransaction, Payment
from app.worker import WorkerSettings, reconcile_pending_payments_task

STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"


def pending_payment(db, user, checkout_request_id, minutes_old, amount=1500):
    payment = Payment(
        user_id=user.id,
        amount=amount,
        currency="KES",
        status="pending",
        created_at=datetime.utcnow() - timedelta(minutes=minutes_old),
    )
    db.add(payment)
    db.flush()
    db.add(
        MpesaTransaction(
            payment_id=payment.id,
            checkout_request_id=checkout_request_id,
            phone_number="254712345678",
            amount=amount,
        )
    )
    db.commit()
    return payment.id


class TestReconcilePendingPayments:
    async def test_settles_stale_payment_from_status_query(self, db, owner, mpesa_client, daraja):
        payment_id = pending_payment(db, owner, "ws_CO_stale", minutes_old=10)

        summary = await reconcile_pending_payments_task({"mpesa_client": mpesa_client})

        assert summary == {"checked": 1, "settled": 1, "expired": 0}
        [payload] = daraja.payloads(STK_QUERY_PATH)
        assert payload["CheckoutRequestID"] == "ws_CO_stale"
        db.expire_all()
        assert db.get(Payment, payment_id).status == "completed"

    async def test_records_cancellation_reported_by_query(self, db, owner, mpesa_client, daraja):
        payment_id = pending_payment(db, owner, "ws_CO_cancelled", minutes_old=10)
        daraja.query_response = (
            200,
            {"ResponseCode": "0", "ResultCode": "1032", "ResultDesc": "Request cancelled by user"},
        )

        await reconcile_pending_payments_task({"mpesa_client": mpesa_client})

        db.expire_all()
        payment = db.get(Payment, payment_id)
        assert payment.status == "failed"
        assert payment.failure_reason == "Request cancelled by user"

    async def test_expires_payments_pending_too_long(self, db, owner, mpesa_client, daraja):
        payment_id = pending_payment(db, owner, "ws_CO_old", minutes_old=90)
        daraja.query_response = (
            500,
            {"errorCode": "500.001.1001", "errorMessage": "The transaction is being processed"},
        )

        summary = await reconcile_pending_payments_task({"mpesa_client": mpesa_client})

        assert summary == {"checked": 1, "settled": 0, "expired": 1}
        db.expire_all()
        payment = db.get(Payment, payment_id)
        assert payment.status == "failed"
        assert payment.failure_reason == "Payment request expired"
        notification = db.query(Notification).filter(Notification.type == "payment").one()
        assert notification.title == "Payment Failed"

    async def test_leaves_recent_payments_alone(self, db, owner, mpesa_client, daraja):
        payment_id = pending_payment(db, owner, "ws_CO_fresh", minutes_old=1)

        summary = await reconcile_pending_payments_task({"mpesa_client": mpesa_client})

        assert summary == {"checked": 0, "settled": 0, "expired": 0}
        assert daraja.requests == []
        db.expire_all()
        assert db.get(Payment, payment_id).status == "pending"

    async def test_without_gateway_only_expires(self, db, owner):
        stale_id = pending_payment(db, owner, "ws_CO_a", minutes_old=10)
        old_id = pending_payment(db, owner, "ws_CO_b", minutes_old=120)

        summary = await reconcile_pending_payments_task({})

        assert summary == {"checked": 2, "settled": 0, "expired": 1}
        db.expire_all()
        assert db.get(Payment, stale_id).status == "pending"
        assert db.get(Payment, old_id).status == "failed"

    async def test_expires_payment_that_never_got_a_transaction(self, db, owner, mpesa_client, daraja):
        payment = Payment(
            user_id=owner.id,
            amount=500,
            status="pending",
            created_at=datetime.utcnow() - timedelta(minutes=75),
        )
        db.add(payment)
        db.commit()
        payment_id = payment.id

        summary = await reconcile_pending_payments_task({"mpesa_client": mpesa_client})

        assert summary == {"checked": 1, "settled": 0, "expired": 1}
        assert daraja.requests == []
        db.expire_all()
        assert db.get(Payment, payment_id).status == "failed"


def test_worker_schedules_reconciliation():
    assert reconcile_pending_payments_task in WorkerSettings.functions
    assert len(WorkerSettings.cron_jobs) == 1
