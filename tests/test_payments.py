import base64
import json
from decimal import Decimal

import httpx
import pytest
import respx
from conftest import KEY_SECRET, NOW, RAZORPAY_BASE, WEBHOOK_SECRET, make_booking, make_payment
from sqlalchemy import select

from funbookr.models import BookingStatus, Payment, PaymentStatus
from funbookr.services.payments import (
    SUPERSEDED_REASON,
    PaymentStateError,
    handle_webhook_event,
    initiate_payment,
    process_full_refund,
    process_partial_refund,
    refund_captured_payment,
    verify_client_payment,
)
from funbookr.services.razorpay import (
    GatewayAuthError,
    GatewayRequestError,
    compute_signature,
    from_minor_units,
    to_minor_units,
    verify_payment_signature,
    verify_webhook_signature,
)
from funbookr.services.result import ErrorKind

ORDERS_URL = f"{RAZORPAY_BASE}/orders"


def _order(order_id="order_NEW1", amount=200000):
    return {"id": order_id, "entity": "order", "amount": amount, "currency": "INR", "status": "created"}


def _payment_event(event, order_id="order_TEST1", payment_id="pay_HOOK1", **entity):
    return {
        "event": event,
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": order_id,
                    "amount": 200000,
                    "currency": "INR",
                    "status": "captured" if event == "payment.captured" else "failed",
                    **entity,
                }
            }
        },
    }


class TestClient:
    def test_minor_units(self):
        assert to_minor_units(Decimal("1850.50")) == 185050
        assert to_minor_units(Decimal("0.005")) == 1
        assert from_minor_units(185050) == Decimal("1850.50")
        assert from_minor_units(None) == Decimal("0.00")

    @respx.mock
    async def test_create_order_sends_paise_with_basic_auth(self, gateway):
        route = respx.post(ORDERS_URL).respond(200, json=_order(amount=185050))
        order = await gateway.create_order(Decimal("1850.50"), "INR", "BK20260105ABCDEF", now=NOW)

        assert order.id == "order_NEW1"
        assert order.amount == Decimal("1850.50")
        request = route.calls.last.request
        body = json.loads(request.content)
        assert body["amount"] == 185050
        assert body["receipt"] == "BK20260105ABCDEF"
        expected = base64.b64encode(f"rzp_test_key:{KEY_SECRET}".encode()).decode()
        assert request.headers["Authorization"] == f"Basic {expected}"

    @respx.mock
    async def test_rejected_credentials(self, gateway):
        respx.post(ORDERS_URL).respond(401, json={"error": {"description": "Authentication failed"}})
        with pytest.raises(GatewayAuthError):
            await gateway.create_order(Decimal("100"), "INR", "BK1", now=NOW)

    @respx.mock
    async def test_error_description_surfaces(self, gateway):
        respx.post(ORDERS_URL).respond(400, json={"error": {"description": "amount exceeds maximum amount allowed"}})
        with pytest.raises(GatewayRequestError) as exc_info:
            await gateway.create_order(Decimal("100"), "INR", "BK1", now=NOW)
        assert exc_info.value.status_code == 400
        assert "maximum amount" in str(exc_info.value)

    @respx.mock
    async def test_fetch_payment(self, gateway):
        respx.get(f"{RAZORPAY_BASE}/payments/pay_1").respond(
            200,
            json={
                "id": "pay_1",
                "order_id": "order_1",
                "amount": 50000,
                "currency": "INR",
                "status": "captured",
                "method": "card",
                "card": {"last4": "1111", "network": "Visa"},
            },
        )
        payment = await gateway.fetch_payment("pay_1")
        assert payment.amount == Decimal("500.00")
        assert payment.card_last4 == "1111"
        assert payment.card_brand == "Visa"


class TestSignatures:
    def test_payment_signature(self):
        signature = compute_signature(b"order_1|pay_1", KEY_SECRET)
        assert verify_payment_signature("order_1", "pay_1", signature)
        assert verify_payment_signature("order_1", "pay_1", signature.upper())
        assert not verify_payment_signature("order_1", "pay_2", signature)
        assert not verify_payment_signature("order_1", "pay_1", None)

    def test_webhook_signature(self):
        body = b'{"event":"payment.captured"}'
        signature = compute_signature(body, WEBHOOK_SECRET)
        assert verify_webhook_signature(body, signature)
        assert not verify_webhook_signature(body + b" ", signature)
        assert not verify_webhook_signature(body, compute_signature(body, KEY_SECRET))


class TestInitiate:
    @respx.mock
    async def test_creates_pending_payment_and_order(self, db, catalog, gateway):
        respx.post(ORDERS_URL).respond(200, json=_order())
        booking = await make_booking(db, catalog)

        result = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)
        session = result.value
        assert session.payment_required is True
        assert session.gateway == "razorpay"
        assert session.gateway_order_id == "order_NEW1"
        assert session.gateway_key == "rzp_test_key"
        assert session.amount == Decimal("2000.00")
        assert session.reference.startswith("PAY20260105")

    @respx.mock
    async def test_reuses_order_while_amount_unchanged(self, db, catalog, gateway):
        route = respx.post(ORDERS_URL).respond(200, json=_order())
        booking = await make_booking(db, catalog)

        first = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)
        second = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)
        assert route.call_count == 1
        assert first.value.payment_id == second.value.payment_id

    @respx.mock
    async def test_amount_change_supersedes_pending_payment(self, db, catalog, gateway):
        respx.post(ORDERS_URL).mock(
            side_effect=[
                httpx.Response(200, json=_order("order_A")),
                httpx.Response(200, json=_order("order_B", 150000)),
            ]
        )
        booking = await make_booking(db, catalog)
        first = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)

        booking.total_amount = Decimal("1500.00")
        second = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)
        assert second.value.gateway_order_id == "order_B"
        assert second.value.amount == Decimal("1500.00")

        stale = await db.get(Payment, first.value.payment_id)
        assert stale.status == PaymentStatus.FAILED
        assert stale.failure_reason == SUPERSEDED_REASON

        pending = (
            await db.execute(select(Payment).where(Payment.status == PaymentStatus.PENDING))
        ).scalars().all()
        assert len(pending) == 1

    async def test_already_paid(self, db, catalog, gateway):
        booking = await make_booking(db, catalog, status=BookingStatus.CONFIRMED, paid=True)
        await make_payment(db, booking)
        result = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)
        assert result.error.rule == "booking_paid"

    async def test_cancelled(self, db, catalog, gateway):
        booking = await make_booking(db, catalog, status=BookingStatus.CANCELLED)
        result = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)
        assert result.error.rule == "booking_cancelled"

    async def test_someone_elses_booking(self, db, catalog, gateway):
        booking = await make_booking(db, catalog)
        result = await initiate_payment(db, gateway, booking.id, catalog.other.id, NOW)
        assert result.error.kind == ErrorKind.FORBIDDEN

    @respx.mock
    async def test_gateway_error(self, db, catalog, gateway):
        respx.post(ORDERS_URL).respond(500, text="upstream exploded")
        booking = await make_booking(db, catalog)
        result = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)
        assert result.error.kind == ErrorKind.EXTERNAL
        assert result.error.message == "Failed to initiate payment. Please try again."

    async def test_zero_total_confirms_without_gateway(self, db, catalog, gateway, sent_tasks):
        booking = await make_booking(db, catalog, total=Decimal("0.00"))
        result = await initiate_payment(db, gateway, booking.id, catalog.customer.id, NOW)
        assert result.value.payment_required is False
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.paid_at == NOW

        await db.commit()
        sent_tasks.assert_called_once_with("funbookr.send_booking_confirmation", args=[booking.id])


class TestVerify:
    async def test_valid_signature_completes_and_confirms(self, db, catalog, sent_tasks):
        booking = await make_booking(db, catalog)
        payment = await make_payment(db, booking, status=PaymentStatus.PENDING)
        signature = compute_signature(b"order_TEST1|pay_CLIENT1", KEY_SECRET)

        result = await verify_client_payment(db, "order_TEST1", "pay_CLIENT1", signature, catalog.customer.id, NOW)
        assert result.ok
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.gateway_payment_id == "pay_CLIENT1"
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.paid_at == NOW

        await db.commit()
        sent_tasks.assert_called_once_with("funbookr.send_booking_confirmation", args=[booking.id])

    async def test_bad_signature_fails_payment(self, db, catalog):
        booking = await make_booking(db, catalog)
        payment = await make_payment(db, booking, status=PaymentStatus.PENDING)

        result = await verify_client_payment(db, "order_TEST1", "pay_CLIENT1", "deadbeef", catalog.customer.id, NOW)
        assert result.error.message == "Payment verification failed"
        assert payment.status == PaymentStatus.FAILED
        assert payment.retry_attempts == 1
        assert booking.status == BookingStatus.PENDING

    async def test_someone_elses_payment_is_left_alone(self, db, catalog):
        booking = await make_booking(db, catalog)
        payment = await make_payment(db, booking, status=PaymentStatus.PENDING)

        result = await verify_client_payment(db, "order_TEST1", "pay_CLIENT1", "deadbeef", catalog.other.id, NOW)
        assert result.error.kind == ErrorKind.FORBIDDEN
        assert payment.status == PaymentStatus.PENDING
        assert payment.failure_reason is None
        assert payment.retry_attempts == 0

    async def test_unknown_order(self, db, catalog):
        result = await verify_client_payment(db, "order_NOPE", "pay_1", "x", catalog.customer.id, NOW)
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestWebhook:
    async def test_captured_then_duplicate(self, db, catalog):
        booking = await make_booking(db, catalog)
        payment = await make_payment(db, booking, status=PaymentStatus.PENDING)
        event = _payment_event("payment.captured", method="upi")

        assert await handle_webhook_event(db, event, NOW) == "completed"
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.payment_method == "upi"
        assert booking.status == BookingStatus.CONFIRMED

        assert await handle_webhook_event(db, event, NOW) == "duplicate"

    async def test_capture_for_cancelled_booking_is_refunded(self, db, catalog, sent_tasks):
        booking = await make_booking(db, catalog, status=BookingStatus.CANCELLED)
        payment = await make_payment(db, booking, status=PaymentStatus.PENDING)

        assert await handle_webhook_event(db, _payment_event("payment.captured"), NOW) == "refund_pending"
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.gateway_payment_id == "pay_HOOK1"
        assert booking.status == BookingStatus.CANCELLED
        assert booking.paid_at is None

        sent_tasks.assert_not_called()
        await db.commit()
        sent_tasks.assert_called_once_with("funbookr.refund_payment", args=[payment.id, "booking cancelled"])

    async def test_capture_for_superseded_attempt_is_refunded(self, db, catalog, sent_tasks):
        booking = await make_booking(db, catalog)
        stale = await make_payment(db, booking, status=PaymentStatus.FAILED, order_id="order_OLD")
        stale.failure_reason = SUPERSEDED_REASON
        stale.reference = "PAY-TEST-OLD"
        await db.flush()
        current = await make_payment(db, booking, status=PaymentStatus.PENDING)

        event = _payment_event("payment.captured", order_id="order_OLD")
        assert await handle_webhook_event(db, event, NOW) == "refund_pending"
        assert stale.status == PaymentStatus.COMPLETED
        assert current.status == PaymentStatus.PENDING
        assert booking.status == BookingStatus.PENDING
        assert booking.paid_at is None

        await db.commit()
        sent_tasks.assert_called_once_with("funbookr.refund_payment", args=[stale.id, "superseded payment attempt"])

    async def test_second_capture_for_paid_booking_is_refunded(self, db, catalog, sent_tasks):
        booking = await make_booking(db, catalog, status=BookingStatus.CONFIRMED, paid=True)
        await make_payment(db, booking)
        retried = await make_payment(db, booking, status=PaymentStatus.FAILED, order_id="order_RETRY")
        retried.reference = "PAY-TEST-RETRY"
        await db.flush()

        event = _payment_event("payment.captured", order_id="order_RETRY")
        assert await handle_webhook_event(db, event, NOW) == "refund_pending"

        await db.commit()
        sent_tasks.assert_called_once_with("funbookr.refund_payment", args=[retried.id, "booking already paid"])

    @respx.mock
    async def test_captured_money_is_refunded_in_full(self, db, catalog, gateway):
        route = respx.post(f"{RAZORPAY_BASE}/payments/pay_HOOK1/refund").respond(
            200, json={"id": "rfnd_ORPHAN", "payment_id": "pay_HOOK1", "amount": 200000, "status": "processed"}
        )
        booking = await make_booking(db, catalog, status=BookingStatus.CANCELLED)
        payment = await make_payment(db, booking, status=PaymentStatus.PENDING)
        await handle_webhook_event(db, _payment_event("payment.captured"), NOW)

        await refund_captured_payment(db, gateway, payment.id, "booking cancelled", NOW)
        assert json.loads(route.calls.last.request.content)["amount"] == 200000
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refunded_amount == Decimal("2000.00")
        assert payment.refund_transaction_id == "rfnd_ORPHAN"

        # Nothing left to refund on a second run
        await refund_captured_payment(db, gateway, payment.id, "booking cancelled", NOW)
        assert route.call_count == 1

    async def test_failed(self, db, catalog):
        booking = await make_booking(db, catalog)
        payment = await make_payment(db, booking, status=PaymentStatus.PENDING)
        event = _payment_event("payment.failed", error_description="Card declined by bank")

        assert await handle_webhook_event(db, event, NOW) == "failed"
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "Card declined by bank"
        assert booking.status == BookingStatus.PENDING

    async def test_refund_created_is_logged(self, db):
        event = {"event": "refund.created", "payload": {"refund": {"entity": {"id": "rfnd_1", "payment_id": "pay_1"}}}}
        assert await handle_webhook_event(db, event, NOW) == "logged"

    async def test_unknown_event_and_order(self, db, catalog):
        assert await handle_webhook_event(db, {"event": "order.paid"}, NOW) == "ignored"
        assert await handle_webhook_event(db, _payment_event("payment.captured", order_id="order_NOPE"), NOW) == "ignored"


class TestRefundRules:
    async def test_partial_refunds_add_up_to_full(self, db, catalog):
        booking = await make_booking(db, catalog, status=BookingStatus.CONFIRMED, paid=True)
        payment = await make_payment(db, booking)

        process_partial_refund(payment, Decimal("500"), "rfnd_1", None, NOW)
        assert payment.status == PaymentStatus.PARTIALLY_REFUNDED
        assert payment.refundable_amount == Decimal("1500.00")

        process_full_refund(payment, "rfnd_2", "Cancelled", NOW)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refunded_amount == Decimal("2000.00")

    async def test_cannot_refund_more_than_paid(self, db, catalog):
        booking = await make_booking(db, catalog, paid=True)
        payment = await make_payment(db, booking)
        with pytest.raises(PaymentStateError):
            process_partial_refund(payment, Decimal("2000.01"), "rfnd_1", None, NOW)

    async def test_cannot_refund_pending(self, db, catalog):
        booking = await make_booking(db, catalog)
        payment = await make_payment(db, booking, status=PaymentStatus.PENDING)
        with pytest.raises(PaymentStateError):
            process_full_refund(payment, "rfnd_1", None, NOW)

    async def test_refund_needs_gateway_id(self, db, catalog):
        booking = await make_booking(db, catalog, paid=True)
        payment = await make_payment(db, booking)
        with pytest.raises(PaymentStateError):
            process_partial_refund(payment, Decimal("10"), "", None, NOW)


@respx.mock
async def test_fetch_refund(gateway):
    respx.get(f"{RAZORPAY_BASE}/refunds/rfnd_9").respond(
        200, json={"id": "rfnd_9", "payment_id": "pay_9", "amount": 50050, "status": "processed"}
    )
    refund = await gateway.fetch_refund("rfnd_9")
    assert refund.payment_id == "pay_9"
    assert refund.amount == Decimal("500.50")
