import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import FakeBookingApi
from mentorbot.app.schemas.bookings import PaymentResult
from mentorbot.app.services.booking import (
    FlowState,
    FlowStateError,
    OutcomeKind,
    PaymentFlow,
    PendingPayments,
)
from mentorbot.app.utils.api import ApiClient

PAYMENT = PaymentResult(
    payment_id="pay_1",
    provider_order_id="order_rp_1",
    signature="sig",
)


def _flow(api, selection, pricing, **kwargs) -> PaymentFlow:
    return PaymentFlow(api, selection, mentor_id="m1", pricing_table=pricing, **kwargs)


def test_successful_booking(ready_selection, pricing):
    api = FakeBookingApi()
    opened = []
    flow = _flow(api, ready_selection, pricing, open_checkout=opened.append)

    async def scenario():
        order = await flow.submit(checkout_ready=True)
        assert flow.state == FlowState.AWAITING_PAYMENT
        assert opened == [order]
        return await flow.payment_succeeded(PAYMENT)

    outcome = asyncio.run(scenario())

    assert outcome.kind == OutcomeKind.CONFIRMED
    assert outcome.order_id == "ord_1"
    assert flow.state == FlowState.CONFIRMED
    assert ready_selection.selected_slots == []
    assert api.calls[0] == (
        "create",
        "m1",
        [{"date": "2026-11-02", "startTime": "10:00", "endTime": "10:22", "sessionType": "video"}],
    )
    assert api.calls[1] == ("verify", {
        "razorpay_payment_id": "pay_1",
        "razorpay_order_id": "order_rp_1",
        "razorpay_signature": "sig",
    })


def test_async_checkout_hook_is_awaited(ready_selection, pricing):
    opened = []

    async def open_checkout(order):
        opened.append(order.order_id)

    flow = _flow(FakeBookingApi(), ready_selection, pricing, open_checkout=open_checkout)
    asyncio.run(flow.submit(checkout_ready=True))

    assert opened == ["ord_1"]


def test_second_submit_while_awaiting_payment_is_refused(ready_selection, pricing):
    api = FakeBookingApi()
    flow = _flow(api, ready_selection, pricing)

    async def scenario():
        await flow.submit(checkout_ready=True)
        await flow.submit(checkout_ready=True)

    with pytest.raises(FlowStateError):
        asyncio.run(scenario())
    assert [c[0] for c in api.calls] == ["create"]


def test_submit_without_topic_never_reaches_backend(ready_selection, pricing):
    api = FakeBookingApi()
    ready_selection.set_topic("")
    flow = _flow(api, ready_selection, pricing)

    with pytest.raises(FlowStateError):
        asyncio.run(flow.submit(checkout_ready=True))
    assert api.calls == []
    assert flow.state == FlowState.IDLE


def test_reservation_rejected_clears_slots_only(ready_selection, pricing, api_error):
    api = FakeBookingApi(create_error=api_error("Slot already booked", 409))
    flow = _flow(api, ready_selection, pricing)

    order = asyncio.run(flow.submit(checkout_ready=True))

    assert order is None
    assert flow.state == FlowState.IDLE
    assert flow.outcome.kind == OutcomeKind.RESERVATION_REJECTED
    assert flow.outcome.message == "Slot already booked"
    assert ready_selection.selected_slots == []
    assert ready_selection.selected_date is not None
    assert ready_selection.topic


def test_dismiss_releases_slots(ready_selection, pricing):
    api = FakeBookingApi()
    flow = _flow(api, ready_selection, pricing)

    async def scenario():
        await flow.submit(checkout_ready=True)
        return await flow.payment_dismissed()

    outcome = asyncio.run(scenario())

    assert outcome.kind == OutcomeKind.RELEASED
    assert outcome.slot_hold_minutes is None
    assert ("cancel", "ord_1") in api.calls
    assert flow.state == FlowState.IDLE


def test_dismiss_with_failed_cancel_reports_auto_release(ready_selection, pricing, api_error):
    api = FakeBookingApi(cancel_error=api_error("Network error: timeout", None))
    flow = _flow(api, ready_selection, pricing, slot_hold_minutes=10)

    async def scenario():
        await flow.submit(checkout_ready=True)
        return await flow.payment_dismissed()

    outcome = asyncio.run(scenario())

    assert outcome.kind == OutcomeKind.AUTO_RELEASE_PENDING
    assert outcome.slot_hold_minutes == 10
    assert flow.state == FlowState.IDLE


def test_verification_failure_keeps_payment_reference(ready_selection, pricing, api_error):
    api = FakeBookingApi(verify_error=api_error("Signature mismatch", 400))
    flow = _flow(api, ready_selection, pricing)

    async def scenario():
        await flow.submit(checkout_ready=True)
        return await flow.payment_succeeded(PAYMENT)

    outcome = asyncio.run(scenario())

    assert outcome.kind == OutcomeKind.VERIFICATION_FAILED
    assert outcome.needs_support
    assert outcome.payment_id == "pay_1"
    assert outcome.order_id == "ord_1"
    assert outcome.message == "Signature mismatch"
    assert flow.state == FlowState.FAILED
    assert not any(c[0] == "cancel" for c in api.calls)

    flow.reset()
    assert flow.state == FlowState.IDLE
    assert flow.order is None


def test_provider_failure_releases_with_reason(ready_selection, pricing):
    api = FakeBookingApi()
    flow = _flow(api, ready_selection, pricing)

    async def scenario():
        await flow.submit(checkout_ready=True)
        return await flow.payment_failed("Card declined")

    outcome = asyncio.run(scenario())

    assert outcome.kind == OutcomeKind.PAYMENT_FAILED
    assert outcome.message == "Card declined"
    assert ("cancel", "ord_1") in api.calls


def test_callbacks_outside_payment_are_refused(ready_selection, pricing):
    flow = _flow(FakeBookingApi(), ready_selection, pricing)

    with pytest.raises(FlowStateError):
        asyncio.run(flow.payment_succeeded(PAYMENT))
    with pytest.raises(FlowStateError):
        asyncio.run(flow.payment_dismissed())


def test_reset_refused_while_awaiting_payment(ready_selection, pricing):
    flow = _flow(FakeBookingApi(), ready_selection, pricing)
    asyncio.run(flow.submit(checkout_ready=True))

    with pytest.raises(FlowStateError):
        flow.reset()


def test_pending_payments_registry(ready_selection, pricing):
    registry = PendingPayments()
    flow = _flow(FakeBookingApi(), ready_selection, pricing)

    async def notify(outcome):
        pass

    with pytest.raises(FlowStateError):
        registry.add(flow, notify)

    asyncio.run(flow.submit(checkout_ready=True))
    registry.add(flow, notify)

    assert "ord_1" in registry
    assert len(registry) == 1
    assert registry.pop("ord_1").flow is flow
    assert registry.pop("ord_1") is None


def test_malformed_order_is_rejected_and_flow_returns_to_idle(ready_selection, pricing):
    def handler(request):
        return httpx.Response(201, json={"success": True, "order": {"orderId": "ord_1"}})

    api = ApiClient(base_url="http://api.test/api/v1", transport=httpx.MockTransport(handler))
    flow = _flow(api, ready_selection, pricing)

    assert asyncio.run(flow.submit(checkout_ready=True)) is None
    assert flow.state == FlowState.IDLE
    assert flow.outcome.kind == OutcomeKind.RESERVATION_REJECTED


def test_pending_entry_is_dropped_once_the_hold_expires(ready_selection, pricing):
    now = [datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)]
    registry = PendingPayments(clock=lambda: now[0])
    flow = _flow(FakeBookingApi(), ready_selection, pricing, slot_hold_minutes=10)
    asyncio.run(flow.submit(checkout_ready=True))

    async def notify(outcome):
        pass

    registry.add(flow, notify)

    now[0] += timedelta(minutes=9, seconds=59)
    assert "ord_1" in registry

    now[0] += timedelta(seconds=1)
    assert registry.expire() == ["ord_1"]
    assert len(registry) == 0
    assert registry.pop("ord_1") is None


def test_adding_an_order_sweeps_abandoned_ones(ready_selection, pricing):
    now = [datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)]
    registry = PendingPayments(clock=lambda: now[0])

    async def notify(outcome):
        pass

    abandoned = _flow(FakeBookingApi(), ready_selection, pricing, slot_hold_minutes=10)
    asyncio.run(abandoned.submit(checkout_ready=True))
    registry.add(abandoned, notify)

    now[0] += timedelta(minutes=30)
    fresh = _flow(FakeBookingApi(), ready_selection, pricing)
    asyncio.run(fresh.submit(checkout_ready=True))
    fresh.order = fresh.order.model_copy(update={"order_id": "ord_2"})
    registry.add(fresh, notify)

    assert "ord_1" not in registry
    assert "ord_2" in registry
