import asyncio
import json
import logging
import sys
import types

import pytest
from fastapi.testclient import TestClient

from conftest import FakeBookingApi
from mentorbot.app.config import settings
from mentorbot.app.services.booking import PaymentFlow, PendingPayments
from mentorbot.gateway import main as gateway

SUCCESS_BODY = {
    "razorpay_payment_id": "pay_1",
    "razorpay_order_id": "order_rp_1",
    "razorpay_signature": "sig",
}


@pytest.fixture
def registry(monkeypatch):
    registry = PendingPayments()
    monkeypatch.setattr(gateway, "pending_payments", registry)
    return registry


@pytest.fixture
def client():
    return TestClient(gateway.app)


def _pending(registry, selection, pricing, **api_kwargs):
    """Open an order and register it; returns (api, delivered outcomes)."""
    api = FakeBookingApi(**api_kwargs)
    flow = PaymentFlow(api, selection, mentor_id="m1", pricing_table=pricing)
    asyncio.run(flow.submit(checkout_ready=True))

    delivered = []

    async def notify(outcome):
        delivered.append(outcome)

    registry.add(flow, notify)
    return api, delivered


def test_success_confirms_and_notifies(client, registry, ready_selection, pricing):
    api, delivered = _pending(registry, ready_selection, pricing)

    resp = client.post("/payments/ord_1/success", json=SUCCESS_BODY)

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "outcome": "confirmed"}
    assert [o.kind.value for o in delivered] == ["confirmed"]
    assert "ord_1" not in registry
    assert ("verify", SUCCESS_BODY) in api.calls


def test_second_callback_for_settled_order_is_404(client, registry, ready_selection, pricing):
    _pending(registry, ready_selection, pricing)

    assert client.post("/payments/ord_1/success", json=SUCCESS_BODY).status_code == 200
    assert client.post("/payments/ord_1/dismiss").status_code == 404


def test_unknown_order_is_404(client, registry):
    assert client.post("/payments/nope/success", json=SUCCESS_BODY).status_code == 404
    assert client.post("/payments/nope/failed").status_code == 404


def test_payment_for_another_order_is_rejected(client, registry, ready_selection, pricing):
    _, delivered = _pending(registry, ready_selection, pricing)

    resp = client.post("/payments/ord_1/success", json={**SUCCESS_BODY, "razorpay_order_id": "order_other"})

    assert resp.status_code == 400
    assert "ord_1" in registry
    assert delivered == []


def test_verification_failure_is_reported(client, registry, ready_selection, pricing, api_error):
    _, delivered = _pending(registry, ready_selection, pricing, verify_error=api_error("Signature mismatch", 400))

    resp = client.post("/payments/ord_1/success", json=SUCCESS_BODY)

    assert resp.json() == {"ok": False, "outcome": "verification_failed"}
    assert delivered[0].payment_id == "pay_1"


def test_dismiss_with_failed_cancel_reports_auto_release(client, registry, ready_selection, pricing, api_error):
    _, delivered = _pending(registry, ready_selection, pricing, cancel_error=api_error("Network error", None))

    resp = client.post("/payments/ord_1/dismiss")

    assert resp.json()["outcome"] == "auto_release_pending"
    assert delivered[0].slot_hold_minutes == 10


def test_failed_payment_passes_reason(client, registry, ready_selection, pricing):
    api, delivered = _pending(registry, ready_selection, pricing)

    resp = client.post("/payments/ord_1/failed", json={"reason": "Card declined", "code": "BAD_REQUEST_ERROR"})

    assert resp.json()["outcome"] == "payment_failed"
    assert delivered[0].message == "Card declined"
    assert ("cancel", "ord_1") in api.calls


def test_notifier_error_does_not_fail_callback(client, registry, ready_selection, pricing):
    flow = PaymentFlow(FakeBookingApi(), ready_selection, mentor_id="m1", pricing_table=pricing)
    asyncio.run(flow.submit(checkout_ready=True))

    async def broken_notify(outcome):
        raise RuntimeError("telegram down")

    registry.add(flow, broken_notify)

    assert client.post("/payments/ord_1/dismiss").status_code == 200


def test_health(client, registry):
    assert client.get("/health").json() == {"status": "ok", "pending_payments": 0}


def test_webhook_checks_secret_and_feeds_bot(client, monkeypatch):
    received = []

    async def process_update(update):
        received.append(update)

    fake_bot = types.ModuleType("mentorbot.app.main")
    fake_bot.process_update = process_update
    monkeypatch.setitem(sys.modules, "mentorbot.app.main", fake_bot)
    monkeypatch.setattr(settings, "TG_WEBHOOK_SECRET", "s3cret")

    assert client.post("/tg/webhook", json={"update_id": 1}).status_code == 403

    resp = client.post(
        "/tg/webhook",
        json={"update_id": 2},
        headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
    )

    assert resp.status_code == 200
    assert received == [{"update_id": 2}]


def test_audit_log_tags_payment_callbacks_with_order(client, registry, caplog):
    with caplog.at_level(logging.INFO, logger="mentorbot.gateway.audit"):
        client.post("/payments/ord_9/dismiss")
        client.get("/health")

    records = [json.loads(r.getMessage()) for r in caplog.records if r.name == "mentorbot.gateway.audit"]

    assert len(records) == 1
    assert records[0]["order_id"] == "ord_9"
    assert records[0]["event"] == "dismiss"
    assert records[0]["status"] == 404
