"""
mentorbot/gateway/main.py

HTTP entry point.

- Telegram webhook → bot.process_update
- Checkout page callbacks → pending PaymentFlow for the order
- Health check

Checkout callbacks only drive the flow; the backend verifies the payment
signature on /booking/verify.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from mentorbot.app.config import settings
from mentorbot.app.schemas.bookings import PaymentResult
from mentorbot.app.services.booking import FlowOutcome, OutcomeKind, PendingPayment, pending_payments
from mentorbot.gateway.audit import audit_middleware

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BOT_MODULE = "mentorbot.app.main"


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Bot is imported lazily by the webhook; shut it down only if it was loaded
    bot_main = sys.modules.get(BOT_MODULE)
    if bot_main is not None:
        await bot_main.shutdown()


app = FastAPI(title="Mentorbot Gateway", lifespan=lifespan)

app.middleware("http")(audit_middleware)


class PaymentFailure(BaseModel):
    reason: Optional[str] = None
    code: Optional[str] = None


async def _notify(entry: PendingPayment, outcome: FlowOutcome) -> None:
    try:
        await entry.notify(outcome)
    except Exception:
        logger.exception(f"[PAYMENT] Could not deliver outcome {outcome.kind.value} for order {outcome.order_id}")


def _pop_pending(order_id: str) -> PendingPayment:
    entry = pending_payments.pop(order_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Unknown or already settled order")
    return entry


# ===== Telegram webhook =====
@app.post("/tg/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str | None = Header(None),
):
    if settings.TG_WEBHOOK_SECRET and x_telegram_bot_api_secret_token != settings.TG_WEBHOOK_SECRET:
        raise HTTPException(status_code=403)

    try:
        update = await request.json()
    except ValueError:
        return {"ok": True}

    # Lazy import: the bot needs TG_BOT_TOKEN at import time
    from mentorbot.app.main import process_update
    await process_update(update)

    return {"ok": True}


# ===== Checkout callbacks =====
@app.post("/payments/{order_id}/success")
async def payment_success(order_id: str, payment: PaymentResult):
    entry = pending_payments.get(order_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Unknown or already settled order")

    if payment.provider_order_id != entry.flow.order.provider_order_id:
        logger.warning(
            f"[PAYMENT] Provider order mismatch for {order_id}: "
            f"{payment.provider_order_id} != {entry.flow.order.provider_order_id}"
        )
        raise HTTPException(status_code=400, detail="Payment does not belong to this order")

    pending_payments.pop(order_id)
    outcome = await entry.flow.payment_succeeded(payment)
    await _notify(entry, outcome)
    return {"ok": outcome.kind == OutcomeKind.CONFIRMED, "outcome": outcome.kind.value}


@app.post("/payments/{order_id}/dismiss")
async def payment_dismiss(order_id: str):
    entry = _pop_pending(order_id)
    outcome = await entry.flow.payment_dismissed()
    await _notify(entry, outcome)
    return {"ok": True, "outcome": outcome.kind.value}


@app.post("/payments/{order_id}/failed")
async def payment_failed(order_id: str, failure: Optional[PaymentFailure] = None):
    entry = _pop_pending(order_id)
    outcome = await entry.flow.payment_failed(failure.reason if failure else None)
    await _notify(entry, outcome)
    return {"ok": True, "outcome": outcome.kind.value}


# ===== Health =====
@app.get("/health")
async def health():
    return {"status": "ok", "pending_payments": len(pending_payments)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
