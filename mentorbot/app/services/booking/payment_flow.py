# mentorbot/app/services/booking/payment_flow.py
"""
Booking submission and payment reconciliation.

States:
    IDLE → CREATING → AWAITING_PAYMENT → VERIFYING → CONFIRMED | FAILED
    AWAITING_PAYMENT → CANCELLING → IDLE

Authority:
- Backend: slot reservation, payment verification, slot release
- Payment provider: payment capture (checkout)
- This flow: orchestration only

Every exit returns a FlowOutcome; none of them retries.
"""

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

from mentorbot.app.schemas.bookings import PaymentOrder, PaymentResult
from mentorbot.app.utils.api import ApiError

from .selection import SlotSelection, can_submit

logger = logging.getLogger(__name__)

DEFAULT_SLOT_HOLD_MINUTES = 10


class FlowState(str, Enum):
    IDLE = "idle"
    CREATING = "creating"
    AWAITING_PAYMENT = "awaiting_payment"
    VERIFYING = "verifying"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLING = "cancelling"


class OutcomeKind(str, Enum):
    CONFIRMED = "confirmed"
    VERIFICATION_FAILED = "verification_failed"
    RESERVATION_REJECTED = "reservation_rejected"
    RELEASED = "released"
    AUTO_RELEASE_PENDING = "auto_release_pending"
    PAYMENT_FAILED = "payment_failed"


@dataclass(frozen=True)
class FlowOutcome:
    kind: OutcomeKind
    message: Optional[str] = None
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    slot_hold_minutes: Optional[int] = None

    @property
    def needs_support(self) -> bool:
        """Money may have moved without a confirmed booking."""
        return self.kind == OutcomeKind.VERIFICATION_FAILED


class FlowStateError(RuntimeError):
    """Transition requested from the wrong state."""


class BookingApi(Protocol):
    async def create_booking(self, mentor_id: str, slots: list[dict]) -> PaymentOrder: ...
    async def verify_payment(self, payment: PaymentResult) -> dict: ...
    async def cancel_booking(self, order_id: str) -> dict: ...


CheckoutHook = Callable[[PaymentOrder], Optional[Awaitable[None]]]


class PaymentFlow:
    """One booking attempt for one caller."""

    def __init__(
        self,
        api: BookingApi,
        selection: SlotSelection,
        mentor_id: str,
        pricing_table: dict[str, float],
        slot_hold_minutes: int = DEFAULT_SLOT_HOLD_MINUTES,
        open_checkout: Optional[CheckoutHook] = None,
    ):
        self.api = api
        self.selection = selection
        self.mentor_id = mentor_id
        self.pricing_table = pricing_table
        self.slot_hold_minutes = slot_hold_minutes
        self.open_checkout = open_checkout

        self.state = FlowState.IDLE
        self.order: Optional[PaymentOrder] = None
        self.outcome: Optional[FlowOutcome] = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def submit(self, checkout_ready: bool) -> Optional[PaymentOrder]:
        """
        IDLE → CREATING → AWAITING_PAYMENT (or back to IDLE on rejection).

        Returns the payment order, or None when the backend refused the
        reservation (see ``outcome``).
        """
        self._require(FlowState.IDLE)
        if not can_submit(self.selection, self.pricing_table, checkout_ready):
            raise FlowStateError("booking is not ready to submit")

        self.order = None
        self._move(FlowState.CREATING)
        try:
            order = await self.api.create_booking(self.mentor_id, self.selection.to_booking_slots())
        except ApiError as e:
            # Reservation conflict: caller must re-select
            self.selection.clear_slots()
            self._move(FlowState.IDLE)
            self._finish(OutcomeKind.RESERVATION_REJECTED, message=e.message)
            return None

        self.order = order
        self.outcome = None
        self._move(FlowState.AWAITING_PAYMENT)
        logger.info(f"[BOOKING] Order {order.order_id} opened, amount={order.amount} {order.currency}")

        if self.open_checkout:
            result = self.open_checkout(order)
            if inspect.isawaitable(result):
                await result
        return order

    async def payment_succeeded(self, payment: PaymentResult) -> FlowOutcome:
        """AWAITING_PAYMENT → VERIFYING → CONFIRMED | FAILED."""
        self._require(FlowState.AWAITING_PAYMENT)
        self._move(FlowState.VERIFYING)

        try:
            await self.api.verify_payment(payment)
        except ApiError as e:
            self._move(FlowState.FAILED)
            logger.error(
                f"[BOOKING] Payment {payment.payment_id} captured but verification failed "
                f"for order {self.order.order_id}: {e.message}"
            )
            return self._finish(
                OutcomeKind.VERIFICATION_FAILED,
                message=e.message,
                payment_id=payment.payment_id,
            )

        self._move(FlowState.CONFIRMED)
        self.selection.clear()
        return self._finish(OutcomeKind.CONFIRMED, payment_id=payment.payment_id)

    async def payment_dismissed(self) -> FlowOutcome:
        """AWAITING_PAYMENT → CANCELLING → IDLE. Checkout closed by the caller."""
        return await self._release(OutcomeKind.RELEASED)

    async def payment_failed(self, reason: Optional[str] = None) -> FlowOutcome:
        """Provider-side failure: release like a dismissal, reported separately."""
        return await self._release(OutcomeKind.PAYMENT_FAILED, message=reason)

    def reset(self) -> None:
        """Terminal state → IDLE for a fresh attempt."""
        if self.state not in (FlowState.CONFIRMED, FlowState.FAILED, FlowState.IDLE):
            raise FlowStateError(f"cannot reset from {self.state.value}")
        self.order = None
        self.outcome = None
        self._move(FlowState.IDLE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _release(self, kind: OutcomeKind, message: Optional[str] = None) -> FlowOutcome:
        self._require(FlowState.AWAITING_PAYMENT)
        self._move(FlowState.CANCELLING)
        order_id = self.order.order_id

        try:
            await self.api.cancel_booking(order_id)
        except ApiError as e:
            # Backend expires the hold on its own
            logger.warning(f"[BOOKING] Cancel of order {order_id} failed: {e.message}")
            self._move(FlowState.IDLE)
            return self._finish(
                OutcomeKind.AUTO_RELEASE_PENDING if kind == OutcomeKind.RELEASED else kind,
                message=message,
                slot_hold_minutes=self.slot_hold_minutes,
            )

        self._move(FlowState.IDLE)
        return self._finish(kind, message=message)

    def _finish(self, kind: OutcomeKind, **kwargs) -> FlowOutcome:
        order_id = self.order.order_id if self.order else None
        self.outcome = FlowOutcome(kind=kind, order_id=order_id, **kwargs)
        logger.info(f"[BOOKING] Outcome {kind.value} (order={order_id})")
        return self.outcome

    def _require(self, *states: FlowState) -> None:
        if self.state not in states:
            expected = ", ".join(s.value for s in states)
            raise FlowStateError(f"state is {self.state.value}, expected {expected}")

    def _move(self, state: FlowState) -> None:
        logger.debug(f"[BOOKING] {self.state.value} → {state.value}")
        self.state = state


# ==============================================================
# Pending payments
# ==============================================================

Notifier = Callable[[FlowOutcome], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PendingPayment:
    flow: PaymentFlow
    notify: Notifier
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(minutes=self.flow.slot_hold_minutes)


class PendingPayments:
    """
    Flows waiting on checkout callbacks, keyed by backend order id.

    An entry lives as long as the backend holds its slots; after that the
    order is auto-released and a late callback has nothing to settle.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock
        self._items: dict[str, PendingPayment] = {}

    def add(self, flow: PaymentFlow, notify: Notifier) -> None:
        if flow.order is None:
            raise FlowStateError("flow has no open order")
        self.expire()
        self._items[flow.order.order_id] = PendingPayment(flow=flow, notify=notify, created_at=self.clock())

    def get(self, order_id: str) -> Optional[PendingPayment]:
        self.expire()
        return self._items.get(order_id)

    def pop(self, order_id: str) -> Optional[PendingPayment]:
        self.expire()
        return self._items.pop(order_id, None)

    def expire(self) -> list[str]:
        """Drop entries past their slot hold. Returns the dropped order ids."""
        now = self.clock()
        expired = [order_id for order_id, entry in self._items.items() if entry.expires_at <= now]
        for order_id in expired:
            del self._items[order_id]
            logger.info(f"[BOOKING] Order {order_id} dropped: hold expired without a checkout callback")
        return expired

    def __contains__(self, order_id: str) -> bool:
        self.expire()
        return order_id in self._items

    def __len__(self) -> int:
        self.expire()
        return len(self._items)


pending_payments = PendingPayments()
