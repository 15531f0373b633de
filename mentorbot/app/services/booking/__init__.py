# mentorbot/app/services/booking/__init__.py
"""
Booking module.

selection: slot picking, duration and price (pure)
payment_flow: submission and payment reconciliation state machine
"""

from .selection import (
    SlotSelection,
    list_available_dates,
    compute_total_duration_minutes,
    compute_price,
    can_submit,
    summarize,
)
from .payment_flow import (
    PaymentFlow,
    FlowState,
    FlowOutcome,
    OutcomeKind,
    FlowStateError,
    PendingPayment,
    PendingPayments,
    pending_payments,
)

__all__ = [
    "SlotSelection",
    "list_available_dates",
    "compute_total_duration_minutes",
    "compute_price",
    "can_submit",
    "summarize",
    "PaymentFlow",
    "FlowState",
    "FlowOutcome",
    "OutcomeKind",
    "FlowStateError",
    "PendingPayment",
    "PendingPayments",
    "pending_payments",
]
