"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits.
"""

from dataclasses import dataclass
from uuid import UUID

from shared.domain.base import DomainEvent
from shared.domain.value_objects import DateRange, Money


# ===== Booking Events =====

@dataclass(kw_only=True)
class BookingCreated(DomainEvent):
    """
    Event: A new reservation was admitted (PENDING / PENDING_PAYMENT)
    """
    booking_id: UUID
    resource_id: str
    requester_id: str
    dates: DateRange
    amount: Money


@dataclass(kw_only=True)
class BookingConfirmed(DomainEvent):
    """
    Event: Booking confirmed after payment completed (PENDING -> CONFIRMED)
    """
    booking_id: UUID
    resource_id: str
    dates: DateRange
    payment_ref: str | None


@dataclass(kw_only=True)
class BookingCancelled(DomainEvent):
    """
    Event: Booking was cancelled

    Raised on explicit cancellation, failed payment, or when the dates were
    taken by another confirmed booking before this one could be confirmed.
    """
    booking_id: UUID
    resource_id: str
    reason: str
    old_status: str  # Status before cancellation
    payment_status: str


# ===== Payment Events =====

@dataclass(kw_only=True)
class PaymentRefsAttached(DomainEvent):
    """
    Event: Gateway references recorded on the booking
    """
    booking_id: UUID
    payment_ref: str
    payer_ref: str | None


@dataclass(kw_only=True)
class PaymentCompleted(DomainEvent):
    """
    Event: Payment for the booking completed (PENDING_PAYMENT -> COMPLETED)
    """
    booking_id: UUID
    payment_ref: str | None
    amount: Money


@dataclass(kw_only=True)
class PaymentFailed(DomainEvent):
    """
    Event: Payment for the booking failed (PENDING_PAYMENT -> FAILED)
    """
    booking_id: UUID
    payment_ref: str | None
