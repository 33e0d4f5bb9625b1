"""
Booking Domain Entities

Core business entities for the booking domain:
- Booking: Main aggregate representing a room reservation
- BookingStatus: FSM states for the reservation lifecycle
- PaymentStatus: FSM states for the payment lifecycle
- CancellationReason: Why a booking ended up cancelled
- BookingStats: Read-side counters for the overview endpoint
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from shared.domain.base import Aggregate, utcnow
from shared.domain.value_objects import DateRange, Money


class BookingStatus(Enum):
    """
    Booking Status Finite State Machine

    State transitions:
    - PENDING -> CONFIRMED (payment completed and dates still free)
    - PENDING -> CANCELLED (payment failed, dates taken, or cancelled)
    - CONFIRMED -> CANCELLED (explicit cancellation)
    """
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'


class PaymentStatus(Enum):
    """
    Payment status tracking

    State transitions:
    - PENDING_PAYMENT -> COMPLETED
    - PENDING_PAYMENT -> FAILED
    """
    PENDING_PAYMENT = 'pending_payment'
    COMPLETED = 'completed'
    FAILED = 'failed'


class CancellationReason(Enum):
    REQUESTED = 'requested'
    PAYMENT_FAILED = 'payment_failed'
    DATES_TAKEN = 'dates_taken'


@dataclass(eq=False)
class Booking(Aggregate):
    """
    Booking Aggregate Root

    Represents a requester's reservation of a room for specific dates.

    Key invariants:
    - Booking must have valid date range (start < end)
    - Guests count is at least 1, amount is never negative
    - CONFIRMED requires payment COMPLETED
    - Payment FAILED forces CANCELLED
    """

    # References
    resource_id: str
    requester_id: str

    # Dates
    dates: DateRange
    guests_count: int

    # Pricing (fixed at creation)
    amount: Money

    # Status tracking
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING_PAYMENT

    # Gateway correlation
    external_payment_ref: str | None = None
    external_payer_ref: str | None = None

    # Cancellation details
    cancellation_reason: CancellationReason | None = None
    cancelled_at: datetime | None = None

    # Optimistic concurrency counter, bumped by the repository on every write
    version: int = 0

    def __post_init__(self):
        if self.guests_count < 1:
            raise ValueError("Guests count must be at least 1")

    def confirm(self):
        """
        Confirm booking (PENDING -> CONFIRMED)

        Only allowed once payment has COMPLETED.
        Events: BookingConfirmed
        """
        from apps.bookings.domain.events import BookingConfirmed
        from apps.bookings.domain.state_machine import BookingStateMachine

        BookingStateMachine.ensure_status_transition(
            self.status, self.payment_status, BookingStatus.CONFIRMED
        )

        self.status = BookingStatus.CONFIRMED
        self.updated_at = utcnow()

        self.add_event(BookingConfirmed(
            aggregate_id=self.id,
            booking_id=self.id,
            resource_id=self.resource_id,
            dates=self.dates,
            payment_ref=self.external_payment_ref,
        ))

    def cancel(self, reason: CancellationReason = CancellationReason.REQUESTED):
        """
        Cancel booking (PENDING | CONFIRMED -> CANCELLED)

        Events: BookingCancelled
        """
        from apps.bookings.domain.events import BookingCancelled
        from apps.bookings.domain.state_machine import BookingStateMachine

        BookingStateMachine.ensure_status_transition(
            self.status, self.payment_status, BookingStatus.CANCELLED
        )

        old_status = self.status
        self.status = BookingStatus.CANCELLED
        self.cancellation_reason = reason
        self.cancelled_at = utcnow()
        self.updated_at = self.cancelled_at

        self.add_event(BookingCancelled(
            aggregate_id=self.id,
            booking_id=self.id,
            resource_id=self.resource_id,
            reason=reason.value,
            old_status=old_status.value,
            payment_status=self.payment_status.value,
        ))

    def change_status(self, target: BookingStatus):
        """Apply an explicitly requested status transition."""
        from apps.bookings.domain.state_machine import BookingStateMachine

        if target == BookingStatus.CONFIRMED:
            self.confirm()
        elif target == BookingStatus.CANCELLED:
            self.cancel(CancellationReason.REQUESTED)
        else:
            # No transition leads back to PENDING; this always raises
            BookingStateMachine.ensure_status_transition(self.status, self.payment_status, target)

    def change_payment_status(self, target: PaymentStatus, *, dates_available: bool = True):
        """
        Apply a payment transition and its cross-axis consequence

        COMPLETED confirms a PENDING booking when its dates are still
        available, otherwise cancels it. FAILED cancels a PENDING booking.
        Events: PaymentCompleted / PaymentFailed, then BookingConfirmed or
        BookingCancelled
        """
        from apps.bookings.domain.events import PaymentCompleted, PaymentFailed
        from apps.bookings.domain.state_machine import BookingStateMachine

        BookingStateMachine.ensure_payment_transition(self.payment_status, target)

        self.payment_status = target
        self.updated_at = utcnow()

        if target == PaymentStatus.COMPLETED:
            self.add_event(PaymentCompleted(
                aggregate_id=self.id,
                booking_id=self.id,
                payment_ref=self.external_payment_ref,
                amount=self.amount,
            ))
            if self.status == BookingStatus.PENDING:
                if dates_available:
                    self.confirm()
                else:
                    self.cancel(CancellationReason.DATES_TAKEN)
        else:
            self.add_event(PaymentFailed(
                aggregate_id=self.id,
                booking_id=self.id,
                payment_ref=self.external_payment_ref,
            ))
            if self.status != BookingStatus.CANCELLED:
                self.cancel(CancellationReason.PAYMENT_FAILED)

    def attach_payment_refs(self, payment_ref: str, payer_ref: str | None) -> bool:
        """
        Record gateway references once

        Returns False when the same references are already recorded.
        Events: PaymentRefsAttached
        """
        from apps.bookings.domain.errors import InvalidTransitionError
        from apps.bookings.domain.events import PaymentRefsAttached

        if self.external_payment_ref == payment_ref and self.external_payer_ref == payer_ref:
            return False
        if self.external_payment_ref is not None:
            raise InvalidTransitionError(
                self.payment_status.value,
                self.payment_status.value,
                "payment reference already recorded",
            )
        if self.payment_status != PaymentStatus.PENDING_PAYMENT:
            raise InvalidTransitionError(
                self.payment_status.value,
                self.payment_status.value,
                "payment already settled",
            )

        self.external_payment_ref = payment_ref
        self.external_payer_ref = payer_ref
        self.updated_at = utcnow()

        self.add_event(PaymentRefsAttached(
            aggregate_id=self.id,
            booking_id=self.id,
            payment_ref=payment_ref,
            payer_ref=payer_ref,
        ))
        return True

    def blocks_dates(self, hold_pending: bool = False) -> bool:
        """
        Check if this booking blocks its room for its dates

        Only CONFIRMED bookings block. With ``hold_pending`` a PENDING
        booking still awaiting payment blocks as well (soft lock).
        """
        if self.status == BookingStatus.CONFIRMED:
            return True
        return (
            hold_pending
            and self.status == BookingStatus.PENDING
            and self.payment_status == PaymentStatus.PENDING_PAYMENT
        )

    @property
    def nights(self) -> int:
        """Number of nights"""
        return len(self.dates)

    @property
    def is_settled(self) -> bool:
        """Payment reached a terminal state"""
        return self.payment_status != PaymentStatus.PENDING_PAYMENT

    def __str__(self):
        return f"Booking {self.id} ({self.status.value}/{self.payment_status.value})"

    def __repr__(self):
        return (
            f"Booking(id={self.id}, resource_id={self.resource_id}, "
            f"status={self.status.value}, payment_status={self.payment_status.value}, "
            f"dates={self.dates})"
        )


@dataclass(frozen=True)
class BookingStats:
    """
    Aggregate counters over all bookings

    Revenue is the sum of amounts of bookings that are CONFIRMED with
    payment COMPLETED.
    """
    total_bookings: int = 0
    confirmed_bookings: int = 0
    pending_bookings: int = 0
    cancelled_bookings: int = 0
    total_revenue: Decimal = Decimal('0')

    def to_dict(self) -> dict:
        return {
            'total_bookings': self.total_bookings,
            'confirmed_bookings': self.confirmed_bookings,
            'pending_bookings': self.pending_bookings,
            'cancelled_bookings': self.cancelled_bookings,
            'total_revenue': self.total_revenue,
        }
