"""
Booking State Machine

Two orthogonal axes, jointly constrained:

    status:          PENDING -> CONFIRMED | CANCELLED
                     CONFIRMED -> CANCELLED
                     CANCELLED (terminal)

    payment_status:  PENDING_PAYMENT -> COMPLETED | FAILED
                     COMPLETED, FAILED (terminal)

Cross-axis rules:
    - CONFIRMED requires COMPLETED
    - FAILED forces CANCELLED
"""

from apps.bookings.domain.entities import BookingStatus, PaymentStatus
from apps.bookings.domain.errors import InvalidTransitionError


class BookingStateMachine:
    """Transition tables and joint-state checks for bookings."""

    STATUS_TRANSITIONS = {
        BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
        BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
        BookingStatus.CANCELLED: frozenset(),
    }

    PAYMENT_TRANSITIONS = {
        PaymentStatus.PENDING_PAYMENT: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
        PaymentStatus.COMPLETED: frozenset(),
        PaymentStatus.FAILED: frozenset(),
    }

    @classmethod
    def ensure_status_transition(
        cls,
        status: BookingStatus,
        payment_status: PaymentStatus,
        target: BookingStatus,
    ) -> None:
        """Raise InvalidTransitionError unless ``status -> target`` is legal."""
        if target not in cls.STATUS_TRANSITIONS[status]:
            raise InvalidTransitionError(status.value, target.value)

        if target == BookingStatus.CONFIRMED and payment_status != PaymentStatus.COMPLETED:
            raise InvalidTransitionError(
                status.value,
                target.value,
                f"payment is {payment_status.value}",
            )

    @classmethod
    def ensure_payment_transition(cls, payment_status: PaymentStatus, target: PaymentStatus) -> None:
        """Raise InvalidTransitionError unless ``payment_status -> target`` is legal."""
        if target not in cls.PAYMENT_TRANSITIONS[payment_status]:
            raise InvalidTransitionError(payment_status.value, target.value)

    @staticmethod
    def is_consistent(status: BookingStatus, payment_status: PaymentStatus) -> bool:
        """Joint-state invariant that every persisted booking satisfies."""
        if status == BookingStatus.CONFIRMED and payment_status != PaymentStatus.COMPLETED:
            return False
        if payment_status == PaymentStatus.FAILED and status != BookingStatus.CANCELLED:
            return False
        return True
