"""
Booking Command Handlers

These are the use cases exposed to the HTTP layer, webhooks and workers.
They orchestrate the ledger and the payment reconciler.

Commands:
- CreateReservationCommand: Admit a booking and charge for it
- ConfirmReservationCommand: Reconcile a payment reported by the client or gateway
- CancelReservationCommand: Cancel a booking on request
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID
import logging

from apps.bookings.application.ledger import BookingLedger, CreateReservationRequest
from apps.bookings.application.reconciler import PaymentReconciler
from apps.bookings.domain.entities import Booking, BookingStatus, CancellationReason
from apps.bookings.domain.errors import AvailabilityConflictError, PaymentNotSuccessfulError
from apps.payments.gateway import PaymentOutcome

logger = logging.getLogger(__name__)


# ===== Commands =====

@dataclass
class CreateReservationCommand:
    """
    Command to create a new reservation

    This is the primary entry point for creating bookings.
    """
    requester_id: str
    resource_id: str
    check_in: date
    check_out: date
    guests_count: int
    amount: Decimal
    payment_method_ref: str
    currency: str = 'INR'


@dataclass
class ConfirmReservationCommand:
    """Command to confirm a booking once the gateway reports the payment"""
    payment_ref: str


@dataclass
class CancelReservationCommand:
    """Command to cancel a booking"""
    booking_id: UUID


@dataclass(frozen=True)
class ReservationResult:
    booking: Booking
    client_secret: str | None = None


def _lost_dates(booking: Booking) -> bool:
    return (
        booking.status == BookingStatus.CANCELLED
        and booking.cancellation_reason == CancellationReason.DATES_TAKEN
    )


# ===== Command Handlers =====

class CreateReservationHandler:
    """
    Handler for CreateReservation command

    Strategy:
    1. Ledger admits the booking as PENDING (room lock + availability check)
    2. Payer and charge are created at the gateway, outside any lock
    3. References are attached; an immediate success confirms the booking
    4. If a concurrent booking was confirmed first, the payer is told the
       dates are gone (booking ends CANCELLED / DATES_TAKEN)
    5. A declined charge cancels the booking and is reported as an
       unsuccessful payment
    """

    def __init__(self, ledger: BookingLedger, reconciler: PaymentReconciler):
        self.ledger = ledger
        self.reconciler = reconciler

    def handle(self, command: CreateReservationCommand) -> ReservationResult:
        """
        Handle reservation creation

        Raises:
            BookingValidationError, AvailabilityConflictError,
            PaymentNotSuccessfulError, GatewayError, PersistenceError
        """
        booking = self.ledger.create_reservation(CreateReservationRequest(
            requester_id=command.requester_id,
            resource_id=command.resource_id,
            start_date=command.check_in,
            end_date=command.check_out,
            guests_count=command.guests_count,
            amount=command.amount,
            currency=command.currency,
        ))

        initiation = self.reconciler.initiate_payment(booking, command.payment_method_ref)

        if _lost_dates(initiation.booking):
            logger.warning(
                f"Booking {booking.id} paid but lost room {booking.resource_id} "
                f"to a concurrent reservation"
            )
            raise AvailabilityConflictError(booking.resource_id)

        if initiation.outcome == PaymentOutcome.FAILED:
            logger.info(f"Payment for booking {booking.id} was declined")
            raise PaymentNotSuccessfulError(initiation.external_payment_ref or str(booking.id))

        return ReservationResult(
            booking=initiation.booking,
            client_secret=initiation.client_secret,
        )


class ConfirmReservationHandler:
    """Handler for ConfirmReservation command"""

    def __init__(self, reconciler: PaymentReconciler):
        self.reconciler = reconciler

    def handle(self, command: ConfirmReservationCommand) -> Booking:
        """
        Raises:
            BookingNotFoundError, PaymentNotSuccessfulError,
            AvailabilityConflictError, GatewayError
        """
        logger.info(f"Confirming reservation paid with {command.payment_ref}")

        booking = self.reconciler.reconcile_by_external_ref(command.payment_ref)
        if _lost_dates(booking):
            raise AvailabilityConflictError(booking.resource_id)
        return booking


class CancelReservationHandler:
    """Handler for CancelReservation command"""

    def __init__(self, ledger: BookingLedger):
        self.ledger = ledger

    def handle(self, command: CancelReservationCommand) -> Booking:
        """
        Raises:
            BookingNotFoundError, InvalidTransitionError
        """
        logger.info(f"Cancelling booking {command.booking_id}")
        return self.ledger.transition_status(command.booking_id, BookingStatus.CANCELLED)
