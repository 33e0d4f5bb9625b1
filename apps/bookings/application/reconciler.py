"""
Payment Reconciler

Keeps booking payment state in line with what the payment gateway
reports. Gateway calls never happen while a room lock is held: the
ledger is only entered once the gateway has answered.

Reconciliation is idempotent: replaying the same gateway outcome is a
no-op that returns the current booking.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List
from uuid import UUID
import logging

from apps.bookings.application.ledger import BookingLedger
from apps.bookings.domain.entities import Booking, PaymentStatus
from apps.bookings.domain.errors import (
    DomainError,
    InvalidTransitionError,
    PaymentNotSuccessfulError,
)
from apps.payments.gateway import PaymentGateway, PaymentOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInitiation:
    """Result of creating and charging a payment for a booking"""
    booking: Booking
    external_payment_ref: str | None
    external_payer_ref: str
    outcome: PaymentOutcome
    client_secret: str | None = None


@dataclass
class SweepReport:
    """Counters of one pending-payment sweep"""
    completed: int = 0
    failed: int = 0
    pending: int = 0
    errors: int = 0
    booking_ids: List[UUID] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'completed': self.completed,
            'failed': self.failed,
            'pending': self.pending,
            'errors': self.errors,
        }


class PaymentReconciler:
    """Bridges gateway outcomes into booking state transitions"""

    def __init__(self, ledger: BookingLedger, gateway: PaymentGateway):
        self.ledger = ledger
        self.gateway = gateway

    def initiate_payment(self, booking: Booking, payment_method_ref: str) -> PaymentInitiation:
        """
        Create a payer and an immediate charge for ``booking``

        The references are attached to the booking before anything else so
        a later confirmation can find it. An immediate success or decline
        settles the booking right away.

        Raises:
            GatewayError: the gateway failed, the booking stays PENDING
        """
        logger.info(f"Initiating payment for booking {booking.id} ({booking.amount})")

        payer_ref = self.gateway.create_payer(payment_method_ref)
        charge = self.gateway.charge_now(
            payer_ref,
            payment_method_ref,
            booking.amount.amount,
            booking.amount.currency,
        )

        if charge.payment_ref:
            try:
                booking = self.ledger.attach_payment_refs(booking.id, charge.payment_ref, payer_ref)
            except DomainError:
                logger.error(
                    f"Charge {charge.payment_ref} ({charge.outcome.value}) could not be "
                    f"recorded on booking {booking.id}"
                )
                raise

        if charge.outcome == PaymentOutcome.SUCCEEDED:
            booking = self._settle(booking, PaymentStatus.COMPLETED)
        elif charge.outcome == PaymentOutcome.FAILED:
            booking = self._settle(booking, PaymentStatus.FAILED)

        logger.info(
            f"Payment {charge.payment_ref} for booking {booking.id}: {charge.outcome.value}"
        )
        return PaymentInitiation(
            booking=booking,
            external_payment_ref=charge.payment_ref,
            external_payer_ref=payer_ref,
            outcome=charge.outcome,
            client_secret=charge.client_secret,
        )

    def reconcile_by_external_ref(self, payment_ref: str) -> Booking:
        """
        Bring the booking paid through ``payment_ref`` in line with the gateway

        Raises:
            BookingNotFoundError: no booking carries this reference
            PaymentNotSuccessfulError: payment still pending or failed
            GatewayError: the gateway could not be queried
        """
        booking = self.ledger.find_by_external_payment_ref(payment_ref)

        if booking.payment_status == PaymentStatus.COMPLETED:
            return booking
        if booking.payment_status == PaymentStatus.FAILED:
            raise PaymentNotSuccessfulError(payment_ref)

        outcome = self.gateway.get_outcome(payment_ref)
        logger.info(f"Gateway reports {outcome.value} for payment {payment_ref}")

        if outcome == PaymentOutcome.SUCCEEDED:
            return self._settle(booking, PaymentStatus.COMPLETED)

        if outcome == PaymentOutcome.FAILED:
            self._settle(booking, PaymentStatus.FAILED)

        raise PaymentNotSuccessfulError(payment_ref)

    def sweep_pending_payments(self, timeout: timedelta) -> SweepReport:
        """
        Reconcile every unsettled booking

        Bookings still unsettled after ``timeout`` (or that never got a
        payment reference) are failed, which releases any soft lock.
        """
        report = SweepReport()
        stale_ids = {b.id for b in self.ledger.list_pending_payment(older_than=timeout)}

        for booking in self.ledger.list_pending_payment():
            try:
                outcome = PaymentOutcome.PENDING
                if booking.external_payment_ref:
                    outcome = self.gateway.get_outcome(booking.external_payment_ref)

                if outcome == PaymentOutcome.SUCCEEDED:
                    self._settle(booking, PaymentStatus.COMPLETED)
                    report.completed += 1
                elif outcome == PaymentOutcome.FAILED or booking.id in stale_ids:
                    self._settle(booking, PaymentStatus.FAILED)
                    report.failed += 1
                else:
                    report.pending += 1
                    continue
                report.booking_ids.append(booking.id)
            except DomainError as exc:
                report.errors += 1
                logger.error(f"Failed to reconcile booking {booking.id}: {exc}")

        logger.info(f"Pending payment sweep finished: {report.to_dict()}")
        return report

    def _settle(self, booking: Booking, target: PaymentStatus) -> Booking:
        try:
            return self.ledger.transition_payment_status(booking.id, target)
        except InvalidTransitionError:
            # A concurrent reconciliation may have applied the same outcome
            current = self.ledger.find_by_id(booking.id)
            if current.payment_status == target:
                return current
            raise
