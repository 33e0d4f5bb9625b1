"""
Booking Ledger

Authoritative store of bookings and the only writer of booking state.

Write strategy:
1. Validate the request before touching storage
2. Take the per-room lock (process-local) and the room lock row
   (SELECT FOR UPDATE) inside one unit of work
3. Check availability and write in that same unit of work
4. Every later write is a compare-and-set on the booking version,
   re-read and retried on conflict
5. Domain events are published after commit
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, List
from uuid import UUID
import logging

from shared.application.locks import KeyedLock
from shared.domain.base import utcnow
from shared.domain.value_objects import SUPPORTED_CURRENCIES, DateRange, Money
from apps.bookings.domain.availability import AvailabilityChecker
from apps.bookings.domain.entities import (
    Booking,
    BookingStats,
    BookingStatus,
    PaymentStatus,
)
from apps.bookings.domain.errors import (
    AvailabilityConflictError,
    BookingNotFoundError,
    BookingValidationError,
    PersistenceError,
)
from apps.bookings.domain.events import BookingCreated

logger = logging.getLogger(__name__)


@dataclass
class CreateReservationRequest:
    """Input for a new reservation"""
    requester_id: str
    resource_id: str
    start_date: date
    end_date: date
    guests_count: int
    amount: Decimal
    currency: str = 'INR'


def _coerce_booking_id(booking_id) -> UUID:
    if isinstance(booking_id, UUID):
        return booking_id
    try:
        return UUID(str(booking_id))
    except (TypeError, ValueError, AttributeError):
        raise BookingNotFoundError(str(booking_id))


class BookingLedger:
    """
    Reservation ledger

    Thread-safe: creates and transitions on the same room are serialized,
    operations on different rooms proceed independently.
    """

    def __init__(
        self,
        repository,
        *,
        checker: AvailabilityChecker | None = None,
        locks: KeyedLock | None = None,
        hold_pending: bool = False,
        transition_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.checker = checker or AvailabilityChecker(repository, hold_pending=hold_pending)
        self._locks = locks or KeyedLock()
        self._retries = max(1, transition_retries)
        self._clock = clock

    # ===== Writes =====

    def create_reservation(self, request: CreateReservationRequest) -> Booking:
        """
        Admit a new reservation as PENDING / PENDING_PAYMENT

        Raises:
            BookingValidationError: malformed request, nothing written
            AvailabilityConflictError: dates overlap a blocking booking
            PersistenceError: storage failure
        """
        dates, amount = self._validate(request)

        logger.info(
            f"Creating reservation for room {request.resource_id}, "
            f"requester {request.requester_id}, dates {dates}"
        )

        with self._locks.hold(request.resource_id):
            with self.repository.unit_of_work() as uow:
                self.repository.lock_resource(request.resource_id)

                if not self.checker.is_available(request.resource_id, dates):
                    logger.info(f"Room {request.resource_id} not available for {dates}")
                    raise AvailabilityConflictError(request.resource_id)

                now = self._clock()
                booking = Booking(
                    created_at=now,
                    updated_at=now,
                    resource_id=request.resource_id,
                    requester_id=request.requester_id,
                    dates=dates,
                    guests_count=request.guests_count,
                    amount=amount,
                )
                booking.add_event(BookingCreated(
                    aggregate_id=booking.id,
                    booking_id=booking.id,
                    resource_id=booking.resource_id,
                    requester_id=booking.requester_id,
                    dates=dates,
                    amount=amount,
                ))

                uow.collect_events(booking)
                self.repository.add(booking)

        logger.info(f"Reservation {booking.id} created for room {booking.resource_id}")
        return booking

    def transition_status(self, booking_id, target: BookingStatus) -> Booking:
        """
        Apply a status transition (PENDING -> CONFIRMED | CANCELLED, CONFIRMED -> CANCELLED)

        Raises:
            BookingNotFoundError, InvalidTransitionError, PersistenceError
        """
        return self._apply(booking_id, lambda booking: booking.change_status(target))

    def transition_payment_status(self, booking_id, target: PaymentStatus) -> Booking:
        """
        Apply a payment transition and its cross-axis consequence

        COMPLETED on a PENDING booking confirms it, unless a confirmed
        booking overlapping its dates was admitted in the meantime; then the
        booking is cancelled with reason DATES_TAKEN. FAILED cancels.

        Raises:
            BookingNotFoundError, InvalidTransitionError, PersistenceError
        """
        def mutate(booking: Booking):
            dates_available = True
            if target == PaymentStatus.COMPLETED and booking.status == BookingStatus.PENDING:
                # Only confirmed bookings can take the dates away at this point
                dates_available = self.checker.is_available(
                    booking.resource_id,
                    booking.dates,
                    exclude_booking_id=booking.id,
                    hold_pending=False,
                )
                if not dates_available:
                    logger.warning(
                        f"Booking {booking.id} paid but room {booking.resource_id} "
                        f"was taken for {booking.dates}"
                    )
            booking.change_payment_status(target, dates_available=dates_available)

        return self._apply(booking_id, mutate)

    def attach_payment_refs(self, booking_id, payment_ref: str, payer_ref: str | None) -> Booking:
        """
        Record the gateway references on a pending booking (once)

        Raises:
            BookingNotFoundError, InvalidTransitionError, PersistenceError
        """
        if not payment_ref:
            raise BookingValidationError({'payment_ref': 'Payment reference is required'})
        return self._apply(
            booking_id,
            lambda booking: booking.attach_payment_refs(payment_ref, payer_ref),
        )

    # ===== Reads =====

    def find_by_id(self, booking_id) -> Booking:
        booking = self.repository.get(_coerce_booking_id(booking_id))
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    def find_by_external_payment_ref(self, payment_ref: str) -> Booking:
        booking = self.repository.get_by_payment_ref(payment_ref) if payment_ref else None
        if booking is None:
            raise BookingNotFoundError(str(payment_ref))
        return booking

    def list_by_requester(self, requester_id: str) -> List[Booking]:
        return self.repository.list_by_requester(requester_id)

    def list_by_resource(self, resource_id: str) -> List[Booking]:
        return self.repository.list_by_resource(resource_id)

    def stats(self) -> BookingStats:
        return self.repository.stats()

    def list_pending_payment(self, older_than: timedelta | None = None) -> List[Booking]:
        """Unsettled bookings, optionally only those created more than ``older_than`` ago"""
        created_before = self._clock() - older_than if older_than is not None else None
        return self.repository.list_pending_payment(created_before)

    # ===== Internals =====

    def _apply(self, booking_id, mutate: Callable[[Booking], object]) -> Booking:
        """
        Read-modify-write with compare-and-set

        ``mutate`` raises to abort (nothing is written) or returns False
        to signal a no-op.
        """
        booking_id = _coerce_booking_id(booking_id)
        current = self.find_by_id(booking_id)

        with self._locks.hold(current.resource_id):
            for attempt in range(1, self._retries + 1):
                with self.repository.unit_of_work() as uow:
                    self.repository.lock_resource(current.resource_id)

                    booking = self.find_by_id(booking_id)
                    expected_version = booking.version

                    if mutate(booking) is False:
                        return booking

                    uow.collect_events(booking)
                    if self.repository.update(booking, expected_version):
                        return booking

                    uow.rollback()

                logger.warning(
                    f"Concurrent update of booking {booking_id}, "
                    f"retrying ({attempt}/{self._retries})"
                )

        raise PersistenceError(f"booking {booking_id} kept changing during update")

    def _validate(self, request: CreateReservationRequest):
        errors = {}

        for field_name in ('requester_id', 'resource_id'):
            value = getattr(request, field_name)
            if not isinstance(value, str) or not value.strip():
                errors[field_name] = 'This field is required'

        start, end = request.start_date, request.end_date
        for field_name, value in (('start_date', start), ('end_date', end)):
            if not isinstance(value, date) or isinstance(value, datetime):
                errors[field_name] = 'A calendar date is required'
        if 'start_date' not in errors and 'end_date' not in errors and start >= end:
            errors['end_date'] = 'Check-out must be after check-in'

        guests = request.guests_count
        if isinstance(guests, bool) or not isinstance(guests, int) or guests < 1:
            errors['guests_count'] = 'At least one guest is required'

        try:
            amount = Decimal(str(request.amount))
        except (InvalidOperation, ValueError):
            amount = None
        if amount is None or not amount.is_finite() or amount < 0:
            errors['amount'] = 'Amount must be a non-negative number'
        elif amount.as_tuple().exponent < -2:
            errors['amount'] = 'Amount cannot have more than 2 decimal places'

        currency = str(request.currency or '').upper()
        if currency not in SUPPORTED_CURRENCIES:
            errors['currency'] = f"Unsupported currency {request.currency!r}"

        if errors:
            logger.info(f"Rejected reservation request: {errors}")
            raise BookingValidationError(errors)

        return DateRange(start, end), Money(amount, currency)
