"""
Booking Repositories

Persistence boundary for the Booking aggregate. Two implementations:

- DjangoBookingRepository: ORM backed, used by the web app and workers
- InMemoryBookingRepository: process-local store for tests and tooling

Every write goes through ``update(booking, expected_version)``, a
compare-and-set on the ``version`` counter. Callers re-read and retry
when it returns False.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional
from uuid import UUID

from django.db import DatabaseError, IntegrityError, transaction  # type: ignore
from django.db.models import Count, Q, Sum  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore

from apps.bookings.domain.entities import (
    Booking,
    BookingStats,
    BookingStatus,
    CancellationReason,
    PaymentStatus,
)
from apps.bookings.domain.errors import PersistenceError
from shared.application.uow import AbstractUnitOfWork, DjangoUnitOfWork, InMemoryUnitOfWork
from shared.domain.value_objects import DateRange, Money

logger = logging.getLogger(__name__)


class AbstractBookingRepository(ABC):
    """Storage contract for bookings"""

    def __init__(self, bus=None):
        self._bus = bus

    @abstractmethod
    def unit_of_work(self):
        """Context manager yielding the unit of work for one atomic change"""

    @abstractmethod
    def lock_resource(self, resource_id: str) -> None:
        """Serialize writers on a room until the current unit of work ends"""

    @abstractmethod
    def add(self, booking: Booking) -> None:
        """Insert a new booking"""

    @abstractmethod
    def get(self, booking_id: UUID) -> Optional[Booking]:
        pass

    @abstractmethod
    def get_by_payment_ref(self, payment_ref: str) -> Optional[Booking]:
        pass

    @abstractmethod
    def update(self, booking: Booking, expected_version: int) -> bool:
        """
        Persist ``booking`` if the stored version still equals ``expected_version``

        On success the booking's version is bumped and True is returned.
        Returns False when another writer got there first.
        """

    @abstractmethod
    def find_overlapping(
        self,
        resource_id: str,
        dates: DateRange,
        *,
        statuses: Iterable[BookingStatus],
        exclude_booking_id: UUID | None = None,
    ) -> List[Booking]:
        """Bookings on the room in one of ``statuses`` whose dates overlap ``dates``"""

    @abstractmethod
    def list_by_requester(self, requester_id: str) -> List[Booking]:
        """Newest first"""

    @abstractmethod
    def list_by_resource(self, resource_id: str) -> List[Booking]:
        """Newest first"""

    @abstractmethod
    def list_pending_payment(self, created_before: datetime | None = None) -> List[Booking]:
        """Bookings whose payment is not settled yet, oldest first"""

    @abstractmethod
    def stats(self) -> BookingStats:
        pass


class InMemoryBookingRepository(AbstractBookingRepository):
    """
    Thread-safe process-local repository

    Stores private copies so callers can never mutate stored state
    without going through ``update``.
    """

    def __init__(self, bus=None):
        super().__init__(bus)
        self._lock = threading.RLock()
        self._bookings: Dict[UUID, Booking] = {}
        self._sequence: Dict[UUID, int] = {}
        self._counter = itertools.count()

    @contextmanager
    def unit_of_work(self) -> Iterator[AbstractUnitOfWork]:
        with InMemoryUnitOfWork(self._bus) as uow:
            yield uow

    def lock_resource(self, resource_id: str) -> None:
        # Writers of one process are serialized by the ledger's keyed lock
        return None

    def add(self, booking: Booking) -> None:
        with self._lock:
            if booking.id in self._bookings:
                raise PersistenceError(f"duplicate booking id {booking.id}")
            self._ensure_unique_ref(booking)
            self._bookings[booking.id] = self._snapshot(booking)
            self._sequence[booking.id] = next(self._counter)

    def get(self, booking_id: UUID) -> Optional[Booking]:
        with self._lock:
            stored = self._bookings.get(booking_id)
            return copy.deepcopy(stored) if stored is not None else None

    def get_by_payment_ref(self, payment_ref: str) -> Optional[Booking]:
        with self._lock:
            for stored in self._bookings.values():
                if stored.external_payment_ref == payment_ref:
                    return copy.deepcopy(stored)
        return None

    def update(self, booking: Booking, expected_version: int) -> bool:
        with self._lock:
            stored = self._bookings.get(booking.id)
            if stored is None:
                raise PersistenceError(f"booking {booking.id} does not exist")
            if stored.version != expected_version:
                return False
            self._ensure_unique_ref(booking)

            booking.version = expected_version + 1
            self._bookings[booking.id] = self._snapshot(booking)
            return True

    def find_overlapping(self, resource_id, dates, *, statuses, exclude_booking_id=None):
        statuses = set(statuses)
        with self._lock:
            return [
                copy.deepcopy(stored)
                for stored in self._bookings.values()
                if stored.resource_id == resource_id
                and stored.status in statuses
                and stored.id != exclude_booking_id
                and stored.dates.overlaps_with(dates)
            ]

    def list_by_requester(self, requester_id: str) -> List[Booking]:
        return self._newest_first(lambda b: b.requester_id == requester_id)

    def list_by_resource(self, resource_id: str) -> List[Booking]:
        return self._newest_first(lambda b: b.resource_id == resource_id)

    def list_pending_payment(self, created_before=None) -> List[Booking]:
        with self._lock:
            pending = [
                copy.deepcopy(stored)
                for stored in self._bookings.values()
                if stored.payment_status == PaymentStatus.PENDING_PAYMENT
                and (created_before is None or stored.created_at < created_before)
            ]
        pending.sort(key=lambda b: (b.created_at, self._sequence[b.id]))
        return pending

    def stats(self) -> BookingStats:
        with self._lock:
            bookings = list(self._bookings.values())

        revenue = sum(
            (
                b.amount.amount for b in bookings
                if b.status == BookingStatus.CONFIRMED
                and b.payment_status == PaymentStatus.COMPLETED
            ),
            Decimal('0'),
        )
        return BookingStats(
            total_bookings=len(bookings),
            confirmed_bookings=sum(1 for b in bookings if b.status == BookingStatus.CONFIRMED),
            pending_bookings=sum(1 for b in bookings if b.status == BookingStatus.PENDING),
            cancelled_bookings=sum(1 for b in bookings if b.status == BookingStatus.CANCELLED),
            total_revenue=revenue,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._bookings)

    def _newest_first(self, predicate) -> List[Booking]:
        with self._lock:
            matches = [copy.deepcopy(b) for b in self._bookings.values() if predicate(b)]
            # Ties on created_at fall back to insertion order
            matches.sort(key=lambda b: (b.created_at, self._sequence[b.id]), reverse=True)
            return matches

    def _ensure_unique_ref(self, booking: Booking) -> None:
        ref = booking.external_payment_ref
        if ref is None:
            return
        for stored in self._bookings.values():
            if stored.id != booking.id and stored.external_payment_ref == ref:
                raise PersistenceError(f"payment reference {ref} already in use")

    @staticmethod
    def _snapshot(booking: Booking) -> Booking:
        stored = copy.deepcopy(booking)
        stored.clear_events()
        return stored


class DjangoBookingRepository(AbstractBookingRepository):
    """
    ORM backed repository

    Database failures surface as PersistenceError; the underlying
    exception is logged and chained but never shown to clients.
    """

    @contextmanager
    def unit_of_work(self) -> Iterator[AbstractUnitOfWork]:
        with self._db_errors("unit of work"):
            with DjangoUnitOfWork(self._bus) as uow:
                yield uow

    def lock_resource(self, resource_id: str) -> None:
        from .models import Room  # Local import to prevent circular dependency

        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("lock_resource() must run inside a unit of work")

        with self._db_errors("lock room"):
            Room.objects.get_or_create(resource_id=resource_id)
            queryset = Room.objects.filter(resource_id=resource_id)
            try:
                # Backends without row locks (SQLite) silently skip FOR UPDATE
                list(queryset.select_for_update())
            except NotSupportedError:
                list(queryset)

    def add(self, booking: Booking) -> None:
        from .models import Booking as BookingModel

        with self._db_errors("insert booking"):
            BookingModel.objects.create(**self._to_fields(booking), id=booking.id)

    def get(self, booking_id: UUID) -> Optional[Booking]:
        from .models import Booking as BookingModel

        with self._db_errors("fetch booking"):
            row = BookingModel.objects.filter(pk=booking_id).first()
        return self._to_domain(row) if row is not None else None

    def get_by_payment_ref(self, payment_ref: str) -> Optional[Booking]:
        from .models import Booking as BookingModel

        with self._db_errors("fetch booking by payment ref"):
            row = BookingModel.objects.filter(external_payment_ref=payment_ref).first()
        return self._to_domain(row) if row is not None else None

    def update(self, booking: Booking, expected_version: int) -> bool:
        from .models import Booking as BookingModel

        fields = self._to_fields(booking)
        fields['version'] = expected_version + 1

        with self._db_errors("update booking"):
            updated = BookingModel.objects.filter(
                pk=booking.id,
                version=expected_version,
            ).update(**fields)

        if updated:
            booking.version = expected_version + 1
            return True

        logger.info(f"Stale write for booking {booking.id} (expected version {expected_version})")
        return False

    def find_overlapping(self, resource_id, dates, *, statuses, exclude_booking_id=None):
        from .models import Booking as BookingModel

        overlapping_filter = Q(check_in__lt=dates.end_date) & Q(check_out__gt=dates.start_date)

        queryset = BookingModel.objects.filter(
            resource_id=resource_id,
            status__in=[status.value for status in statuses],
        ).filter(overlapping_filter)

        if exclude_booking_id is not None:
            queryset = queryset.exclude(pk=exclude_booking_id)

        with self._db_errors("availability query"):
            return [self._to_domain(row) for row in queryset]

    def list_by_requester(self, requester_id: str) -> List[Booking]:
        from .models import Booking as BookingModel

        with self._db_errors("list bookings by requester"):
            rows = list(BookingModel.objects.filter(requester_id=requester_id).order_by("-created_at"))
        return [self._to_domain(row) for row in rows]

    def list_by_resource(self, resource_id: str) -> List[Booking]:
        from .models import Booking as BookingModel

        with self._db_errors("list bookings by room"):
            rows = list(BookingModel.objects.filter(resource_id=resource_id).order_by("-created_at"))
        return [self._to_domain(row) for row in rows]

    def list_pending_payment(self, created_before=None) -> List[Booking]:
        from .models import Booking as BookingModel

        queryset = BookingModel.objects.filter(
            payment_status=PaymentStatus.PENDING_PAYMENT.value,
        )
        if created_before is not None:
            queryset = queryset.filter(created_at__lt=created_before)

        with self._db_errors("list pending payments"):
            rows = list(queryset.order_by("created_at"))
        return [self._to_domain(row) for row in rows]

    def stats(self) -> BookingStats:
        from .models import Booking as BookingModel

        with self._db_errors("booking stats"):
            totals = BookingModel.objects.aggregate(
                total=Count("id"),
                confirmed=Count("id", filter=Q(status=BookingStatus.CONFIRMED.value)),
                pending=Count("id", filter=Q(status=BookingStatus.PENDING.value)),
                cancelled=Count("id", filter=Q(status=BookingStatus.CANCELLED.value)),
                revenue=Sum(
                    "amount",
                    filter=Q(
                        status=BookingStatus.CONFIRMED.value,
                        payment_status=PaymentStatus.COMPLETED.value,
                    ),
                ),
            )

        return BookingStats(
            total_bookings=totals["total"],
            confirmed_bookings=totals["confirmed"],
            pending_bookings=totals["pending"],
            cancelled_bookings=totals["cancelled"],
            total_revenue=totals["revenue"] or Decimal("0"),
        )

    @contextmanager
    def _db_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            logger.error(f"Integrity error during {operation}: {exc}", exc_info=True)
            raise PersistenceError(f"{operation}: {exc}") from exc
        except DatabaseError as exc:
            logger.error(f"Database error during {operation}: {exc}", exc_info=True)
            raise PersistenceError(f"{operation}: {exc}") from exc

    @staticmethod
    def _to_fields(booking: Booking) -> dict:
        return {
            "resource_id": booking.resource_id,
            "requester_id": booking.requester_id,
            "check_in": booking.dates.start_date,
            "check_out": booking.dates.end_date,
            "guests_count": booking.guests_count,
            "amount": booking.amount.amount,
            "currency": booking.amount.currency,
            "status": booking.status.value,
            "payment_status": booking.payment_status.value,
            "external_payment_ref": booking.external_payment_ref,
            "external_payer_ref": booking.external_payer_ref,
            "cancellation_reason": (
                booking.cancellation_reason.value if booking.cancellation_reason else ""
            ),
            "cancelled_at": booking.cancelled_at,
            "version": booking.version,
            "created_at": booking.created_at,
            "updated_at": booking.updated_at,
        }

    @staticmethod
    def _to_domain(row) -> Booking:
        return Booking(
            id=row.id,
            created_at=row.created_at,
            updated_at=row.updated_at,
            resource_id=row.resource_id,
            requester_id=row.requester_id,
            dates=DateRange(row.check_in, row.check_out),
            guests_count=row.guests_count,
            amount=Money(row.amount, row.currency),
            status=BookingStatus(row.status),
            payment_status=PaymentStatus(row.payment_status),
            external_payment_ref=row.external_payment_ref,
            external_payer_ref=row.external_payer_ref,
            cancellation_reason=(
                CancellationReason(row.cancellation_reason) if row.cancellation_reason else None
            ),
            cancelled_at=row.cancelled_at,
            version=row.version,
        )
