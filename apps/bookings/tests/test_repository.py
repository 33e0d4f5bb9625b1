"""Tests for the ORM backed booking repository."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from unittest import mock
from uuid import uuid4

import pytest
from django.db import DatabaseError, IntegrityError, transaction

from apps.bookings.application.ledger import BookingLedger
from apps.bookings.domain.entities import BookingStatus, CancellationReason, PaymentStatus
from apps.bookings.domain.errors import AvailabilityConflictError, PersistenceError
from apps.bookings.models import Booking as BookingModel
from apps.bookings.models import Room
from apps.bookings.repositories import DjangoBookingRepository
from shared.domain.value_objects import DateRange

from .fakes import make_request

pytestmark = pytest.mark.django_db


@pytest.fixture
def repository(bus):
    return DjangoBookingRepository(bus)


def _confirm(ledger, booking, ref):
    ledger.attach_payment_refs(booking.id, ref, "cus_1")
    return ledger.transition_payment_status(booking.id, PaymentStatus.COMPLETED)


def test_create_persists_booking_and_lock_row(ledger, repository):
    booking = ledger.create_reservation(make_request())

    row = BookingModel.objects.get(pk=booking.id)
    assert row.status == "pending"
    assert row.payment_status == "pending_payment"
    assert row.check_in == date(2024, 3, 1)
    assert row.amount == Decimal("100.00")
    assert Room.objects.filter(resource_id="room-101").exists()

    loaded = repository.get(booking.id)
    assert loaded.dates == booking.dates
    assert loaded.amount == booking.amount
    assert loaded.version == 0


def test_transitions_round_trip(ledger, repository):
    booking = ledger.create_reservation(make_request())

    _confirm(ledger, booking, "pi_1")
    cancelled = ledger.transition_status(booking.id, BookingStatus.CANCELLED)

    loaded = repository.get_by_payment_ref("pi_1")
    assert loaded.id == booking.id
    assert loaded.status == BookingStatus.CANCELLED
    assert loaded.payment_status == PaymentStatus.COMPLETED
    assert loaded.cancellation_reason == CancellationReason.REQUESTED
    assert loaded.cancelled_at is not None
    assert loaded.version == cancelled.version == 3


def test_confirmed_booking_blocks_overlap(ledger):
    _confirm(ledger, ledger.create_reservation(make_request()), "pi_1")

    with pytest.raises(AvailabilityConflictError):
        ledger.create_reservation(make_request(start_date=date(2024, 3, 4), end_date=date(2024, 3, 9)))

    adjacent = ledger.create_reservation(make_request(start_date=date(2024, 3, 5), end_date=date(2024, 3, 9)))
    assert adjacent.status == BookingStatus.PENDING
    assert BookingModel.objects.count() == 2


def test_find_overlapping_filters_status_and_exclusion(ledger, repository):
    pending = ledger.create_reservation(make_request(resource_id="room-1"))
    confirmed = _confirm(ledger, ledger.create_reservation(make_request(resource_id="room-1")), "pi_1")
    dates = DateRange(date(2024, 3, 2), date(2024, 3, 3))

    only_confirmed = repository.find_overlapping("room-1", dates, statuses={BookingStatus.CONFIRMED})
    both = repository.find_overlapping(
        "room-1",
        dates,
        statuses={BookingStatus.CONFIRMED, BookingStatus.PENDING},
        exclude_booking_id=confirmed.id,
    )

    assert [b.id for b in only_confirmed] == [confirmed.id]
    assert [b.id for b in both] == [pending.id]


def test_update_is_compare_and_set(ledger, repository):
    booking = ledger.create_reservation(make_request())
    stale = repository.get(booking.id)
    ledger.attach_payment_refs(booking.id, "pi_1", "cus_1")

    stale.cancel()

    assert repository.update(stale, expected_version=0) is False
    assert repository.get(booking.id).status == BookingStatus.PENDING


def test_duplicate_payment_ref_is_a_persistence_error(ledger):
    first = ledger.create_reservation(make_request(resource_id="room-1"))
    second = ledger.create_reservation(make_request(resource_id="room-2"))
    ledger.attach_payment_refs(first.id, "pi_1", "cus_1")

    with pytest.raises(PersistenceError) as exc_info:
        ledger.attach_payment_refs(second.id, "pi_1", "cus_2")

    assert exc_info.value.message == "Internal storage error"
    assert BookingModel.objects.get(pk=second.id).external_payment_ref is None


def test_database_errors_are_wrapped(ledger):
    with mock.patch.object(BookingModel.objects, "create", side_effect=DatabaseError("disk full")):
        with pytest.raises(PersistenceError) as exc_info:
            ledger.create_reservation(make_request())

    assert "disk full" in exc_info.value.detail
    assert "disk full" not in exc_info.value.message
    assert BookingModel.objects.count() == 0


def test_database_rejects_confirmed_booking_without_payment():
    request = make_request()
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            BookingModel.objects.create(
                id=uuid4(),
                resource_id=request.resource_id,
                requester_id=request.requester_id,
                check_in=request.start_date,
                check_out=request.end_date,
                guests_count=1,
                amount=Decimal("10"),
                status="confirmed",
                payment_status="pending_payment",
                created_at="2024-01-01T00:00:00Z",
                updated_at="2024-01-01T00:00:00Z",
            )


def test_lists_and_pending_query(ledger, repository, clock):
    first = ledger.create_reservation(make_request(resource_id="room-1"))
    clock.advance(timedelta(hours=1))
    second = ledger.create_reservation(make_request(resource_id="room-2"))

    assert [b.id for b in repository.list_by_requester("user-1")] == [second.id, first.id]
    assert [b.id for b in repository.list_by_resource("room-1")] == [first.id]
    assert [b.id for b in ledger.list_pending_payment()] == [first.id, second.id]
    assert [b.id for b in ledger.list_pending_payment(older_than=timedelta(minutes=30))] == [first.id]


def test_stats_aggregate_in_database(ledger):
    bookings = [
        ledger.create_reservation(make_request(resource_id=f"room-{i}", amount=amount))
        for i, amount in enumerate([Decimal("100"), Decimal("200"), Decimal("300")])
    ]
    _confirm(ledger, bookings[0], "pi_1")
    _confirm(ledger, bookings[1], "pi_2")

    stats = ledger.stats()

    assert stats.total_bookings == 3
    assert stats.confirmed_bookings == 2
    assert stats.pending_bookings == 1
    assert stats.total_revenue == Decimal("300")


def test_empty_stats(repository):
    stats = BookingLedger(repository).stats()

    assert stats.total_bookings == 0
    assert stats.total_revenue == Decimal("0")


def test_events_are_published_after_commit(ledger, recorder, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        booking = ledger.create_reservation(make_request())

    assert recorder.names() == ["BookingCreated"]
    assert recorder.events[0].booking_id == booking.id


def test_rolled_back_admission_publishes_nothing(ledger, recorder, django_capture_on_commit_callbacks):
    _confirm(ledger, ledger.create_reservation(make_request()), "pi_1")

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        with pytest.raises(AvailabilityConflictError):
            ledger.create_reservation(make_request())

    assert callbacks == []
