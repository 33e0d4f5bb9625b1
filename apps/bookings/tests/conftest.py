from __future__ import annotations

import pytest

from apps.bookings.application.ledger import BookingLedger
from apps.bookings.application.reconciler import PaymentReconciler
from apps.bookings.repositories import InMemoryBookingRepository
from shared.application.message_bus import MessageBus

from .fakes import EventRecorder, FakePaymentGateway, TickingClock


@pytest.fixture
def bus():
    return MessageBus()


@pytest.fixture
def recorder(bus):
    from apps.bookings.handlers import EVENT_NAMES

    recorder = EventRecorder()
    for event_type in EVENT_NAMES:
        bus.register_event_handler(event_type, recorder)
    return recorder


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def repository(bus):
    return InMemoryBookingRepository(bus)


@pytest.fixture
def ledger(repository, clock):
    return BookingLedger(repository, clock=clock)


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def reconciler(ledger, gateway):
    return PaymentReconciler(ledger, gateway)
