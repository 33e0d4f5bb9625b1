"""Tests for the shared application building blocks."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

import pytest

from shared.application.locks import KeyedLock
from shared.application.message_bus import MessageBus
from shared.application.uow import InMemoryUnitOfWork
from shared.domain.base import Aggregate, DomainEvent


@dataclass(kw_only=True)
class Pinged(DomainEvent):
    name: str = "ping"


@dataclass(kw_only=True, eq=False)
class Pinger(Aggregate):
    def ping(self):
        self.add_event(Pinged(aggregate_id=self.id))


# ===== KeyedLock =====

def test_keyed_lock_is_reentrant_and_released():
    locks = KeyedLock()

    with locks.hold("room-1"):
        with locks.hold("room-1"):
            assert len(locks) == 1

    assert len(locks) == 0


def test_keyed_lock_serialises_same_key():
    locks = KeyedLock()
    inside = []
    overlaps = []

    def worker():
        with locks.hold("room-1"):
            if inside:
                overlaps.append(True)
            inside.append(True)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
    assert len(locks) == 0


def test_keyed_lock_does_not_block_other_keys():
    locks = KeyedLock()
    acquired = threading.Event()

    def other_key():
        with locks.hold("room-2"):
            acquired.set()

    with locks.hold("room-1"):
        thread = threading.Thread(target=other_key)
        thread.start()
        assert acquired.wait(timeout=1)
        thread.join()


# ===== MessageBus =====

def test_bus_delivers_to_every_handler_once():
    bus = MessageBus()
    received = []
    handler = received.append

    bus.register_event_handler(Pinged, handler)
    bus.register_event_handler(Pinged, handler)
    bus.register_event_handler(Pinged, lambda event: received.append(event.name))
    bus.publish_events([Pinged()])

    assert len(received) == 2
    assert received[1] == "ping"


def test_failing_handler_does_not_stop_others():
    bus = MessageBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.register_event_handler(Pinged, broken)
    bus.register_event_handler(Pinged, received.append)
    bus.publish_events([Pinged()])

    assert len(received) == 1


# ===== Unit of work =====

def test_unit_of_work_publishes_on_success():
    bus = MessageBus()
    received = []
    bus.register_event_handler(Pinged, received.append)
    pinger = Pinger()
    pinger.ping()

    with InMemoryUnitOfWork(bus) as uow:
        uow.collect_events(pinger)
        assert received == []

    assert len(received) == 1
    assert pinger.events == []


def test_unit_of_work_discards_events_on_error():
    bus = MessageBus()
    received = []
    bus.register_event_handler(Pinged, received.append)
    pinger = Pinger()
    pinger.ping()

    with pytest.raises(ValueError):
        with InMemoryUnitOfWork(bus) as uow:
            uow.collect_events(pinger)
            raise ValueError("abort")

    assert received == []
