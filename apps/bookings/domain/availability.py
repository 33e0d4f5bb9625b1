"""
Availability Checker

Decides whether a room can admit a new reservation for a date range.
This is the first line of defense against double bookings; the ledger
calls it inside the same unit of work (and under the same room lock) as
the write that depends on its answer.

Only CONFIRMED bookings block a room. With ``hold_pending`` a PENDING
booking still awaiting payment blocks as well (soft lock).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List
from uuid import UUID

from apps.bookings.domain.entities import Booking, BookingStatus
from shared.domain.value_objects import DateRange

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from apps.bookings.repositories import AbstractBookingRepository


class AvailabilityChecker:
    """Admission check for new reservations of a room."""

    def __init__(self, repository: "AbstractBookingRepository", *, hold_pending: bool = False):
        self._repository = repository
        self.hold_pending = hold_pending

    def conflicts(
        self,
        resource_id: str,
        dates: DateRange,
        *,
        exclude_booking_id: UUID | None = None,
        hold_pending: bool | None = None,
    ) -> List[Booking]:
        """Bookings on the room that block the given dates."""
        hold = self.hold_pending if hold_pending is None else hold_pending

        statuses = {BookingStatus.CONFIRMED}
        if hold:
            statuses.add(BookingStatus.PENDING)

        candidates = self._repository.find_overlapping(
            resource_id,
            dates,
            statuses=statuses,
            exclude_booking_id=exclude_booking_id,
        )
        return [
            booking for booking in candidates
            if booking.blocks_dates(hold) and booking.dates.overlaps_with(dates)
        ]

    def is_available(
        self,
        resource_id: str,
        dates: DateRange,
        *,
        exclude_booking_id: UUID | None = None,
        hold_pending: bool | None = None,
    ) -> bool:
        """
        True iff no blocking booking overlaps ``dates`` on the room

        Adjacent ranges never conflict: a stay ending on the 5th and one
        starting on the 5th can both be admitted.
        """
        return not self.conflicts(
            resource_id,
            dates,
            exclude_booking_id=exclude_booking_id,
            hold_pending=hold_pending,
        )
