"""Event handlers that write the booking audit trail."""

import structlog

from apps.bookings.domain.events import (
    BookingCancelled,
    BookingConfirmed,
    BookingCreated,
    PaymentCompleted,
    PaymentFailed,
    PaymentRefsAttached,
)

audit_logger = structlog.get_logger("roomstay.audit")

EVENT_NAMES = {
    BookingCreated: "booking.created",
    BookingConfirmed: "booking.confirmed",
    BookingCancelled: "booking.cancelled",
    PaymentRefsAttached: "payment.refs_attached",
    PaymentCompleted: "payment.completed",
    PaymentFailed: "payment.failed",
}


def audit_event(event):
    """Log one committed domain event."""
    fields = event.to_dict()
    booking_id = getattr(event, "booking_id", None)
    if booking_id is not None:
        fields["booking_id"] = str(booking_id)

    if isinstance(event, (BookingCreated, BookingConfirmed, BookingCancelled)):
        fields["resource_id"] = event.resource_id
    if isinstance(event, (BookingCreated, BookingConfirmed)):
        fields["dates"] = str(event.dates)
    if isinstance(event, BookingCreated):
        fields["requester_id"] = event.requester_id
    if isinstance(event, (BookingCreated, PaymentCompleted)):
        fields["amount"] = str(event.amount.amount)
        fields["currency"] = event.amount.currency
    if isinstance(event, BookingCancelled):
        fields["reason"] = event.reason
        fields["old_status"] = event.old_status
    if isinstance(event, (BookingConfirmed, PaymentRefsAttached, PaymentCompleted, PaymentFailed)):
        fields["payment_ref"] = event.payment_ref

    event_type = fields.pop("event_type")
    audit_logger.info(EVENT_NAMES.get(type(event), event_type), **fields)


def register_event_handlers(bus):
    for event_type in EVENT_NAMES:
        bus.register_event_handler(event_type, audit_event)
