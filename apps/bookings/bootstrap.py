"""
Service wiring for the bookings app

One set of services per process: the ledger's per-room locks only
serialize writers that share the same ledger instance.
"""

from dataclasses import dataclass
import logging
import threading

from django.conf import settings  # type: ignore
from django.core.exceptions import ImproperlyConfigured  # type: ignore

from apps.bookings.application.command_handlers import (
    CancelReservationHandler,
    ConfirmReservationHandler,
    CreateReservationHandler,
)
from apps.bookings.application.ledger import BookingLedger
from apps.bookings.application.reconciler import PaymentReconciler
from apps.bookings.repositories import (
    AbstractBookingRepository,
    DjangoBookingRepository,
    InMemoryBookingRepository,
)
from apps.payments.gateway import PaymentGateway
from apps.payments.stripe_gateway import StripePaymentGateway

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_services = None


@dataclass
class BookingServices:
    ledger: BookingLedger
    reconciler: PaymentReconciler
    create_reservation: CreateReservationHandler
    confirm_reservation: ConfirmReservationHandler
    cancel_reservation: CancelReservationHandler


def build_repository(kind: str, bus=None) -> AbstractBookingRepository:
    if kind == 'django':
        return DjangoBookingRepository(bus)
    if kind == 'memory':
        return InMemoryBookingRepository(bus)
    raise ImproperlyConfigured(f"Unknown BOOKINGS['REPOSITORY'] backend: {kind!r}")


def bootstrap(
    *,
    repository: AbstractBookingRepository | None = None,
    gateway: PaymentGateway | None = None,
    bus=None,
) -> BookingServices:
    """Build the booking services from settings, overriding any collaborator given"""
    options = settings.BOOKINGS

    if repository is None:
        repository = build_repository(options.get('REPOSITORY', 'django'), bus)
    if gateway is None:
        gateway = StripePaymentGateway(
            settings.STRIPE_SECRET_KEY,
            return_url=settings.PAYMENT_RETURN_URL,
        )

    ledger = BookingLedger(
        repository,
        hold_pending=options.get('HOLD_PENDING', False),
        transition_retries=options.get('TRANSITION_RETRIES', 3),
    )
    reconciler = PaymentReconciler(ledger, gateway)

    logger.debug(
        f"Booking services ready ({repository.__class__.__name__}, "
        f"{gateway.__class__.__name__}, hold_pending={ledger.checker.hold_pending})"
    )
    return BookingServices(
        ledger=ledger,
        reconciler=reconciler,
        create_reservation=CreateReservationHandler(ledger, reconciler),
        confirm_reservation=ConfirmReservationHandler(reconciler),
        cancel_reservation=CancelReservationHandler(ledger),
    )


def get_services() -> BookingServices:
    global _services
    with _lock:
        if _services is None:
            _services = bootstrap()
        return _services


def set_services(services: BookingServices | None) -> None:
    """Replace the process-wide services (None resets to settings on next use)"""
    global _services
    with _lock:
        _services = services
