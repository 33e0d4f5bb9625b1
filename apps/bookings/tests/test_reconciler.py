"""Tests for payment initiation and reconciliation."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
import stripe

from apps.bookings.application.command_handlers import (
    CancelReservationCommand,
    CancelReservationHandler,
    ConfirmReservationCommand,
    ConfirmReservationHandler,
    CreateReservationCommand,
    CreateReservationHandler,
)
from apps.bookings.application.ledger import BookingLedger
from apps.bookings.application.reconciler import PaymentReconciler
from apps.bookings.domain.entities import BookingStatus, CancellationReason, PaymentStatus
from apps.bookings.domain.errors import (
    AvailabilityConflictError,
    BookingNotFoundError,
    GatewayError,
    InvalidTransitionError,
    PaymentNotSuccessfulError,
)
from apps.payments.gateway import PaymentOutcome
from apps.payments.stripe_gateway import StripePaymentGateway

from .fakes import FakePaymentGateway, make_request


def _initiate(ledger, reconciler, **overrides):
    booking = ledger.create_reservation(make_request(**overrides))
    return reconciler.initiate_payment(booking, "pm_card_visa")


# ===== Initiation =====

def test_immediate_success_confirms_booking(ledger, reconciler, gateway):
    initiation = _initiate(ledger, reconciler)

    booking = initiation.booking
    assert initiation.outcome == PaymentOutcome.SUCCEEDED
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.COMPLETED
    assert booking.external_payment_ref == initiation.external_payment_ref
    assert booking.external_payer_ref == initiation.external_payer_ref
    assert initiation.client_secret == f"{initiation.external_payment_ref}_secret"

    (charge,) = gateway.calls_to("charge_now")
    assert charge[3:] == (Decimal("100.00"), "INR")


def test_pending_charge_leaves_booking_pending(ledger, reconciler, gateway):
    gateway.charge_outcome = PaymentOutcome.PENDING

    initiation = _initiate(ledger, reconciler)

    assert initiation.booking.status == BookingStatus.PENDING
    assert initiation.booking.payment_status == PaymentStatus.PENDING_PAYMENT
    assert initiation.booking.external_payment_ref is not None


def test_declined_charge_cancels_booking(ledger, reconciler, gateway):
    gateway.charge_outcome = PaymentOutcome.FAILED

    initiation = _initiate(ledger, reconciler)

    assert initiation.booking.status == BookingStatus.CANCELLED
    assert initiation.booking.cancellation_reason == CancellationReason.PAYMENT_FAILED


def test_gateway_failure_leaves_booking_pending(ledger, reconciler, gateway):
    booking = ledger.create_reservation(make_request())
    gateway.unavailable = True

    with pytest.raises(GatewayError):
        reconciler.initiate_payment(booking, "pm_card_visa")

    stored = ledger.find_by_id(booking.id)
    assert stored.status == BookingStatus.PENDING
    assert stored.external_payment_ref is None


@pytest.mark.parametrize("payment_intent", [{"id": "pi_declined"}, None])
def test_declined_card_cancels_and_releases_held_dates(repository, clock, payment_intent):
    ledger = BookingLedger(repository, hold_pending=True, clock=clock)
    reconciler = PaymentReconciler(ledger, StripePaymentGateway("sk_test_dummy"))
    booking = ledger.create_reservation(make_request())
    error = {"type": "card_error", "code": "card_declined"}
    if payment_intent:
        error["payment_intent"] = payment_intent
    declined = stripe.CardError("Your card was declined.", None, "card_declined", json_body={"error": error})

    with mock.patch("stripe.Customer.create", return_value={"id": "cus_1"}), \
            mock.patch("stripe.PaymentIntent.create", side_effect=declined):
        initiation = reconciler.initiate_payment(booking, "pm_card_chargeDeclined")

    stored = ledger.find_by_id(booking.id)
    assert initiation.outcome == PaymentOutcome.FAILED
    assert stored.status == BookingStatus.CANCELLED
    assert stored.payment_status == PaymentStatus.FAILED
    assert stored.external_payment_ref == (payment_intent or {}).get("id")
    assert ledger.checker.is_available(booking.resource_id, booking.dates)


def test_charge_on_settled_booking_is_logged(ledger, reconciler, gateway):
    booking = ledger.create_reservation(make_request())
    ledger.transition_payment_status(booking.id, PaymentStatus.FAILED)

    with mock.patch("apps.bookings.application.reconciler.logger") as log:
        with pytest.raises(InvalidTransitionError):
            reconciler.initiate_payment(booking, "pm_card_visa")

    assert len(gateway.calls_to("charge_now")) == 1
    (message,) = log.error.call_args.args
    assert "pi_2" in message
    assert str(booking.id) in message


# ===== Reconciliation =====

def test_reconcile_success_is_idempotent(ledger, reconciler, gateway):
    gateway.charge_outcome = PaymentOutcome.PENDING
    ref = _initiate(ledger, reconciler).external_payment_ref
    gateway.settle(ref, PaymentOutcome.SUCCEEDED)

    first = reconciler.reconcile_by_external_ref(ref)
    second = reconciler.reconcile_by_external_ref(ref)

    assert first.status == second.status == BookingStatus.CONFIRMED
    assert first.version == second.version
    stats = ledger.stats()
    assert stats.confirmed_bookings == 1
    assert stats.total_revenue == Decimal("100.00")


def test_reconcile_still_pending_is_not_successful(ledger, reconciler, gateway):
    gateway.charge_outcome = PaymentOutcome.PENDING
    ref = _initiate(ledger, reconciler).external_payment_ref

    with pytest.raises(PaymentNotSuccessfulError):
        reconciler.reconcile_by_external_ref(ref)

    assert ledger.find_by_external_payment_ref(ref).status == BookingStatus.PENDING


def test_reconcile_failure_cancels_and_reports(ledger, reconciler, gateway):
    gateway.charge_outcome = PaymentOutcome.PENDING
    ref = _initiate(ledger, reconciler).external_payment_ref
    gateway.settle(ref, PaymentOutcome.FAILED)

    with pytest.raises(PaymentNotSuccessfulError):
        reconciler.reconcile_by_external_ref(ref)
    with pytest.raises(PaymentNotSuccessfulError):
        reconciler.reconcile_by_external_ref(ref)

    booking = ledger.find_by_external_payment_ref(ref)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.payment_status == PaymentStatus.FAILED


def test_reconcile_unknown_reference(reconciler):
    with pytest.raises(BookingNotFoundError):
        reconciler.reconcile_by_external_ref("pi_missing")


def test_settled_booking_skips_gateway(ledger, reconciler, gateway):
    ref = _initiate(ledger, reconciler).external_payment_ref

    reconciler.reconcile_by_external_ref(ref)

    assert gateway.calls_to("get_outcome") == []


# ===== Sweep =====

def test_sweep_settles_and_expires_pending_payments(ledger, reconciler, gateway, clock):
    gateway.charge_outcome = PaymentOutcome.PENDING
    paid = _initiate(ledger, reconciler, resource_id="room-1")
    declined = _initiate(ledger, reconciler, resource_id="room-2")
    abandoned = ledger.create_reservation(make_request(resource_id="room-3"))
    clock.advance(timedelta(hours=1))
    waiting = _initiate(ledger, reconciler, resource_id="room-4")

    gateway.settle(paid.external_payment_ref, PaymentOutcome.SUCCEEDED)
    gateway.settle(declined.external_payment_ref, PaymentOutcome.FAILED)

    report = reconciler.sweep_pending_payments(timedelta(minutes=30))

    assert report.to_dict() == {"completed": 1, "failed": 2, "pending": 1, "errors": 0}
    assert set(report.booking_ids) == {paid.booking.id, declined.booking.id, abandoned.id}
    assert ledger.find_by_id(paid.booking.id).status == BookingStatus.CONFIRMED
    assert ledger.find_by_id(declined.booking.id).status == BookingStatus.CANCELLED
    assert ledger.find_by_id(abandoned.id).payment_status == PaymentStatus.FAILED
    assert ledger.find_by_id(waiting.booking.id).status == BookingStatus.PENDING


def test_sweep_counts_gateway_errors_and_continues(ledger, reconciler, gateway):
    gateway.charge_outcome = PaymentOutcome.PENDING
    _initiate(ledger, reconciler, resource_id="room-1")
    gateway.unavailable = True

    report = reconciler.sweep_pending_payments(timedelta(minutes=30))

    assert report.errors == 1
    assert report.completed == report.failed == 0


# ===== Command handlers =====

@pytest.fixture
def handlers(ledger, reconciler):
    return (
        CreateReservationHandler(ledger, reconciler),
        ConfirmReservationHandler(reconciler),
        CancelReservationHandler(ledger),
    )


def _command(**overrides):
    request = make_request()
    fields = {
        "requester_id": request.requester_id,
        "resource_id": request.resource_id,
        "check_in": request.start_date,
        "check_out": request.end_date,
        "guests_count": request.guests_count,
        "amount": request.amount,
        "payment_method_ref": "pm_card_visa",
    }
    fields.update(overrides)
    return CreateReservationCommand(**fields)


def test_create_handler_confirms_paid_reservation(handlers):
    create, _, _ = handlers

    result = create.handle(_command())

    assert result.booking.status == BookingStatus.CONFIRMED
    assert result.client_secret is not None


def test_create_handler_reports_declined_payment(handlers, repository, gateway):
    create, _, _ = handlers
    gateway.charge_outcome = PaymentOutcome.FAILED

    with pytest.raises(PaymentNotSuccessfulError):
        create.handle(_command())

    (booking,) = repository.list_by_resource("room-101")
    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancellation_reason == CancellationReason.PAYMENT_FAILED


def test_create_handler_rejects_taken_dates(handlers, repository):
    create, _, _ = handlers
    create.handle(_command())

    with pytest.raises(AvailabilityConflictError):
        create.handle(_command(requester_id="user-2"))

    assert len(repository) == 1


def test_create_handler_reports_lost_race_as_conflict(repository, clock):
    ledger = BookingLedger(repository, clock=clock)
    gateway = FakePaymentGateway(PaymentOutcome.PENDING)
    reconciler = PaymentReconciler(ledger, gateway)
    create = CreateReservationHandler(ledger, reconciler)

    # Both are admitted while unpaid; the first payment to land wins
    first = create.handle(_command())
    gateway.charge_outcome = PaymentOutcome.SUCCEEDED
    second = create.handle(_command(requester_id="user-2"))
    gateway.settle(first.booking.external_payment_ref, PaymentOutcome.SUCCEEDED)

    assert second.booking.status == BookingStatus.CONFIRMED
    with pytest.raises(AvailabilityConflictError):
        ConfirmReservationHandler(reconciler).handle(
            ConfirmReservationCommand(payment_ref=first.booking.external_payment_ref)
        )

    lost = ledger.find_by_id(first.booking.id)
    assert lost.status == BookingStatus.CANCELLED
    assert lost.cancellation_reason == CancellationReason.DATES_TAKEN


def test_cancel_handler(handlers):
    create, _, cancel = handlers
    booking = create.handle(_command()).booking

    cancelled = cancel.handle(CancelReservationCommand(booking_id=booking.id))

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation_reason == CancellationReason.REQUESTED
