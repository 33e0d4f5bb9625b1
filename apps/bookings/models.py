"""Persistence models for room reservations."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Room(models.Model):
    """
    Lock row for a bookable room.

    Rooms are owned by another system; this table only exists so that
    writers can serialize on ``SELECT ... FOR UPDATE`` per room.
    """

    resource_id = models.CharField(max_length=64, primary_key=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Room lock")
        verbose_name_plural = _("Room locks")

    def __str__(self) -> str:
        return self.resource_id


class Booking(models.Model):
    """Reservation of a room by a requester for a date range."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        CONFIRMED = "confirmed", _("Confirmed")
        CANCELLED = "cancelled", _("Cancelled")

    class PaymentStatus(models.TextChoices):
        PENDING_PAYMENT = "pending_payment", _("Pending payment")
        COMPLETED = "completed", _("Completed")
        FAILED = "failed", _("Failed")

    class CancellationReason(models.TextChoices):
        REQUESTED = "requested", _("Requested")
        PAYMENT_FAILED = "payment_failed", _("Payment failed")
        DATES_TAKEN = "dates_taken", _("Dates taken")

    id = models.UUIDField(primary_key=True, editable=False)
    resource_id = models.CharField(max_length=64, db_index=True)
    requester_id = models.CharField(max_length=64, db_index=True)
    check_in = models.DateField()
    check_out = models.DateField()
    guests_count = models.PositiveSmallIntegerField(default=1)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="INR")
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING_PAYMENT,
    )
    external_payment_ref = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text=_("Payment intent id at the payment gateway."),
    )
    external_payer_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text=_("Customer id at the payment gateway."),
    )
    cancellation_reason = models.CharField(
        max_length=20,
        choices=CancellationReason.choices,
        blank=True,
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(check_out__gt=models.F("check_in")),
                name="booking_valid_dates",
            ),
            models.CheckConstraint(
                condition=models.Q(guests_count__gte=1),
                name="booking_positive_guests",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="booking_non_negative_amount",
            ),
            models.CheckConstraint(
                condition=~models.Q(status="confirmed") | models.Q(payment_status="completed"),
                name="booking_confirmed_requires_payment",
            ),
            models.CheckConstraint(
                condition=~models.Q(payment_status="failed") | models.Q(status="cancelled"),
                name="booking_failed_payment_cancelled",
            ),
        ]
        indexes = [
            models.Index(fields=["resource_id", "check_in", "check_out"], name="booking_room_dates_idx"),
            models.Index(fields=["requester_id", "-created_at"], name="booking_requester_idx"),
            models.Index(fields=["payment_status", "created_at"], name="booking_payment_age_idx"),
            models.Index(fields=["status"], name="booking_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking {self.id} for room {self.resource_id}"
