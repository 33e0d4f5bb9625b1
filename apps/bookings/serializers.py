"""Serializers for the booking domain."""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from rest_framework import serializers  # type: ignore

from shared.domain.value_objects import SUPPORTED_CURRENCIES


class BookingCreateSerializer(serializers.Serializer):
    """Reservation request from a client."""

    requester_id = serializers.CharField(max_length=64)
    resource_id = serializers.CharField(max_length=64)
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    guests_count = serializers.IntegerField(min_value=1, default=1)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    currency = serializers.ChoiceField(choices=SUPPORTED_CURRENCIES, required=False)
    payment_method_id = serializers.CharField(max_length=255)

    def validate(self, attrs):  # type: ignore
        if attrs["check_in"] >= attrs["check_out"]:
            raise serializers.ValidationError({"check_out": "Check-out must be after check-in."})
        attrs.setdefault("currency", settings.PAYMENT_CURRENCY)
        return attrs


class BookingConfirmSerializer(serializers.Serializer):
    payment_intent_id = serializers.CharField(max_length=255)


class BookingSerializer(serializers.Serializer):
    """Read representation of a booking."""

    id = serializers.UUIDField()
    resource_id = serializers.CharField()
    requester_id = serializers.CharField()
    check_in = serializers.DateField(source="dates.start_date")
    check_out = serializers.DateField(source="dates.end_date")
    nights = serializers.IntegerField()
    guests_count = serializers.IntegerField()
    amount = serializers.DecimalField(source="amount.amount", max_digits=12, decimal_places=2)
    currency = serializers.CharField(source="amount.currency")
    status = serializers.CharField(source="status.value")
    payment_status = serializers.CharField(source="payment_status.value")
    cancellation_reason = serializers.SerializerMethodField()
    external_payment_ref = serializers.CharField(allow_null=True)
    cancelled_at = serializers.DateTimeField(allow_null=True)
    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField()

    def get_cancellation_reason(self, obj):  # type: ignore
        return obj.cancellation_reason.value if obj.cancellation_reason else None


class BookingStatsSerializer(serializers.Serializer):
    total_bookings = serializers.IntegerField()
    confirmed_bookings = serializers.IntegerField()
    pending_bookings = serializers.IntegerField()
    cancelled_bookings = serializers.IntegerField()
    total_revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
