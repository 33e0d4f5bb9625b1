"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking, Room


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """
    Read-only view of the ledger.

    Bookings only change through the ledger, which enforces the state
    machine and the room lock; the admin never writes.
    """

    list_display = (
        "id",
        "resource_id",
        "requester_id",
        "status",
        "payment_status",
        "check_in",
        "check_out",
        "amount",
        "currency",
        "created_at",
    )
    list_filter = ("status", "payment_status", "cancellation_reason", "check_in")
    search_fields = ("id", "resource_id", "requester_id", "external_payment_ref")
    ordering = ("-created_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("resource_id", "created_at")
    search_fields = ("resource_id",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
