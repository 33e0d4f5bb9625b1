"""API views for the booking domain."""

from __future__ import annotations

import logging

import stripe
import structlog
from django.conf import settings  # type: ignore
from django.db import connection  # type: ignore
from django.http import JsonResponse  # type: ignore
from django.views.decorators.csrf import csrf_exempt  # type: ignore
from django.views.decorators.http import require_http_methods  # type: ignore
from rest_framework import status, viewsets  # type: ignore
from rest_framework.decorators import action, api_view, authentication_classes, permission_classes  # type: ignore
from rest_framework.exceptions import ValidationError  # type: ignore
from rest_framework.permissions import AllowAny  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler as drf_exception_handler  # type: ignore

from .application.command_handlers import (
    CancelReservationCommand,
    ConfirmReservationCommand,
    CreateReservationCommand,
)
from .bootstrap import get_services
from .domain.errors import (
    AvailabilityConflictError,
    BookingNotFoundError,
    BookingValidationError,
    DomainError,
    ErrorCode,
    PaymentNotSuccessfulError,
)
from .serializers import (
    BookingConfirmSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    BookingStatsSerializer,
)

logger = logging.getLogger(__name__)
event_logger = structlog.get_logger(__name__)

HTTP_STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.AVAILABILITY_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_NOT_SUCCESSFUL: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.BOOKING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.PERSISTENCE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.GATEWAY_ERROR: status.HTTP_502_BAD_GATEWAY,
}


def _error_body(code: str, message: str, fields=None) -> dict:
    error = {"code": code, "message": message}
    if fields:
        error["fields"] = fields
    return {"success": False, "error": error}


def domain_exception_handler(exc, context):
    """Render domain errors and DRF errors in one envelope."""
    if isinstance(exc, DomainError):
        http_status = HTTP_STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if http_status >= 500:
            logger.error(f"{exc.code.value} while handling {context.get('view').__class__.__name__}: "
                         f"{getattr(exc, 'detail', '')}")
        fields = exc.errors if isinstance(exc, BookingValidationError) else None
        return Response(_error_body(exc.code.value, exc.message, fields), status=http_status)

    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, ValidationError):
        response.data = _error_body(
            ErrorCode.VALIDATION_ERROR.value,
            "Invalid reservation request",
            response.data,
        )
    else:
        detail = response.data.get("detail", "") if isinstance(response.data, dict) else response.data
        response.data = _error_body(getattr(exc, "default_code", "error").upper(), str(detail))
    return response


def _ok(data, http_status=status.HTTP_200_OK) -> Response:
    return Response({"success": True, "data": data}, status=http_status)


class BookingViewSet(viewsets.ViewSet):
    """Viewset for creating, confirming and querying reservations."""

    def create(self, request):  # type: ignore
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = get_services().create_reservation.handle(CreateReservationCommand(
            requester_id=data["requester_id"],
            resource_id=data["resource_id"],
            check_in=data["check_in"],
            check_out=data["check_out"],
            guests_count=data["guests_count"],
            amount=data["amount"],
            payment_method_ref=data["payment_method_id"],
            currency=data["currency"],
        ))

        return _ok(
            {
                "booking": BookingSerializer(result.booking).data,
                "client_secret": result.client_secret,
            },
            status.HTTP_201_CREATED,
        )

    def retrieve(self, request, pk=None):  # type: ignore
        booking = get_services().ledger.find_by_id(pk)
        return _ok(BookingSerializer(booking).data)

    @action(detail=False, methods=["post"])
    def confirm(self, request):  # type: ignore
        serializer = BookingConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = get_services().confirm_reservation.handle(
            ConfirmReservationCommand(payment_ref=serializer.validated_data["payment_intent_id"])
        )
        return _ok(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking = get_services().cancel_reservation.handle(CancelReservationCommand(booking_id=pk))
        return _ok(BookingSerializer(booking).data)

    @action(detail=False, methods=["get"], url_path=r"user/(?P<requester_id>[^/.]+)")
    def by_requester(self, request, requester_id=None):  # type: ignore
        bookings = get_services().ledger.list_by_requester(requester_id)
        return _ok(BookingSerializer(bookings, many=True).data)

    @action(detail=False, methods=["get"], url_path=r"room/(?P<resource_id>[^/.]+)")
    def by_room(self, request, resource_id=None):  # type: ignore
        bookings = get_services().ledger.list_by_resource(resource_id)
        return _ok(BookingSerializer(bookings, many=True).data)

    @action(detail=False, methods=["get"], url_path="stats/overview")
    def stats(self, request):  # type: ignore
        stats = get_services().ledger.stats()
        return _ok(BookingStatsSerializer(stats).data)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def stripe_webhook(request):
    """
    Stripe webhook receiver.

    payment_intent.succeeded and payment_intent.payment_failed trigger the
    same reconciliation as the confirm endpoint. Unknown payment intents
    are acknowledged so Stripe stops retrying them.
    """
    endpoint_secret = settings.STRIPE_WEBHOOK_SECRET
    if not endpoint_secret:
        event_logger.error("stripe_webhook.not_configured")
        return Response(
            _error_body(ErrorCode.GATEWAY_ERROR.value, "Webhook secret not configured"),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    try:
        event = stripe.Webhook.construct_event(
            request.body,
            request.headers.get("Stripe-Signature", ""),
            endpoint_secret,
        )
    except (ValueError, stripe.SignatureVerificationError) as exc:
        event_logger.warning("stripe_webhook.invalid", error=str(exc))
        return Response(
            _error_body(ErrorCode.VALIDATION_ERROR.value, "Invalid webhook signature"),
            status=status.HTTP_400_BAD_REQUEST,
        )

    event_type = event["type"]
    if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        event_logger.info("stripe_webhook.ignored", event_type=event_type)
        return Response({"received": True})

    payment_ref = event["data"]["object"]["id"]
    try:
        booking = get_services().confirm_reservation.handle(
            ConfirmReservationCommand(payment_ref=payment_ref)
        )
        event_logger.info(
            "stripe_webhook.reconciled",
            event_type=event_type,
            payment_ref=payment_ref,
            booking_id=str(booking.id),
            status=booking.status.value,
        )
    except BookingNotFoundError:
        event_logger.warning("stripe_webhook.unknown_payment", payment_ref=payment_ref)
    except PaymentNotSuccessfulError:
        event_logger.info("stripe_webhook.not_successful", payment_ref=payment_ref)
    except AvailabilityConflictError:
        event_logger.warning("stripe_webhook.dates_taken", payment_ref=payment_ref)

    return Response({"received": True})


@csrf_exempt
@require_http_methods(["GET"])
def healthz(request):
    """Health check endpoint for Docker containers"""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except Exception as exc:  # pragma: no cover
        event_logger.error("healthz.fail", error=str(exc))
        return JsonResponse({"status": "unhealthy", "error": str(exc)}, status=503)
    return JsonResponse({"status": "healthy", "database": "connected"}, status=200)
