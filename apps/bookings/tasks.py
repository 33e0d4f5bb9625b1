"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task  # type: ignore
from django.conf import settings  # type: ignore

from .bootstrap import get_services

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run through Celery Beat)
# ============================================================================

@shared_task(name="bookings.reconcile_pending_payments")
def reconcile_pending_payments() -> dict[str, int]:
    """
    Reconcile bookings whose payment is not settled yet.

    Asks the payment gateway for the current outcome of every pending
    payment. Successful payments confirm their booking, failed ones cancel
    it, and payments still unsettled after the configured timeout are
    failed so their dates are released.

    Runs every 5 minutes through Celery Beat.

    Returns:
        dict: {"completed": n, "failed": n, "pending": n, "errors": n}
    """
    timeout = timedelta(minutes=settings.BOOKINGS.get("PENDING_PAYMENT_TIMEOUT_MINUTES", 30))
    report = get_services().reconciler.sweep_pending_payments(timeout)

    if report.completed or report.failed:
        logger.info(
            f"Reconciled {report.completed} completed and {report.failed} failed payments"
        )
    return report.to_dict()
