import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("roomstay")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Reconcile unsettled payments and fail abandoned ones - every 5 minutes
    "reconcile-pending-payments": {
        "task": "bookings.reconcile_pending_payments",
        "schedule": 300.0,
        "options": {"expires": 240},
    },
}
