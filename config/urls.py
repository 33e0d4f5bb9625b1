"""URL configuration for the Roomstay service.

The `urlpatterns` list routes URLs to views. It includes the Django admin,
the booking API router and the payment gateway webhook.
"""
from django.contrib import admin  # type: ignore
from django.urls import path, include  # type: ignore

from apps.bookings.views import healthz, stripe_webhook

# API versioning. v1 is our initial version; future versions can be added here.

urlpatterns = [
    path('admin/', admin.site.urls),
    path('healthz/', healthz, name='healthz'),
    # Application URLs
    path('api/v1/bookings/', include('apps.bookings.urls')),
    # Payment gateway webhooks
    path('webhooks/stripe/', stripe_webhook, name='stripe-webhook'),
]
