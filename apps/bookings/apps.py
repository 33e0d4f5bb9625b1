from django.apps import AppConfig  # type: ignore


class BookingsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.bookings"
    label = "bookings"
    verbose_name = "Bookings"

    def ready(self):
        from shared.application.message_bus import message_bus

        from .handlers import register_event_handlers

        register_event_handlers(message_bus)
