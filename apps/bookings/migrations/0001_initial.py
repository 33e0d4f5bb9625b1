from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Room",
            fields=[
                ("resource_id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name": "Room lock",
                "verbose_name_plural": "Room locks",
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.UUIDField(editable=False, primary_key=True, serialize=False)),
                ("resource_id", models.CharField(db_index=True, max_length=64)),
                ("requester_id", models.CharField(db_index=True, max_length=64)),
                ("check_in", models.DateField()),
                ("check_out", models.DateField()),
                ("guests_count", models.PositiveSmallIntegerField(default=1)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="INR", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending_payment", "Pending payment"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending_payment",
                        max_length=20,
                    ),
                ),
                (
                    "external_payment_ref",
                    models.CharField(
                        blank=True,
                        help_text="Payment intent id at the payment gateway.",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "external_payer_ref",
                    models.CharField(
                        blank=True,
                        help_text="Customer id at the payment gateway.",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "cancellation_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("requested", "Requested"),
                            ("payment_failed", "Payment failed"),
                            ("dates_taken", "Dates taken"),
                        ],
                        max_length=20,
                    ),
                ),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField()),
                ("updated_at", models.DateTimeField()),
            ],
            options={
                "verbose_name": "Booking",
                "verbose_name_plural": "Bookings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["resource_id", "check_in", "check_out"], name="booking_room_dates_idx"),
                    models.Index(fields=["requester_id", "-created_at"], name="booking_requester_idx"),
                    models.Index(fields=["payment_status", "created_at"], name="booking_payment_age_idx"),
                    models.Index(fields=["status"], name="booking_status_idx"),
                ],
                "constraints": [
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
                ],
            },
        ),
    ]
