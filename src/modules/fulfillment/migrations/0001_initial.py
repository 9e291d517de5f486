import decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import uuid6
from django.db import migrations, models


def _base_fields():
    return [
        (
            "id",
            models.UUIDField(
                default=uuid6.uuid7,
                editable=False,
                primary_key=True,
                serialize=False,
            ),
        ),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


ITEM_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("ordered", "Ordered from supplier"),
    ("in_transit", "In transit"),
    ("arrived_israel", "Arrived in Israel"),
    ("shipped_to_customer", "Shipped to customer"),
    ("delivered", "Delivered"),
    ("cancelled", "Cancelled"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="FulfillmentSettings",
            fields=_base_fields()
            + [
                (
                    "minimum_order_amount",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=10,
                        validators=[
                            django.core.validators.MinValueValidator(
                                decimal.Decimal("0")
                            )
                        ],
                    ),
                ),
                ("minimum_item_count", models.PositiveIntegerField()),
                (
                    "staleness_days",
                    models.PositiveIntegerField(
                        validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                (
                    "critical_staleness_days",
                    models.PositiveIntegerField(
                        validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
            ],
            options={
                "db_table": "fulfillment_settings",
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=_base_fields()
            + [
                (
                    "order_number",
                    models.CharField(editable=False, max_length=20, unique=True),
                ),
                (
                    "customer_reference",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("in_progress", "In progress"),
                            ("ready_to_ship", "Ready to ship"),
                            ("shipped", "Shipped"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "legacy_status",
                    models.CharField(blank=True, default="", max_length=40),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Awaiting payment"),
                            ("hold", "Credit hold"),
                            ("ready_to_charge", "Ready to charge"),
                            ("charged", "Charged"),
                            ("cancelled", "Cancelled"),
                            ("failed", "Failed"),
                            ("partial_refund", "Partial refund"),
                            ("full_refund", "Full refund"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "subtotal",
                    models.DecimalField(
                        decimal_places=2, default=decimal.Decimal("0.00"), max_digits=10
                    ),
                ),
                (
                    "shipping_cost",
                    models.DecimalField(
                        decimal_places=2, default=decimal.Decimal("0.00"), max_digits=10
                    ),
                ),
                (
                    "total_amount",
                    models.DecimalField(
                        decimal_places=2, default=decimal.Decimal("0.00"), max_digits=10
                    ),
                ),
                ("completion_percentage", models.PositiveSmallIntegerField(default=0)),
                ("needs_attention", models.BooleanField(default=False)),
                ("all_items_delivered", models.BooleanField(default=False)),
                ("has_active_items", models.BooleanField(default=True)),
                (
                    "cancelled_at",
                    models.DateTimeField(blank=True, default=None, null=True),
                ),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "idempotency_key",
                    models.CharField(blank=True, max_length=255, null=True, unique=True),
                ),
            ],
            options={
                "db_table": "fulfillment_orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="ff_orders_status_idx"),
                    models.Index(fields=["-created_at"], name="ff_orders_created_idx"),
                    models.Index(
                        fields=["needs_attention"], name="ff_orders_attention_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=_base_fields()
            + [
                ("name", models.CharField(max_length=255)),
                ("supplier", models.CharField(blank=True, default="", max_length=120)),
                (
                    "quantity",
                    models.PositiveIntegerField(
                        default=1,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=10)),
                (
                    "subtotal",
                    models.DecimalField(
                        decimal_places=2, editable=False, max_digits=10
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=ITEM_STATUS_CHOICES, default="pending", max_length=24
                    ),
                ),
                (
                    "status_changed_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "stuck_flagged_at",
                    models.DateTimeField(blank=True, default=None, null=True),
                ),
                ("override_locked", models.BooleanField(default=False)),
                (
                    "override_status",
                    models.CharField(blank=True, default="", max_length=24),
                ),
                ("override_reason", models.TextField(blank=True, default="")),
                (
                    "override_set_by",
                    models.CharField(blank=True, default="", max_length=150),
                ),
                (
                    "override_set_at",
                    models.DateTimeField(blank=True, default=None, null=True),
                ),
                ("cancelled", models.BooleanField(default=False)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                (
                    "cancelled_at",
                    models.DateTimeField(blank=True, default=None, null=True),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="fulfillment.order",
                    ),
                ),
            ],
            options={
                "db_table": "fulfillment_order_items",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["status", "supplier"],
                        name="ff_items_status_supplier_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(quantity__gte=1),
                        name="ff_order_items_quantity_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ItemStatusHistory",
            fields=_base_fields()
            + [
                (
                    "old_status",
                    models.CharField(
                        blank=True,
                        choices=ITEM_STATUS_CHOICES,
                        max_length=24,
                        null=True,
                    ),
                ),
                (
                    "new_status",
                    models.CharField(choices=ITEM_STATUS_CHOICES, max_length=24),
                ),
                ("actor", models.CharField(max_length=150)),
                (
                    "notes",
                    models.TextField(
                        blank=True,
                        default="",
                        validators=[django.core.validators.MaxLengthValidator(500)],
                    ),
                ),
                ("is_manual_override", models.BooleanField(default=False)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="status_history",
                        to="fulfillment.orderitem",
                    ),
                ),
            ],
            options={
                "db_table": "fulfillment_item_status_history",
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(
                        fields=["item", "-created_at"],
                        name="ff_ish_item_created_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderTimelineEntry",
            fields=_base_fields()
            + [
                ("message", models.TextField()),
                ("actor", models.CharField(max_length=150)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="timeline",
                        to="fulfillment.order",
                    ),
                ),
            ],
            options={
                "db_table": "fulfillment_order_timeline",
                "ordering": ["-created_at", "-id"],
            },
        ),
    ]
