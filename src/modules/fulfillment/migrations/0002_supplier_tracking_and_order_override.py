from django.db import migrations, models

ORDER_STATUS_CHOICES = [
    ("awaiting_payment", "Awaiting payment"),
    ("pending", "Pending"),
    ("in_progress", "In progress"),
    ("ready_to_ship", "Ready to ship"),
    ("shipped", "Shipped"),
    ("delivered", "Delivered"),
    ("cancelled", "Cancelled"),
]


def _text(max_length):
    return models.CharField(blank=True, default="", max_length=max_length)


class Migration(migrations.Migration):

    dependencies = [
        ("fulfillment", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="order",
            name="status",
            field=models.CharField(
                choices=ORDER_STATUS_CHOICES, default="pending", max_length=20
            ),
        ),
        migrations.AddField(
            model_name="order",
            name="status_override",
            field=models.CharField(
                blank=True, choices=ORDER_STATUS_CHOICES, default="", max_length=20
            ),
        ),
        migrations.AddField(
            model_name="order",
            name="status_override_reason",
            field=models.TextField(blank=True, default=""),
        ),
        migrations.AddField(
            model_name="order",
            name="status_override_by",
            field=_text(150),
        ),
        migrations.AddField(
            model_name="order",
            name="status_override_at",
            field=models.DateTimeField(blank=True, default=None, null=True),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="supplier_order_number",
            field=_text(120),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="supplier_tracking_number",
            field=_text(120),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="actual_cost",
            field=models.DecimalField(
                blank=True, decimal_places=2, default=None, max_digits=10, null=True
            ),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="ordered_from_supplier_at",
            field=models.DateTimeField(blank=True, default=None, null=True),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="israel_tracking_number",
            field=_text(120),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="israel_carrier",
            field=_text(120),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="israel_estimated_arrival",
            field=models.DateField(blank=True, default=None, null=True),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="customer_tracking_number",
            field=_text(120),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="customer_carrier",
            field=_text(120),
        ),
        migrations.AddField(
            model_name="orderitem",
            name="customer_estimated_delivery",
            field=models.DateField(blank=True, default=None, null=True),
        ),
    ]
