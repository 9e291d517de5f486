import django_filters
from django.utils import timezone

from modules.fulfillment import aggregation
from modules.fulfillment.constants import OrderStatus, PaymentStatus
from modules.fulfillment.dtos import OrderSnapshot
from modules.fulfillment.models import Order
from modules.fulfillment.policy import load_policy


class OrderFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=OrderStatus.choices)
    payment_status = django_filters.ChoiceFilter(choices=PaymentStatus.choices)
    needs_attention = django_filters.BooleanFilter(method="filter_needs_attention")
    has_active_items = django_filters.BooleanFilter()
    customer_reference = django_filters.CharFilter(lookup_expr="iexact")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")
    min_total = django_filters.NumberFilter(
        field_name="total_amount", lookup_expr="gte"
    )
    max_total = django_filters.NumberFilter(
        field_name="total_amount", lookup_expr="lte"
    )

    class Meta:
        model = Order
        fields = [
            "status",
            "payment_status",
            "needs_attention",
            "has_active_items",
            "customer_reference",
            "start_date",
            "end_date",
            "min_total",
            "max_total",
        ]

    def filter_needs_attention(self, queryset, name, value):
        """Derived from the item rows and the current policy, like the rows shown.

        The cached column lags behind ageing items and policy edits until the
        health job runs.
        """
        policy = load_policy()
        now = timezone.now()
        matching = [
            order.id
            for order in queryset.prefetch_related("items")
            if aggregation.needs_attention(OrderSnapshot.from_entity(order), policy, now)
            is value
        ]
        return queryset.filter(id__in=matching)
