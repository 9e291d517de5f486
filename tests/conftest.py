from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from modules.fulfillment.constants import ItemStatus
from modules.fulfillment.dtos import (
    CreateOrderDTO,
    CreateOrderItemDTO,
    TransitionItemDTO,
)
from modules.fulfillment.models import OrderItem
from modules.fulfillment.repositories.django_repository import OrderDjangoRepository
from modules.fulfillment.services import FulfillmentService

User = get_user_model()

DEFAULT_ITEMS = [
    {"name": "Kindle Paperwhite", "unit_price": "150.00", "quantity": 1, "supplier": "amazon"},
    {"name": "USB-C cable", "unit_price": "25.00", "quantity": 2, "supplier": "amazon"},
    {"name": "Running shoes", "unit_price": "300.00", "quantity": 1, "supplier": "nike"},
]

# Forward path an item follows from pending.
FORWARD_PATH = [
    ItemStatus.ORDERED,
    ItemStatus.IN_TRANSIT,
    ItemStatus.ARRIVED_ISRAEL,
    ItemStatus.SHIPPED_TO_CUSTOMER,
    ItemStatus.DELIVERED,
]


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def operator():
    return User.objects.create_user(username="operator", password="testpass123")


@pytest.fixture()
def auth_client(api_client, operator):
    """APIClient with a force-authenticated operator."""
    api_client.force_authenticate(user=operator)
    return api_client


@pytest.fixture()
def staff_client(api_client):
    admin = User.objects.create_user(
        username="admin", password="testpass123", is_staff=True
    )
    api_client.force_authenticate(user=admin)
    return api_client


@pytest.fixture()
def service():
    return FulfillmentService(order_repository=OrderDjangoRepository())


@pytest.fixture()
def place_order(service):
    """Factory: place an order through the service (default: 3 items, 500.00)."""

    def _place(items=None, **overrides):
        lines = DEFAULT_ITEMS if items is None else items
        dto = CreateOrderDTO(
            items=[
                CreateOrderItemDTO(
                    name=line["name"],
                    unit_price=Decimal(str(line["unit_price"])),
                    quantity=line.get("quantity", 1),
                    supplier=line.get("supplier", ""),
                )
                for line in lines
            ],
            **overrides,
        )
        return service.create_order(dto)

    return _place


@pytest.fixture()
def advance(service):
    """Factory: walk an item forward along the normal path up to *target*."""

    def _advance(item_id, target, actor="system"):
        item = OrderItem.objects.get(id=item_id)
        start = 0 if item.status == ItemStatus.PENDING else FORWARD_PATH.index(item.status) + 1
        for status in FORWARD_PATH[start:]:
            item = service.transition_item(
                TransitionItemDTO(item_id=item_id, new_status=status, actor=actor)
            )
            if status == target:
                break
        return item

    return _advance


@pytest.fixture()
def age_item():
    """Factory: pretend an item entered its current status *days* ago."""

    def _age(item_id, days):
        OrderItem.objects.filter(id=item_id).update(
            status_changed_at=timezone.now() - timedelta(days=days)
        )

    return _age
