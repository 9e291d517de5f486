"""API tests for /api/v1/orders/."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.fulfillment.constants import ItemStatus, OrderStatus, UrgencyLevel
from modules.fulfillment.models import FulfillmentSettings, Order

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"

PAYLOAD = {
    "customer_reference": "CUST-1042",
    "shipping_cost": "35.00",
    "items": [
        {"name": "Kindle Paperwhite", "unit_price": "150.00", "supplier": "amazon"},
        {"name": "USB-C cable", "unit_price": "25.00", "quantity": 2},
        {"name": "Running shoes", "unit_price": "300.00", "supplier": "nike"},
    ],
}


class TestCreateOrder:
    def test_creates_order_with_pending_items(self, auth_client, operator):
        response = auth_client.post(ORDERS_URL, PAYLOAD, format="json")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == OrderStatus.PENDING
        assert data["subtotal"] == "500.00"
        assert data["total_amount"] == "535.00"
        assert [item["status"] for item in data["items"]] == [ItemStatus.PENDING] * 3
        assert data["items"][0]["allowed_next"] == [ItemStatus.ORDERED]
        assert data["items"][0]["next_recommended"] == ItemStatus.ORDERED
        assert data["timeline"][0]["actor"] == str(operator.pk)
        assert data["evaluation"]["urgency_level"] == UrgencyLevel.HIGH

    def test_idempotency_key(self, auth_client):
        headers = {"HTTP_IDEMPOTENCY_KEY": "checkout-9"}
        first = auth_client.post(ORDERS_URL, PAYLOAD, format="json", **headers)
        second = auth_client.post(ORDERS_URL, PAYLOAD, format="json", **headers)

        assert first.status_code == second.status_code == 201
        assert first.json()["id"] == second.json()["id"]
        assert Order.objects.count() == 1

    def test_empty_items_rejected(self, auth_client):
        response = auth_client.post(
            ORDERS_URL, {**PAYLOAD, "items": []}, format="json"
        )
        assert response.status_code == 400
        data = response.json()
        assert data["type"] == "validation_error"
        assert data["errors"][0]["attr"].startswith("items")

    def test_zero_quantity_rejected(self, auth_client):
        items = [{"name": "Cable", "unit_price": "10.00", "quantity": 0}]
        response = auth_client.post(
            ORDERS_URL, {"items": items}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "items.quantity"


class TestReadOrders:
    def test_list_carries_derived_fields(self, auth_client, place_order):
        place_order()
        response = auth_client.get(ORDERS_URL)

        assert response.status_code == 200
        row = response.json()["results"][0]
        assert row["status"] == OrderStatus.PENDING
        assert row["completion_percentage"] == 0
        assert row["needs_attention"] is False
        assert row["urgency_level"] == UrgencyLevel.HIGH

    def test_filter_needs_attention(self, auth_client, place_order):
        place_order()
        place_order(items=[{"name": "Lens", "unit_price": "450.00"}])

        response = auth_client.get(ORDERS_URL, {"needs_attention": "true"})

        results = response.json()["results"]
        assert len(results) == 1
        assert results[0]["urgency_level"] == UrgencyLevel.CRITICAL

    def test_aged_item_is_flagged_before_the_health_job_runs(
        self, auth_client, place_order, advance, age_item
    ):
        order = place_order()
        place_order()
        item = advance(order.items.first().id, ItemStatus.ORDERED)
        age_item(item.id, 20)

        listing = auth_client.get(ORDERS_URL).json()["results"]
        row = next(row for row in listing if row["id"] == str(order.id))
        assert row["needs_attention"] is True
        assert row["urgency_level"] == UrgencyLevel.CRITICAL

        detail = auth_client.get(f"{ORDERS_URL}{order.id}/").json()
        assert detail["needs_attention"] is True
        assert detail["evaluation"]["summary"]["needs_attention"] is True

        flagged = auth_client.get(ORDERS_URL, {"needs_attention": "true"}).json()
        assert [row["id"] for row in flagged["results"]] == [str(order.id)]
        calm = auth_client.get(ORDERS_URL, {"needs_attention": "false"}).json()
        assert str(order.id) not in [row["id"] for row in calm["results"]]

        # The cached column is still behind; only the health job rewrites it.
        assert Order.objects.get(id=order.id).needs_attention is False

    def test_policy_change_shows_up_without_a_refresh(self, auth_client, place_order):
        order = place_order()
        settings_row = FulfillmentSettings.load()
        settings_row.minimum_item_count = 5
        settings_row.save()

        row = auth_client.get(ORDERS_URL).json()["results"][0]
        assert row["needs_attention"] is True
        assert row["urgency_level"] == UrgencyLevel.CRITICAL

        response = auth_client.get(ORDERS_URL, {"needs_attention": "true"})
        assert [row["id"] for row in response.json()["results"]] == [str(order.id)]

    def test_filter_by_status(self, auth_client, place_order, advance):
        shipped = place_order(items=[{"name": "Lens", "unit_price": "450.00"}])
        advance(shipped.items.first().id, ItemStatus.DELIVERED)
        place_order()

        response = auth_client.get(ORDERS_URL, {"status": OrderStatus.DELIVERED})

        results = response.json()["results"]
        assert [row["id"] for row in results] == [str(shipped.id)]

    def test_retrieve_includes_history_and_timeline(
        self, auth_client, place_order, advance
    ):
        order = place_order()
        advance(order.items.first().id, ItemStatus.ORDERED)

        response = auth_client.get(f"{ORDERS_URL}{order.id}/")

        assert response.status_code == 200
        data = response.json()
        first_item = data["items"][0]
        assert [entry["new_status"] for entry in first_item["status_history"]] == [
            ItemStatus.ORDERED,
            ItemStatus.PENDING,
        ]
        assert data["timeline"][0]["message"] == (
            "Kindle Paperwhite: Pending -> Ordered from supplier"
        )
        assert data["status"] == OrderStatus.IN_PROGRESS

    def test_retrieve_unknown_order(self, auth_client):
        response = auth_client.get(f"{ORDERS_URL}{uuid4()}/")
        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "not_found"

    def test_retrieve_malformed_id(self, auth_client):
        response = auth_client.get(f"{ORDERS_URL}not-a-uuid/")
        assert response.status_code == 404

    def test_evaluation(self, auth_client, place_order):
        order = place_order(items=[{"name": "Lens", "unit_price": "150.00"}])

        response = auth_client.get(f"{ORDERS_URL}{order.id}/evaluation/")

        assert response.status_code == 200
        data = response.json()
        assert data["urgency_level"] == UrgencyLevel.CRITICAL
        assert data["minimum"]["meets_minimum"] is False
        assert data["minimum"]["amount_deficit"] == "250.00"
        assert data["minimum"]["count_deficit"] == 1
        assert data["summary"]["needs_attention"] is True


class TestCancelOrder:
    def test_cancel(self, auth_client, place_order):
        order = place_order()

        response = auth_client.post(
            f"{ORDERS_URL}{order.id}/cancel/",
            {"reason": "customer request"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.CANCELLED
        assert data["cancellation_reason"] == "customer request"
        assert all(item["cancelled"] for item in data["items"])

    def test_cancel_without_reason(self, auth_client, place_order):
        order = place_order()
        response = auth_client.post(
            f"{ORDERS_URL}{order.id}/cancel/", {"reason": "  "}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "reason_required"

    def test_cancel_twice(self, auth_client, place_order):
        order = place_order()
        url = f"{ORDERS_URL}{order.id}/cancel/"
        auth_client.post(url, {"reason": "customer request"}, format="json")

        response = auth_client.post(url, {"reason": "again"}, format="json")

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "invalid_transition"

    def test_cancel_unknown_order(self, auth_client):
        response = auth_client.post(
            f"{ORDERS_URL}{uuid4()}/cancel/", {"reason": "x"}, format="json"
        )
        assert response.status_code == 404


class TestStatusOverride:
    def test_lock_and_unlock(self, auth_client, place_order, operator):
        order = place_order()
        url = f"{ORDERS_URL}{order.id}/status-override/"

        locked = auth_client.post(
            url,
            {"status": OrderStatus.AWAITING_PAYMENT, "reason": "bank transfer pending"},
            format="json",
        )

        assert locked.status_code == 200
        data = locked.json()
        assert data["status"] == OrderStatus.AWAITING_PAYMENT
        assert data["status_label"] == "Awaiting payment"
        assert data["status_override"]["reason"] == "bank transfer pending"
        assert data["status_override"]["set_by"] == str(operator.pk)
        assert data["timeline"][0]["message"] == (
            "Order status locked at Awaiting payment (bank transfer pending)"
        )

        unlocked = auth_client.post(url, {"clear_override": True}, format="json")

        assert unlocked.status_code == 200
        assert unlocked.json()["status"] == OrderStatus.PENDING
        assert unlocked.json()["status_override"] is None

    def test_reason_is_required(self, auth_client, place_order):
        order = place_order()
        response = auth_client.post(
            f"{ORDERS_URL}{order.id}/status-override/",
            {"status": OrderStatus.SHIPPED, "reason": " "},
            format="json",
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "reason_required"

    def test_status_or_clear_is_required(self, auth_client, place_order):
        order = place_order()
        response = auth_client.post(
            f"{ORDERS_URL}{order.id}/status-override/", {"reason": "x"}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "status"

    def test_cancelled_is_not_a_target(self, auth_client, place_order):
        order = place_order()
        response = auth_client.post(
            f"{ORDERS_URL}{order.id}/status-override/",
            {"status": OrderStatus.CANCELLED, "reason": "customer request"},
            format="json",
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "invalid_transition"

    def test_filter_by_status_sees_the_override(self, auth_client, place_order):
        pinned = place_order()
        place_order()
        auth_client.post(
            f"{ORDERS_URL}{pinned.id}/status-override/",
            {"status": OrderStatus.READY_TO_SHIP, "reason": "consolidated parcel"},
            format="json",
        )

        response = auth_client.get(ORDERS_URL, {"status": OrderStatus.READY_TO_SHIP})

        assert [row["id"] for row in response.json()["results"]] == [str(pinned.id)]

    def test_unknown_order(self, auth_client):
        response = auth_client.post(
            f"{ORDERS_URL}{uuid4()}/status-override/",
            {"clear_override": True},
            format="json",
        )
        assert response.status_code == 404
