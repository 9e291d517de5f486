"""Fulfillment URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from modules.fulfillment.views import FulfillmentSettingsView, ItemViewSet, OrderViewSet

router = DefaultRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")
router.register("items", ItemViewSet, basename="item")

urlpatterns = [
    path(
        "fulfillment/settings/",
        FulfillmentSettingsView.as_view(),
        name="fulfillment-settings",
    ),
    *router.urls,
]
