from django.apps import AppConfig


class FulfillmentConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.fulfillment"
    label = "fulfillment"

    def ready(self) -> None:
        from modules.fulfillment.events import (
            ItemCancelled,
            ItemOverrideSet,
            ItemStatusChanged,
            OrderCancelled,
            OrderStatusOverrideSet,
        )
        from modules.fulfillment.handlers import (
            item_cancelled_handler,
            item_override_set_handler,
            item_status_changed_handler,
            order_cancelled_handler,
            order_status_override_set_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(ItemStatusChanged, item_status_changed_handler)
        event_bus.subscribe(ItemOverrideSet, item_override_set_handler)
        event_bus.subscribe(ItemCancelled, item_cancelled_handler)
        event_bus.subscribe(OrderCancelled, order_cancelled_handler)
        event_bus.subscribe(OrderStatusOverrideSet, order_status_override_set_handler)
