from django.apps import AppConfig
from django.conf import settings


class DeliveriesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.deliveries"
    label = "deliveries"

    def ready(self) -> None:
        from modules.deliveries.events import (
            DeliveryCanceled,
            DeliveryCreated,
            DeliveryStatusChanged,
        )
        from modules.deliveries.handlers import (
            delivery_canceled_handler,
            delivery_created_handler,
            delivery_status_changed_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(DeliveryCreated, delivery_created_handler)
        event_bus.subscribe(DeliveryStatusChanged, delivery_status_changed_handler)
        event_bus.subscribe(DeliveryCanceled, delivery_canceled_handler)

        if settings.DISPATCH_AUTOSTART_LOOPS:
            from modules.deliveries.runtime import start_loops

            start_loops()
