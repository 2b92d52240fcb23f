"""Process-wide dispatch service and its background loops.

The board state lives in memory, so each process serving the board owns
one ``DispatchService``, built lazily from Django settings.
"""

from __future__ import annotations

import threading

from django.conf import settings

from modules.deliveries.scheduler import PeriodicScheduler

_service = None
_scheduler: PeriodicScheduler | None = None
_lock = threading.Lock()


def build_dispatch_service():
    """Wire a ``DispatchService`` with the Django-backed collaborators."""
    from modules.couriers.repositories.django_repository import CourierDjangoDirectory
    from modules.customers.repositories.django_repository import CustomerDjangoRepository
    from modules.customers.services import CustomerService
    from modules.deliveries.checkpoints import WatermarkStore
    from modules.deliveries.repositories.django_repository import DeliveryDjangoStore
    from modules.deliveries.services import DispatchService
    from modules.deliveries.store import load_store_profile, load_store_settings
    from modules.geo import get_geo_adapter
    from shared.infrastructure.bus import event_bus

    profile = load_store_profile()
    store_settings = load_store_settings()
    return DispatchService(
        DeliveryDjangoStore(),
        CourierDjangoDirectory(),
        get_geo_adapter(),
        profile=profile,
        settings=store_settings,
        watermarks=WatermarkStore(profile.store_id),
        customer_service=CustomerService(
            CustomerDjangoRepository(), tier_goals=store_settings.tier_goals
        ),
        event_bus=event_bus,
        notification_ttl=settings.DISPATCH_NOTIFICATION_TTL,
    )


def get_dispatch_service():
    """Return the process dispatch service (singleton)."""
    global _service
    with _lock:
        if _service is None:
            _service = build_dispatch_service()
        return _service


def reset_dispatch_service() -> None:
    """Stop the loops and drop the singleton (useful for testing)."""
    global _service
    stop_loops()
    with _lock:
        _service = None


def _sync_tick():
    return get_dispatch_service().sync_tick()


def _roam_tick():
    return get_dispatch_service().roam_tick()


def start_loops() -> PeriodicScheduler:
    """Start the sync and roaming loops of the process service."""
    global _scheduler
    with _lock:
        if _scheduler is None:
            _scheduler = PeriodicScheduler()
            _scheduler.add_job("sync", settings.DISPATCH_SYNC_INTERVAL, _sync_tick)
            _scheduler.add_job("roaming", settings.DISPATCH_ROAMING_INTERVAL, _roam_tick)
        _scheduler.start()
        return _scheduler


def stop_loops() -> None:
    global _scheduler
    with _lock:
        scheduler, _scheduler = _scheduler, None
    if scheduler is not None:
        scheduler.stop()


def loops_running() -> bool:
    with _lock:
        return _scheduler is not None and _scheduler.running
