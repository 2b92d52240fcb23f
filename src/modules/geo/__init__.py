"""Geo adapter abstraction: pluggable geocoding and routing."""

from __future__ import annotations

from django.conf import settings

_geo_instance = None


def get_geo_adapter():
    """Return the configured geo adapter (singleton).

    ``DISPATCH_GEO_ADAPTER`` selects ``osm`` (Nominatim + OSRM) or ``fake``.
    """
    global _geo_instance
    if _geo_instance is None:
        adapter = settings.DISPATCH_GEO_ADAPTER
        if adapter == "fake":
            from modules.geo.fake_adapter import FakeGeoAdapter

            _geo_instance = FakeGeoAdapter()
        elif adapter == "osm":
            from modules.geo.osm_adapter import OpenStreetMapAdapter

            _geo_instance = OpenStreetMapAdapter(
                settings.DISPATCH_NOMINATIM_URL,
                settings.DISPATCH_OSRM_URL,
                city_suffix=settings.DISPATCH_STORE_CITY,
                timeout=settings.DISPATCH_HTTP_TIMEOUT,
                user_agent=settings.DISPATCH_HTTP_USER_AGENT,
            )
        else:
            raise ValueError(f"Unknown geo adapter: {adapter}")
    return _geo_instance


def reset_geo_adapter():
    """Reset the geo singleton (useful for testing)."""
    global _geo_instance
    _geo_instance = None
