"""OpenStreetMap adapter: Nominatim for geocoding, OSRM for routing."""

from __future__ import annotations

import requests
import structlog

from modules.geo.entities import Coordinates
from modules.geo.port import GeoPort

logger = structlog.get_logger(__name__)


def clean_address(address: str) -> str:
    """Drop the CEP and trailing complements that confuse Nominatim.

    ``"Rua Sueli, 45 - Jardim CEP: 13300-000"`` -> ``"Rua Sueli, 45"``.
    """
    return address.split(" - ")[0].split(" CEP:")[0].strip()


class OpenStreetMapAdapter(GeoPort):
    """Talks to public (or self-hosted) Nominatim and OSRM endpoints."""

    def __init__(
        self,
        nominatim_url: str,
        osrm_url: str,
        *,
        city_suffix: str = "",
        timeout: float = 5.0,
        user_agent: str = "Dispatch-Board/1.0",
        session: requests.Session | None = None,
    ) -> None:
        self._nominatim_url = nominatim_url.rstrip("/")
        self._osrm_url = osrm_url.rstrip("/")
        self._city_suffix = city_suffix
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", user_agent)

    def geocode(self, address: str) -> Coordinates | None:
        query = clean_address(address)
        if not query:
            return None
        if self._city_suffix:
            query = f"{query}, {self._city_suffix}"

        log = logger.bind(query=query)
        try:
            resp = self._session.get(
                f"{self._nominatim_url}/search",
                params={"format": "json", "q": query, "limit": 1},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            results = resp.json()
        except (requests.RequestException, ValueError) as exc:
            log.warning("geo.geocode_failed", error=str(exc))
            return None

        if not results:
            log.info("geo.geocode_not_found")
            return None

        first = results[0]
        try:
            point = Coordinates(lat=float(first["lat"]), lng=float(first["lon"]))
        except (KeyError, TypeError, ValueError):
            log.warning("geo.geocode_malformed", payload=str(first)[:200])
            return None
        log.info("geo.geocoded", lat=point.lat, lng=point.lng)
        return point

    def route(self, start: Coordinates, end: Coordinates) -> list[Coordinates]:
        # OSRM expects lng,lat pairs
        path = f"{start.lng},{start.lat};{end.lng},{end.lat}"
        try:
            resp = self._session.get(
                f"{self._osrm_url}/route/v1/driving/{path}",
                params={"overview": "full", "geometries": "geojson"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("geo.route_failed", error=str(exc))
            return []

        routes = payload.get("routes") or []
        if not routes:
            return []
        coordinates = routes[0].get("geometry", {}).get("coordinates", [])
        return [Coordinates(lat=lat, lng=lng) for lng, lat in coordinates]
