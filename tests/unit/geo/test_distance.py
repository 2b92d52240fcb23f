"""Unit tests for great-circle and polyline distances."""

from __future__ import annotations

import pytest

from modules.geo.distance import haversine_km, route_length_km
from modules.geo.entities import Coordinates

pytestmark = pytest.mark.unit

SAO_PAULO = Coordinates(lat=-23.5505, lng=-46.6333)
CAMPINAS = Coordinates(lat=-22.9099, lng=-47.0626)


class TestHaversine:
    def test_same_point(self):
        assert haversine_km(SAO_PAULO, SAO_PAULO) == 0.0

    def test_known_distance(self):
        assert haversine_km(SAO_PAULO, CAMPINAS) == pytest.approx(84.0, abs=1.5)

    def test_symmetric(self):
        assert haversine_km(SAO_PAULO, CAMPINAS) == pytest.approx(haversine_km(CAMPINAS, SAO_PAULO))


class TestRouteLength:
    def test_sum_of_legs(self):
        middle = Coordinates(lat=-23.2, lng=-46.9)
        expected = haversine_km(SAO_PAULO, middle) + haversine_km(middle, CAMPINAS)
        assert route_length_km([SAO_PAULO, middle, CAMPINAS]) == pytest.approx(expected)

    @pytest.mark.parametrize("points", [[], [SAO_PAULO]])
    def test_degenerate_routes(self, points):
        assert route_length_km(points) == 0.0
