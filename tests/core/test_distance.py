# tests/core/test_distance.py
"""
Тесты для расчёта расстояния по формуле гаверсинусов.
"""

from __future__ import annotations

import math

import pytest

from geo_ingest.core.geo.distance import haversine_distance
from geo_ingest.shared.models.position import Coordinate


def _distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_distance(
        Coordinate(latitude=lat1, longitude=lon1),
        Coordinate(latitude=lat2, longitude=lon2),
    )


class TestHaversine:
    """Тесты для haversine_distance."""

    def test_same_point_is_zero(self) -> None:
        """Расстояние от точки до самой себя равно нулю."""
        assert _distance(40.7128, -74.0060, 40.7128, -74.0060) == 0.0

    def test_symmetric(self) -> None:
        """Расстояние не зависит от порядка точек."""
        a = Coordinate(latitude=50.4501, longitude=30.5234)
        b = Coordinate(latitude=53.5511, longitude=9.9937)

        assert haversine_distance(a, b) == pytest.approx(haversine_distance(b, a))

    def test_one_degree_latitude(self) -> None:
        """Один градус широты около 111.19 км при R = 6 371 000 м."""
        assert _distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_194.9, abs=1.0)

    def test_small_offset(self) -> None:
        """Смещение на 0.00001° по обеим осям в Нью-Йорке около 1.4 м."""
        assert 1.0 < _distance(40.71280, -74.00600, 40.71281, -74.00601) < 2.0

    def test_latitude_offset_78m(self) -> None:
        """Смещение на 0.0007° по широте около 78 м."""
        assert _distance(40.71280, -74.00600, 40.71350, -74.00600) == pytest.approx(77.8, abs=0.5)

    def test_antipodes(self) -> None:
        """Расстояние между антиподами равно половине окружности."""
        assert _distance(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * 6_371_000.0, rel=1e-9)
