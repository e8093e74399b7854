# tests/core/test_dedup.py
"""
Тесты для фильтра близких точек.
"""

from __future__ import annotations

import pytest

from geo_ingest.core.cache.proximity import ProximityCache
from geo_ingest.core.geo.dedup import Deduplicator, should_accept
from geo_ingest.core.metrics import MetricsRegistry
from geo_ingest.shared.models.position import Coordinate


class TestShouldAccept:
    """Тесты для should_accept."""

    def test_first_point_always_accepted(self) -> None:
        """Первая точка устройства принимается без расчёта расстояния."""
        accepted, distance = should_accept(None, Coordinate(latitude=1.0, longitude=2.0))

        assert accepted is True
        assert distance is None

    def test_same_point_rejected(self) -> None:
        """Повтор той же точки отбрасывается."""
        point = Coordinate(latitude=40.7128, longitude=-74.0060)

        accepted, distance = should_accept(point, point)

        assert accepted is False
        assert distance == 0.0

    def test_far_point_accepted(self) -> None:
        """Точка дальше порога принимается."""
        previous = Coordinate(latitude=40.71280, longitude=-74.00600)
        new = Coordinate(latitude=40.71350, longitude=-74.00600)

        accepted, distance = should_accept(previous, new, threshold_m=5.0)

        assert accepted is True
        assert distance == pytest.approx(77.8, abs=0.5)

    def test_exact_threshold_exclusive(self) -> None:
        """При строгом сравнении точка ровно на пороге отбрасывается."""
        previous = Coordinate(latitude=0.0, longitude=0.0)
        new = Coordinate(latitude=1.0, longitude=0.0)
        _, distance = should_accept(previous, new)

        accepted, _ = should_accept(previous, new, threshold_m=distance, inclusive=False)

        assert accepted is False

    def test_exact_threshold_inclusive(self) -> None:
        """При нестрогом сравнении точка ровно на пороге принимается."""
        previous = Coordinate(latitude=0.0, longitude=0.0)
        new = Coordinate(latitude=1.0, longitude=0.0)
        _, distance = should_accept(previous, new)

        accepted, _ = should_accept(previous, new, threshold_m=distance, inclusive=True)

        assert accepted is True


class TestDeduplicator:
    """Тесты для Deduplicator."""

    @pytest.fixture
    def dedup(self, cache: ProximityCache, metrics: MetricsRegistry) -> Deduplicator:
        return Deduplicator(cache, metrics, threshold_m=5.0)

    def test_unknown_device_is_miss(self, dedup: Deduplicator, metrics: MetricsRegistry, event_factory) -> None:
        """Неизвестное устройство: промах кэша и приём."""
        decision = dedup.check(event_factory())

        assert decision.accepted is True
        assert decision.cache_hit is False
        assert metrics.get("cache_misses") == 1
        assert metrics.get("cache_hits") == 0

    def test_check_does_not_touch_cache(self, dedup: Deduplicator, cache: ProximityCache, event_factory) -> None:
        """check() только читает кэш."""
        dedup.check(event_factory())

        assert cache.exists("device-1") is False

    def test_commit_overwrites_entry(self, dedup: Deduplicator, cache: ProximityCache, event_factory) -> None:
        """commit() записывает координату устройства."""
        dedup.commit(event_factory(latitude=1.5, longitude=2.5))

        coordinate, found = cache.get("device-1")
        assert found is True
        assert coordinate == Coordinate(latitude=1.5, longitude=2.5)

    def test_rejection_counts_skip(self, dedup: Deduplicator, metrics: MetricsRegistry, event_factory) -> None:
        """Отброшенная точка учитывается в positions_skipped."""
        event = event_factory()
        dedup.commit(event)

        decision = dedup.check(event)

        assert decision.accepted is False
        assert decision.cache_hit is True
        assert metrics.get("cache_hits") == 1
        assert metrics.get("positions_skipped") == 1

    def test_scenario_new_york(
        self,
        dedup: Deduplicator,
        cache: ProximityCache,
        metrics: MetricsRegistry,
        event_factory,
    ) -> None:
        """Последовательность из трёх точек одного устройства при пороге 5 м."""
        first = event_factory(latitude=40.71280, longitude=-74.00600)
        near = event_factory(latitude=40.71281, longitude=-74.00601)
        far = event_factory(latitude=40.71350, longitude=-74.00600)

        decision = dedup.check(first)
        assert decision.accepted is True
        dedup.commit(first)

        decision = dedup.check(near)
        assert decision.accepted is False
        assert decision.distance_m == pytest.approx(1.39, abs=0.1)
        assert cache.get("device-1")[0] == first.coordinate

        decision = dedup.check(far)
        assert decision.accepted is True
        assert decision.distance_m == pytest.approx(77.8, abs=0.5)
        dedup.commit(far)

        assert cache.get("device-1")[0] == Coordinate(latitude=40.71350, longitude=-74.00600)
        assert metrics.get("cache_misses") == 1
        assert metrics.get("cache_hits") == 2
        assert metrics.get("positions_skipped") == 1

    def test_devices_are_independent(self, dedup: Deduplicator, event_factory) -> None:
        """Кэш одного устройства не влияет на другое."""
        dedup.commit(event_factory(device_id="a"))

        decision = dedup.check(event_factory(device_id="b"))

        assert decision.accepted is True
        assert decision.cache_hit is False
