# tests/core/test_metrics.py
"""
Тесты для реестра метрик.
"""

from __future__ import annotations

import threading

import pytest

from geo_ingest.core.metrics import COUNTER_NAMES, MetricsRegistry, MetricsSnapshot


class TestMetricsRegistry:
    """Тесты для MetricsRegistry."""

    def test_starts_at_zero(self, metrics: MetricsRegistry) -> None:
        """Все счётчики начинаются с нуля."""
        assert metrics.snapshot() == MetricsSnapshot()

    def test_incr(self, metrics: MetricsRegistry) -> None:
        """incr() увеличивает только свой счётчик."""
        metrics.incr("messages_received")
        metrics.incr("rows_written", 500)

        snapshot = metrics.snapshot()
        assert snapshot.messages_received == 1
        assert snapshot.rows_written == 500
        assert snapshot.messages_dropped == 0

    def test_unknown_counter(self, metrics: MetricsRegistry) -> None:
        """Неизвестный счётчик поднимает KeyError."""
        with pytest.raises(KeyError):
            metrics.incr("no_such_counter")

    def test_negative_increment(self, metrics: MetricsRegistry) -> None:
        """Счётчики не уменьшаются."""
        with pytest.raises(ValueError):
            metrics.incr("processed", -1)

    def test_snapshot_does_not_reset(self, metrics: MetricsRegistry) -> None:
        """snapshot() не сбрасывает значения."""
        metrics.incr("cache_hits", 3)

        metrics.snapshot()

        assert metrics.get("cache_hits") == 3

    def test_drain_resets(self, metrics: MetricsRegistry) -> None:
        """drain() возвращает значения и обнуляет счётчики."""
        metrics.incr("cache_hits", 3)
        metrics.incr("writer_errors", 2)

        drained = metrics.drain()

        assert drained.cache_hits == 3
        assert drained.writer_errors == 2
        assert metrics.snapshot() == MetricsSnapshot()

    def test_concurrent_increments(self, metrics: MetricsRegistry) -> None:
        """Инкременты из нескольких потоков не теряются."""
        def worker() -> None:
            for _ in range(1000):
                metrics.incr("messages_received")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert metrics.get("messages_received") == 8000


class TestMetricsSnapshot:
    """Тесты для MetricsSnapshot."""

    def test_total_errors(self) -> None:
        """total_errors суммирует ошибки разбора, валидации и записи."""
        snapshot = MetricsSnapshot(marshal_errors=1, validation_errors=2, writer_errors=3, messages_dropped=10)

        assert snapshot.total_errors == 6

    def test_as_dict_has_all_counters(self) -> None:
        """as_dict() содержит все счётчики."""
        assert tuple(MetricsSnapshot().as_dict()) == COUNTER_NAMES
