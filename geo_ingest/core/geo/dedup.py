"""
Фильтрация близких точек.

Новая позиция устройства сохраняется, только если она отстоит от последней
сохранённой дальше порога. Первая позиция устройства сохраняется всегда.
"""

from __future__ import annotations

from dataclasses import dataclass

from geo_ingest.common.constants import DEFAULT_DISTANCE_THRESHOLD_M
from geo_ingest.core.cache.proximity import ProximityCache
from geo_ingest.core.geo.distance import haversine_distance
from geo_ingest.core.metrics import MetricsRegistry
from geo_ingest.shared.models.position import Coordinate, PositionEvent


def should_accept(
    previous: Coordinate | None,
    new: Coordinate,
    threshold_m: float = DEFAULT_DISTANCE_THRESHOLD_M,
    inclusive: bool = False,
) -> tuple[bool, float | None]:
    """
    Решает, сохранять ли новую точку.

    Args:
        previous: Последняя принятая координата (None, если устройства нет в кэше)
        new: Новая координата
        threshold_m: Порог в метрах
        inclusive: Принимать точку на расстоянии ровно threshold_m

    Returns:
        (принять, расстояние в метрах или None для первой точки)
    """
    if previous is None:
        return True, None

    distance = haversine_distance(previous, new)
    if inclusive:
        return distance >= threshold_m, distance
    return distance > threshold_m, distance


@dataclass(frozen=True)
class Decision:
    """Результат проверки события."""
    accepted: bool
    cache_hit: bool
    distance_m: float | None = None


class Deduplicator:
    """
    Проверка события по кэшу последних координат.

    check() читает кэш один раз и учитывает попадание/промах,
    commit() перезаписывает запись устройства после успешного сохранения.
    Между ними кэш не заблокирован.
    """

    def __init__(
        self,
        cache: ProximityCache,
        metrics: MetricsRegistry,
        threshold_m: float = DEFAULT_DISTANCE_THRESHOLD_M,
        inclusive: bool = False,
    ) -> None:
        self.cache = cache
        self.metrics = metrics
        self.threshold_m = threshold_m
        self.inclusive = inclusive

    def check(self, event: PositionEvent) -> Decision:
        previous, found = self.cache.get(event.device_id)
        self.metrics.incr("cache_hits" if found else "cache_misses")

        accepted, distance = should_accept(
            previous,
            event.coordinate,
            threshold_m=self.threshold_m,
            inclusive=self.inclusive,
        )
        if not accepted:
            self.metrics.incr("positions_skipped")

        return Decision(accepted=accepted, cache_hit=found, distance_m=distance)

    def commit(self, event: PositionEvent) -> None:
        self.cache.set(event.device_id, event.coordinate)
