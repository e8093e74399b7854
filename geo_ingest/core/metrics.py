"""
Реестр метрик пайплайна.

Счётчики принадлежат экземпляру пайплайна и передаются каждому компоненту,
который их увеличивает. Репортёр периодически забирает значения со сбросом
(drain), health-эндпоинт читает их без сброса (snapshot).
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, fields


@dataclass(frozen=True)
class MetricsSnapshot:
    """Значения счётчиков на момент чтения."""
    messages_received: int = 0
    messages_dropped: int = 0
    validation_errors: int = 0
    marshal_errors: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    positions_skipped: int = 0
    processed: int = 0
    batches_written: int = 0
    rows_written: int = 0
    writer_errors: int = 0

    @property
    def total_errors(self) -> int:
        """Сумма ошибок разбора, валидации и записи."""
        return self.marshal_errors + self.validation_errors + self.writer_errors

    def as_dict(self) -> dict[str, int]:
        """Снимок в виде словаря."""
        return asdict(self)


COUNTER_NAMES: tuple[str, ...] = tuple(f.name for f in fields(MetricsSnapshot))


class MetricsRegistry:
    """
    Набор счётчиков с атомарным инкрементом.

    Все операции выполняются под одним замком, поэтому чтение снимка
    не пересекается со сбросом репортёра. Замок потоковый: эндпоинт
    может читать метрики и из другого потока.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, int] = dict.fromkeys(COUNTER_NAMES, 0)

    def incr(self, name: str, value: int = 1) -> None:
        """
        Увеличивает счётчик.

        Raises:
            KeyError: Неизвестное имя счётчика
            ValueError: Отрицательное приращение
        """
        if name not in self._counters:
            raise KeyError(f"Неизвестный счётчик: {name}")
        if value < 0:
            raise ValueError("Счётчики только растут")
        with self._lock:
            self._counters[name] += value

    def get(self, name: str) -> int:
        """Текущее значение одного счётчика."""
        with self._lock:
            return self._counters[name]

    def snapshot(self) -> MetricsSnapshot:
        """Читает все счётчики без сброса."""
        with self._lock:
            return MetricsSnapshot(**self._counters)

    def drain(self) -> MetricsSnapshot:
        """Читает все счётчики и обнуляет их одной операцией."""
        with self._lock:
            snapshot = MetricsSnapshot(**self._counters)
            for name in self._counters:
                self._counters[name] = 0
        return snapshot
