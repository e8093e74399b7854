"""
Кэш последней принятой координаты по устройству.

Хранит все устройства, встреченные процессом (без TTL и вытеснения),
и живёт только в памяти. Чтения идут параллельно, запись исключает всех.
Комбинированной операции "проверить и записать" нет: два события одного
устройства, обработанные одновременно, могут оба пройти проверку
расстояния. Дедупликация под конкуренцией best-effort.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from geo_ingest.shared.models.position import Coordinate


class ReadWriteLock:
    """Замок "много читателей / один писатель" с приоритетом писателя."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ProximityCache:
    """Конкурентная карта device_id -> последняя принятая координата."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._entries: dict[str, Coordinate] = {}

    def get(self, device_id: str) -> tuple[Coordinate | None, bool]:
        """Возвращает (координата, найдено)."""
        with self._lock.read():
            coordinate = self._entries.get(device_id)
        return coordinate, coordinate is not None

    def set(self, device_id: str, coordinate: Coordinate) -> None:
        """Перезаписывает координату устройства."""
        with self._lock.write():
            self._entries[device_id] = coordinate

    def exists(self, device_id: str) -> bool:
        with self._lock.read():
            return device_id in self._entries

    def delete(self, device_id: str) -> None:
        with self._lock.write():
            self._entries.pop(device_id, None)

    def clear(self) -> None:
        with self._lock.write():
            self._entries = {}

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)
