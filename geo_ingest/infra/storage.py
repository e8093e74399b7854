"""
Контракт хранилища позиций.

Пайплайну от хранилища нужны только вставка одной позиции, пакетная
вставка с изоляцией ошибок по строкам и проверка здоровья.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence, runtime_checkable

from geo_ingest.shared.models.position import PositionEvent


@dataclass
class BulkWriteResult:
    """Итог пакетной вставки. written: индексы записанных строк пакета."""
    inserted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    written: list[int] = field(default_factory=list)

    def add_written(self, index: int) -> None:
        self.inserted += 1
        self.written.append(index)

    def add_error(self, error: BaseException | str) -> None:
        self.failed += 1
        self.errors.append(str(error))


@runtime_checkable
class PositionStorage(Protocol):
    """Хранилище, в которое пишет пайплайн."""

    name: str

    async def insert(self, event: PositionEvent) -> None:
        """Вставляет одну позицию. Ошибка вставки поднимается как StorageError."""
        ...

    async def insert_many(self, events: Sequence[PositionEvent]) -> BulkWriteResult:
        """
        Вставляет пакет позиций.

        Ошибка одной строки не прерывает пакет и не откатывает уже
        подтверждённые строки; она учитывается в BulkWriteResult.
        Индексы записанных строк перечисляются в BulkWriteResult.written.
        """
        ...

    async def health_check(self) -> bool:
        ...
