"""
Стратегии записи принятых позиций в хранилище.

ImmediateWriter пишет каждую позицию сразу, BatchWriter копит позиции
в буфере и сбрасывает его по размеру, по таймеру или при остановке.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable

from geo_ingest.common.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FLUSH_INTERVAL_MS,
    DEFAULT_FLUSH_TIMEOUT,
    DEFAULT_INSERT_TIMEOUT,
    DEFAULT_QUEUE_CAPACITY,
    TypeMsg,
)
from geo_ingest.common.exceptions import WriterClosedError
from geo_ingest.common.logger import log_error, log_info, log_warning
from geo_ingest.core.metrics import MetricsRegistry
from geo_ingest.infra.storage import PositionStorage
from geo_ingest.shared.models.position import PositionEvent

# Вызывается для каждой позиции, которую хранилище подтвердило как записанную
PersistedCallback = Callable[[PositionEvent], None]

# Позиция в очереди пакета вместе со своим callback
_Pending = tuple[PositionEvent, PersistedCallback | None]


class PositionWriter(ABC):
    """Запись принятой позиции в хранилище."""

    def __init__(self, storage: PositionStorage, metrics: MetricsRegistry) -> None:
        self.storage = storage
        self.metrics = metrics

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя стратегии."""

    async def start(self) -> None:
        """Запускает фоновую часть писателя (если есть)."""

    @abstractmethod
    async def write(
        self,
        event: PositionEvent,
        on_persisted: PersistedCallback | None = None,
    ) -> bool:
        """
        Передаёт позицию в хранилище.

        Args:
            event: Позиция
            on_persisted: Вызывается только после подтверждённой записи позиции

        Returns:
            True, если позиция записана или принята в буфер пакета
        """

    async def stop(self) -> None:
        """Останавливает писатель, дописывая всё накопленное."""


class ImmediateWriter(PositionWriter):
    """Одна вставка на каждую принятую позицию."""

    name = "immediate"

    def __init__(
        self,
        storage: PositionStorage,
        metrics: MetricsRegistry,
        timeout: float = DEFAULT_INSERT_TIMEOUT,
    ) -> None:
        super().__init__(storage, metrics)
        self.timeout = timeout

    async def write(
        self,
        event: PositionEvent,
        on_persisted: PersistedCallback | None = None,
    ) -> bool:
        try:
            await asyncio.wait_for(self.storage.insert(event), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.metrics.incr("writer_errors")
            await log_warning(
                f"Таймаут вставки ({self.timeout} с) позиции устройства {event.device_id}",
                logger_name="writer",
            )
            return False
        except Exception as e:
            self.metrics.incr("writer_errors")
            await log_warning(
                f"Ошибка вставки позиции устройства {event.device_id}: {e}",
                logger_name="writer",
            )
            return False

        self.metrics.incr("processed")
        self.metrics.incr("rows_written")
        if on_persisted is not None:
            on_persisted(event)
        return True


class BatchWriter(PositionWriter):
    """
    Пакетная запись.

    Буфером владеет одна задача. Её цикл ждёт три источника: новое
    событие во входной очереди, срабатывание таймера и сигнал остановки.
    Остановка приоритетнее: после неё оставшиеся события дочитываются
    из очереди и сбрасываются, новые не принимаются.
    """

    name = "batch"

    def __init__(
        self,
        storage: PositionStorage,
        metrics: MetricsRegistry,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval_ms: int = DEFAULT_FLUSH_INTERVAL_MS,
        flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
        input_capacity: int = DEFAULT_QUEUE_CAPACITY,
    ) -> None:
        super().__init__(storage, metrics)
        if batch_size < 1:
            raise ValueError("batch_size должен быть >= 1")
        if flush_interval_ms < 1:
            raise ValueError("flush_interval_ms должен быть >= 1")

        self.batch_size = batch_size
        self.flush_interval = flush_interval_ms / 1000
        self.flush_timeout = flush_timeout

        self._input: asyncio.Queue[_Pending] = asyncio.Queue(maxsize=input_capacity)
        self._buffer: list[_Pending] = []
        self._shutdown = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def buffered(self) -> int:
        """Размер буфера текущего пакета."""
        return len(self._buffer)

    @property
    def pending(self) -> int:
        """События во входной очереди, ещё не попавшие в буфер."""
        return self._input.qsize()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name="batch-writer")
        await log_info(
            f"Пакетная запись: размер {self.batch_size}, интервал {int(self.flush_interval * 1000)} мс",
            type_msg=TypeMsg.INFO,
        )

    async def write(
        self,
        event: PositionEvent,
        on_persisted: PersistedCallback | None = None,
    ) -> bool:
        """
        Ставит позицию во входную очередь; ждёт места, если очередь полна.
        on_persisted вызывается при сбросе пакета, если строка записана.

        Raises:
            WriterClosedError: Писатель уже остановлен
        """
        if self._closed:
            raise WriterClosedError("Пакетный писатель остановлен")
        await self._input.put((event, on_persisted))
        self.metrics.incr("processed")
        return True

    async def stop(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._shutdown.set()
        if self._task is not None:
            await self._task
            self._task = None
        else:
            await self._drain()
        await log_info("Пакетная запись остановлена", type_msg=TypeMsg.INFO)

    async def _run(self) -> None:
        """Цикл владельца буфера."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.flush_interval
        shutdown_waiter = asyncio.ensure_future(self._shutdown.wait())
        getter: asyncio.Future | None = None

        try:
            while not self._shutdown.is_set():
                if getter is None:
                    getter = asyncio.ensure_future(self._input.get())

                timeout = max(0.0, deadline - loop.time())
                done, _ = await asyncio.wait(
                    {getter, shutdown_waiter},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if getter in done:
                    self._buffer.append(getter.result())
                    getter = None
                    if len(self._buffer) >= self.batch_size:
                        await self._flush()
                        deadline = loop.time() + self.flush_interval

                if shutdown_waiter in done:
                    break

                if loop.time() >= deadline:
                    if self._buffer:
                        await self._flush()
                    deadline = loop.time() + self.flush_interval
        finally:
            if getter is not None:
                if getter.done() and not getter.cancelled():
                    self._buffer.append(getter.result())
                else:
                    getter.cancel()
            shutdown_waiter.cancel()

        await self._drain()

    async def _drain(self) -> None:
        """Дочитывает входную очередь и сбрасывает остаток буфера."""
        while True:
            try:
                self._buffer.append(self._input.get_nowait())
            except asyncio.QueueEmpty:
                break
            if len(self._buffer) >= self.batch_size:
                await self._flush()

        if self._buffer:
            await self._flush()

    async def _flush(self) -> None:
        """
        Записывает буфер одной пакетной вставкой.

        Ошибки отдельных строк учитываются как writer_errors, остальные
        строки пакета записываются. on_persisted вызывается только для
        записанных строк. Буфер очищается всегда.
        """
        pending = tuple(self._buffer)
        self._buffer.clear()
        rows = [event for event, _ in pending]

        try:
            result = await asyncio.wait_for(
                self.storage.insert_many(rows),
                timeout=self.flush_timeout,
            )
        except asyncio.TimeoutError:
            self.metrics.incr("writer_errors", len(rows))
            await log_error(
                f"Таймаут записи пакета ({self.flush_timeout} с), потеряно строк: {len(rows)}",
                logger_name="writer",
            )
            return
        except Exception as e:
            self.metrics.incr("writer_errors", len(rows))
            await log_error(
                f"Ошибка записи пакета из {len(rows)} строк: {e}",
                logger_name="writer",
            )
            return

        if result.failed:
            self.metrics.incr("writer_errors", result.failed)
            await log_warning(
                f"Пакет записан частично: {result.inserted} из {len(rows)}",
                logger_name="writer",
            )

        for index in result.written:
            event, on_persisted = pending[index]
            if on_persisted is not None:
                on_persisted(event)

        if result.inserted > 0:
            self.metrics.incr("batches_written")
            self.metrics.incr("rows_written", result.inserted)
            await log_info(
                f"Записан пакет: {result.inserted} строк в {self.storage.name}",
                type_msg=TypeMsg.DEBUG,
                logger_name="writer",
            )
