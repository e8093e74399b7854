"""
Диспетчер событий: ограниченная очередь и фиксированный пул воркеров.

Callback шины кладёт событие в очередь и сразу возвращается (или ждёт
места при политике BLOCK). Воркеры разбирают очередь и выполняют единицу
работы: проверка кэша, запись, обновление кэша.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from geo_ingest.common.constants import (
    DEFAULT_QUEUE_CAPACITY,
    DEFAULT_WORKER_COUNT,
    BackpressurePolicy,
    TypeMsg,
)
from geo_ingest.common.logger import log_error, log_info, log_warning
from geo_ingest.core.metrics import MetricsRegistry
from geo_ingest.shared.models.position import PositionEvent

# Единица работы над одним событием
EventProcessor = Callable[[PositionEvent], Awaitable[None]]


class WorkerPool:
    """
    Пул из N асинхронных воркеров над одной очередью.

    Ошибка обработки события логируется и не останавливает воркер.
    """

    def __init__(
        self,
        process: EventProcessor,
        metrics: MetricsRegistry,
        worker_count: int = DEFAULT_WORKER_COUNT,
        capacity: int = DEFAULT_QUEUE_CAPACITY,
        policy: BackpressurePolicy = BackpressurePolicy.DROP,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count должен быть >= 1")
        if capacity < 1:
            raise ValueError("capacity должен быть >= 1")

        self._process = process
        self.metrics = metrics
        self.worker_count = worker_count
        self.policy = policy
        self._queue: asyncio.Queue[PositionEvent] = asyncio.Queue(maxsize=capacity)
        self._workers: list[asyncio.Task] = []
        self._accepting = False

    @property
    def queue_size(self) -> int:
        """Количество событий, ожидающих обработки."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Запускает воркеры."""
        if self._workers:
            return

        self._accepting = True
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"ingest-worker-{i}")
            for i in range(self.worker_count)
        ]
        await log_info(
            f"Запущено {self.worker_count} воркеров, ёмкость очереди {self._queue.maxsize}, "
            f"политика {self.policy.value}",
            type_msg=TypeMsg.INFO,
        )

    async def submit(self, event: PositionEvent) -> bool:
        """
        Ставит событие в очередь.

        Returns:
            False, если событие отброшено (очередь полна при DROP
            или диспетчер уже остановлен)
        """
        if not self._accepting:
            self.metrics.incr("messages_dropped")
            return False

        if self.policy == BackpressurePolicy.BLOCK:
            await self._queue.put(event)
            return True

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.metrics.incr("messages_dropped")
            return False
        return True

    async def _worker(self, index: int) -> None:
        """Цикл одного воркера."""
        while True:
            event = await self._queue.get()
            try:
                await self._process(event)
            except Exception as e:
                await log_error(
                    f"Воркер {index}: ошибка обработки позиции устройства {event.device_id}: {e}",
                    logger_name="dispatcher",
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    async def stop(self, timeout: float = 10.0) -> None:
        """
        Перестаёт принимать события, дожидается опустошения очереди
        (не дольше timeout) и останавливает воркеры.
        """
        if not self._workers:
            return

        self._accepting = False

        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            await log_warning(
                f"Очередь не опустела за {timeout} с, потеряно событий: {self._queue.qsize()}",
                logger_name="dispatcher",
            )

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        await log_info("Воркеры диспетчера остановлены", type_msg=TypeMsg.INFO)
