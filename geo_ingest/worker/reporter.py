"""
Периодический отчёт по метрикам пайплайна.
"""

from __future__ import annotations

import asyncio

from geo_ingest.common.constants import DEFAULT_REPORT_INTERVAL, TypeMsg
from geo_ingest.common.logger import log_error, log_info
from geo_ingest.core.metrics import MetricsRegistry, MetricsSnapshot


class MetricsReporter:
    """
    Раз в interval секунд забирает счётчики со сбросом и пишет их в лог.
    Значения в отчёте относятся только к прошедшему интервалу.
    """

    def __init__(self, metrics: MetricsRegistry, interval: float = DEFAULT_REPORT_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("interval должен быть > 0")
        self.metrics = metrics
        self.interval = interval
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name="metrics-reporter")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def report(self) -> MetricsSnapshot:
        """Снимает счётчики со сбросом и логирует их."""
        snapshot = self.metrics.drain()
        await log_info(
            f"Статистика за {self.interval:g} с: получено {snapshot.messages_received}, "
            f"отброшено {snapshot.messages_dropped}, ошибок валидации {snapshot.validation_errors}, "
            f"ошибок разбора {snapshot.marshal_errors}, кэш {snapshot.cache_hits}/{snapshot.cache_misses}, "
            f"пропущено {snapshot.positions_skipped}, записано строк {snapshot.rows_written} "
            f"в {snapshot.batches_written} пакетах, ошибок записи {snapshot.writer_errors}",
            type_msg=TypeMsg.INFO,
            logger_name="metrics",
            extra=snapshot.as_dict(),
        )
        return snapshot

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.report()
            except Exception as e:
                await log_error(f"Ошибка отчёта по метрикам: {e}", logger_name="metrics")
