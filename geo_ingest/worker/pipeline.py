"""
Пайплайн приёма геолокации.

Связывает метрики, кэш последних координат, фильтр близких точек,
стратегию записи и диспетчер. handle_message() служит callback'ом шины.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from geo_ingest.common.constants import (
    DEFAULT_DISTANCE_THRESHOLD_M,
    DEFAULT_QUEUE_CAPACITY,
    DEFAULT_REPORT_INTERVAL,
    DEFAULT_WORKER_COUNT,
    BackpressurePolicy,
    CoordinateOrder,
    TimestampUnit,
    TypeMsg,
    WriteMode,
)
from geo_ingest.common.exceptions import MarshalError, PositionValidationError
from geo_ingest.common.logger import log_info, log_warning
from geo_ingest.core.cache.proximity import ProximityCache
from geo_ingest.core.geo.dedup import Deduplicator
from geo_ingest.core.metrics import MetricsRegistry
from geo_ingest.infra.storage import PositionStorage
from geo_ingest.shared.models.position import PositionEvent, parse_wire_message
from geo_ingest.worker.dispatcher import WorkerPool
from geo_ingest.worker.reporter import MetricsReporter
from geo_ingest.worker.writers import BatchWriter, ImmediateWriter, PositionWriter

if TYPE_CHECKING:
    from geo_ingest.config.loader import Settings


def build_writer(
    storage: PositionStorage,
    metrics: MetricsRegistry,
    settings: Settings,
) -> PositionWriter:
    """Создаёт стратегию записи по WRITE_MODE."""
    if settings.ingest.WRITE_MODE == WriteMode.IMMEDIATE:
        return ImmediateWriter(storage, metrics, timeout=settings.ingest.INSERT_TIMEOUT)
    return BatchWriter(
        storage,
        metrics,
        batch_size=settings.batch.BATCH_SIZE,
        flush_interval_ms=settings.batch.FLUSH_INTERVAL_MS,
        flush_timeout=settings.batch.FLUSH_TIMEOUT,
        input_capacity=settings.batch.INPUT_CAPACITY,
    )


class IngestPipeline:
    """Приём сообщений с шины и их запись в хранилище."""

    def __init__(
        self,
        writer: PositionWriter,
        *,
        metrics: MetricsRegistry | None = None,
        cache: ProximityCache | None = None,
        threshold_m: float = DEFAULT_DISTANCE_THRESHOLD_M,
        inclusive: bool = False,
        coordinate_order: CoordinateOrder = CoordinateOrder.LONLAT,
        timestamp_unit: TimestampUnit = TimestampUnit.MILLISECONDS,
        validate_ranges: bool = True,
        report_interval: float = DEFAULT_REPORT_INTERVAL,
        worker_count: int = DEFAULT_WORKER_COUNT,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
        queue_policy: BackpressurePolicy = BackpressurePolicy.DROP,
        shutdown_timeout: float = 10.0,
    ) -> None:
        self.metrics = metrics if metrics is not None else writer.metrics
        self.cache = cache if cache is not None else ProximityCache()
        self.dedup = Deduplicator(self.cache, self.metrics, threshold_m=threshold_m, inclusive=inclusive)
        self.writer = writer
        self.dispatcher = WorkerPool(
            self.process,
            self.metrics,
            worker_count=worker_count,
            capacity=queue_capacity,
            policy=queue_policy,
        )
        self.reporter = MetricsReporter(self.metrics, interval=report_interval)

        self.coordinate_order = coordinate_order
        self.timestamp_unit = timestamp_unit
        self.validate_ranges = validate_ranges
        self.shutdown_timeout = shutdown_timeout
        self._running = False

    @classmethod
    def from_settings(
        cls,
        storage: PositionStorage,
        settings: Settings,
        metrics: MetricsRegistry | None = None,
    ) -> IngestPipeline:
        """Собирает пайплайн по настройкам."""
        metrics = metrics if metrics is not None else MetricsRegistry()
        writer = build_writer(storage, metrics, settings)
        return cls(
            writer,
            metrics=metrics,
            threshold_m=settings.ingest.DISTANCE_THRESHOLD_M,
            inclusive=settings.ingest.DEDUP_INCLUSIVE,
            coordinate_order=settings.ingest.COORDINATE_ORDER,
            timestamp_unit=settings.ingest.TIMESTAMP_UNIT,
            validate_ranges=settings.ingest.VALIDATE_RANGES,
            report_interval=settings.metrics.REPORT_INTERVAL,
            worker_count=settings.ingest.WORKER_COUNT,
            queue_capacity=settings.ingest.QUEUE_CAPACITY,
            queue_policy=settings.ingest.QUEUE_POLICY,
            shutdown_timeout=settings.ingest.SHUTDOWN_TIMEOUT,
        )

    @property
    def storage(self) -> PositionStorage:
        return self.writer.storage

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_size(self) -> int:
        return self.dispatcher.queue_size

    async def start(self) -> None:
        """Запускает писатель, диспетчер и репортёр."""
        if self._running:
            return
        await self.writer.start()
        await self.dispatcher.start()
        await self.reporter.start()
        self._running = True
        await log_info(
            f"Пайплайн запущен: хранилище {self.storage.name}, запись {self.writer.name}",
            type_msg=TypeMsg.INFO,
        )

    async def stop(self) -> None:
        """Останавливает компоненты в обратном порядке с финальным сбросом пакета."""
        if not self._running:
            return
        self._running = False
        await self.reporter.stop()
        await self.dispatcher.stop(timeout=self.shutdown_timeout)
        await self.writer.stop()
        await log_info("Пайплайн остановлен", type_msg=TypeMsg.INFO)

    async def handle_message(self, body: bytes) -> None:
        """
        Обрабатывает тело сообщения с шины.

        Ошибки разбора и валидации учитываются в метриках и логируются,
        наружу не выходят.
        """
        self.metrics.incr("messages_received")

        try:
            message = parse_wire_message(body)
        except MarshalError as e:
            self.metrics.incr("marshal_errors")
            await log_warning(f"Не удалось разобрать сообщение: {e}", logger_name="pipeline")
            return

        try:
            event = message.to_event(
                order=self.coordinate_order,
                unit=self.timestamp_unit,
                check_ranges=self.validate_ranges,
            )
        except PositionValidationError as e:
            self.metrics.incr("validation_errors")
            await log_warning(
                f"Сообщение устройства '{message.unique_id}' не прошло валидацию: {e}",
                logger_name="pipeline",
                extra={"code": e.code},
            )
            return

        await self.dispatcher.submit(event)

    async def process(self, event: PositionEvent) -> None:
        """
        Единица работы воркера: фильтр и запись.

        Кэш обновляется только после того, как хранилище подтвердило
        запись позиции (в пакетном режиме это происходит при сбросе).
        """
        decision = self.dedup.check(event)
        if not decision.accepted:
            return

        await self.writer.write(event, on_persisted=self.dedup.commit)
