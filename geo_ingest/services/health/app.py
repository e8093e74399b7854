"""
FastAPI приложение здоровья и метрик пайплайна.

Endpoints:
- GET /health - состояние зависимостей и текущие счётчики
- GET /metrics - счётчики в текстовом формате Prometheus
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Awaitable, Callable

from fastapi import FastAPI, Response
from fastapi.responses import PlainTextResponse

from geo_ingest.common.logger import log_warning
from geo_ingest.core.metrics import MetricsSnapshot
from geo_ingest.shared.models.common import HealthStatus

if TYPE_CHECKING:
    from geo_ingest.worker.pipeline import IngestPipeline


SERVICE_NAME = "geo_ingest"
METRICS_PREFIX = "geo_ingest"

# Проверка зависимости: True, если она доступна
HealthCheck = Callable[[], Awaitable[bool]]

_METRIC_HELP: dict[str, str] = {
    "messages_received": "Сообщения, полученные с шины",
    "messages_dropped": "Сообщения, отброшенные при переполнении очереди",
    "validation_errors": "Сообщения, не прошедшие валидацию",
    "marshal_errors": "Сообщения, которые не удалось разобрать",
    "cache_hits": "Устройства, найденные в кэше координат",
    "cache_misses": "Устройства, отсутствующие в кэше координат",
    "positions_skipped": "Позиции, отфильтрованные как близкие к предыдущей",
    "processed": "Позиции, переданные в хранилище",
    "batches_written": "Записанные пакеты",
    "rows_written": "Записанные строки",
    "writer_errors": "Ошибки записи в хранилище",
}


def render_prometheus(
    snapshot: MetricsSnapshot,
    uptime_seconds: float | None = None,
    queue_size: int | None = None,
    prefix: str = METRICS_PREFIX,
) -> str:
    """
    Форматирует снимок метрик в текстовый формат Prometheus.

    Счётчики реестра обнуляются репортёром каждый интервал, а счётчики
    prometheus_client сбросить нельзя, поэтому текст собирается из снимка.
    Для Prometheus обнуление выглядит как перезапуск счётчика.
    """
    lines: list[str] = []
    for name, value in snapshot.as_dict().items():
        metric = f"{prefix}_{name}_total"
        lines.append(f"# HELP {metric} {_METRIC_HELP.get(name, name)}")
        lines.append(f"# TYPE {metric} counter")
        lines.append(f"{metric} {value}")

    if queue_size is not None:
        lines.append(f"# HELP {prefix}_queue_size События в очереди диспетчера")
        lines.append(f"# TYPE {prefix}_queue_size gauge")
        lines.append(f"{prefix}_queue_size {queue_size}")

    if uptime_seconds is not None:
        lines.append(f"# HELP {prefix}_uptime_seconds Время работы процесса")
        lines.append(f"# TYPE {prefix}_uptime_seconds gauge")
        lines.append(f"{prefix}_uptime_seconds {uptime_seconds:.3f}")

    return "\n".join(lines) + "\n"


def create_app(
    pipeline: IngestPipeline,
    checks: dict[str, HealthCheck] | None = None,
    version: str | None = None,
) -> FastAPI:
    """
    Создаёт приложение здоровья.

    Args:
        pipeline: Пайплайн, чьи метрики отдаются
        checks: Проверки зависимостей по имени ("rabbitmq", "timescale", ...)
        version: Версия сервиса
    """
    started_at = time.monotonic()
    dependency_checks = dict(checks or {})

    app = FastAPI(
        title="Geo Ingest Health",
        description="Здоровье и метрики пайплайна приёма геолокации.",
        version=version or "0.0.0",
        docs_url=None,
        redoc_url=None,
    )

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(response: Response) -> HealthStatus:
        """Проверка здоровья сервиса."""
        dependencies: dict[str, str] = {}
        for name, check in dependency_checks.items():
            try:
                healthy = await check()
            except Exception as e:
                await log_warning(f"Проверка {name} завершилась ошибкой: {e}", logger_name="health")
                healthy = False
            dependencies[name] = "healthy" if healthy else "unhealthy"

        status = "healthy"
        if not pipeline.is_running or any(v != "healthy" for v in dependencies.values()):
            status = "degraded"
            response.status_code = 503

        return HealthStatus(
            service=SERVICE_NAME,
            status=status,
            version=version,
            uptime_seconds=round(time.monotonic() - started_at, 3),
            dependencies=dependencies,
            queue_size=pipeline.queue_size,
            metrics=pipeline.metrics.snapshot().as_dict(),
        )

    # === METRICS ===

    @app.get("/metrics", response_class=PlainTextResponse, tags=["Metrics"])
    async def metrics() -> PlainTextResponse:
        """Счётчики пайплайна без сброса."""
        body = render_prometheus(
            pipeline.metrics.snapshot(),
            uptime_seconds=time.monotonic() - started_at,
            queue_size=pipeline.queue_size,
        )
        return PlainTextResponse(body, media_type="text/plain; version=0.0.4")

    return app
