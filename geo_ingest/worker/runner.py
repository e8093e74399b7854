"""
Запуск пайплайна приёма геолокации.

Подключает хранилище и шину, подписывает пайплайн на субъект,
поднимает эндпоинт здоровья и ждёт SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from typing import Awaitable, Callable

import uvicorn

from geo_ingest.common.constants import StorageBackend, TypeMsg
from geo_ingest.common.logger import log_error, log_info, setup_logging
from geo_ingest.config import settings
from geo_ingest.infra.database import TimescaleStorage, close_db, init_db
from geo_ingest.infra.event_bus import close_event_bus, init_event_bus
from geo_ingest.infra.redis_client import DocumentStorage, close_redis, init_redis
from geo_ingest.infra.storage import PositionStorage
from geo_ingest.services.health.app import create_app
from geo_ingest.worker.pipeline import IngestPipeline


class HealthServer(uvicorn.Server):
    """uvicorn.Server, не перехватывающий сигналы процесса."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


async def connect_storage() -> tuple[PositionStorage, Callable[[], Awaitable[None]]]:
    """
    Подключает хранилище, выбранное в STORAGE_BACKEND.

    Returns:
        (хранилище, функция закрытия подключения)
    """
    if settings.ingest.STORAGE_BACKEND == StorageBackend.DOCUMENT:
        redis_client = await init_redis()
        storage = DocumentStorage(
            redis_client,
            stream=settings.redis.REDIS_STREAM,
            geo_key=settings.redis.REDIS_GEO_KEY,
            maxlen=settings.redis.REDIS_STREAM_MAXLEN,
        )
        return storage, close_redis

    db = await init_db()
    return TimescaleStorage(db), close_db


def setup_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if not shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            shutdown_event.set()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def run_pipeline(shutdown_event: asyncio.Event | None = None) -> int:
    """
    Запускает пайплайн и работает до сигнала остановки.

    Returns:
        Код завершения процесса: 0 при штатной остановке,
        1 если не удалось подключиться к шине или хранилищу
    """
    setup_logging()

    if shutdown_event is None:
        shutdown_event = asyncio.Event()
        setup_signal_handlers(shutdown_event)

    await log_info(
        f"Запуск {settings.system.PROJECT_NAME} {settings.system.VERSION} "
        f"({settings.system.ENVIRONMENT})",
        type_msg=TypeMsg.INFO,
    )

    close_storage: Callable[[], Awaitable[None]] | None = None
    try:
        storage, close_storage = await connect_storage()
        bus = await init_event_bus()
    except Exception as e:
        await log_info(
            f"Не удалось подключиться к инфраструктуре: {e}",
            type_msg=TypeMsg.CRITICAL,
        )
        if close_storage is not None:
            await close_storage()
        return 1

    pipeline = IngestPipeline.from_settings(storage, settings)
    server: HealthServer | None = None
    server_task: asyncio.Task | None = None
    exit_code = 0

    try:
        await pipeline.start()
        await bus.subscribe(settings.rabbitmq.RABBITMQ_SUBJECT, pipeline.handle_message)

        if settings.health.HEALTH_ENABLED:
            app = create_app(
                pipeline,
                checks={"rabbitmq": bus.health_check, storage.name: storage.health_check},
                version=settings.system.VERSION,
            )
            server = HealthServer(uvicorn.Config(
                app,
                host=settings.health.HEALTH_HOST,
                port=settings.health.HEALTH_PORT,
                log_level=settings.logging.LOG_LEVEL.lower(),
                access_log=False,
                lifespan="off",
            ))
            server_task = asyncio.create_task(server.serve(), name="health-server")
            await log_info(
                f"Эндпоинт здоровья: http://{settings.health.HEALTH_HOST}:{settings.health.HEALTH_PORT}/health",
                type_msg=TypeMsg.INFO,
            )

        await shutdown_event.wait()

    except Exception as e:
        await log_error(f"Критическая ошибка пайплайна: {e}", exc_info=True)
        exit_code = 1
    finally:
        await log_info("Остановка пайплайна...", type_msg=TypeMsg.INFO)

        # Сначала прекращаем приём сообщений, затем дописываем очередь
        await close_event_bus()
        await pipeline.stop()

        if server is not None and server_task is not None:
            server.should_exit = True
            await asyncio.gather(server_task, return_exceptions=True)

        await close_storage()
        await log_info("Пайплайн остановлен", type_msg=TypeMsg.INFO)

    return exit_code


def main() -> None:
    """Точка входа."""
    try:
        code = asyncio.run(run_pipeline())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
