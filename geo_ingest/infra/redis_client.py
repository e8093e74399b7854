"""
Клиент Redis и документное хранилище позиций поверх него.

Каждая позиция записывается JSON-документом в поток (XADD) и обновляет
GEO-индекс последних координат устройств.
"""

from __future__ import annotations

import json
from typing import Sequence

import redis.asyncio as redis
from redis.exceptions import RedisError

from geo_ingest.common.constants import StorageBackend, TypeMsg
from geo_ingest.common.exceptions import StorageError
from geo_ingest.common.logger import get_logger, log_error, log_info, log_warning
from geo_ingest.infra.storage import BulkWriteResult
from geo_ingest.shared.models.position import PositionEvent

logger = get_logger("redis")


class RedisClient:
    """
    Асинхронный клиент Redis.
    Singleton: одно подключение на процесс.
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "geo"

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    @property
    def namespace(self) -> str:
        return self._namespace

    def make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str,
        max_connections: int = 50,
        namespace: str = "geo",
    ) -> None:
        """
        Подключается к Redis и проверяет соединение PING.

        Args:
            url: URL Redis
            max_connections: Максимальное количество соединений
            namespace: Префикс ключей
        """
        if self._client is not None:
            return

        self._namespace = namespace

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )

        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к Redis.

        Returns:
            True если подключение работает
        """
        try:
            return bool(await self.client.ping())
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


# =============================================================================
# ДОКУМЕНТНОЕ ХРАНИЛИЩЕ
# =============================================================================

class DocumentStorage:
    """Хранилище позиций в виде JSON-документов в потоке Redis."""

    name = StorageBackend.DOCUMENT.value

    def __init__(
        self,
        client: RedisClient | None = None,
        stream: str = "coordinates",
        geo_key: str = "devices:geo",
        maxlen: int | None = 1_000_000,
    ) -> None:
        self._redis = client or get_redis()
        self._stream = stream
        self._geo_key = geo_key
        self._maxlen = maxlen

    def _queue_event(self, pipe: redis.client.Pipeline, event: PositionEvent) -> None:
        """Добавляет в пайплайн две команды: XADD документа и GEOADD точки."""
        pipe.xadd(
            self._redis.make_key(self._stream),
            {"document": json.dumps(event.to_document(), ensure_ascii=False)},
            maxlen=self._maxlen,
            approximate=True,
        )
        pipe.geoadd(
            self._redis.make_key(self._geo_key),
            (event.longitude, event.latitude, event.device_id),
        )

    async def insert(self, event: PositionEvent) -> None:
        pipe = self._redis.client.pipeline(transaction=False)
        self._queue_event(pipe, event)
        try:
            await pipe.execute()
        except RedisError as e:
            raise StorageError(f"Ошибка записи документа устройства {event.device_id}: {e}") from e

    async def insert_many(self, events: Sequence[PositionEvent]) -> BulkWriteResult:
        """
        Вставляет пакет одним пайплайном без транзакции.

        Результат каждой команды приходит отдельно (raise_on_error=False),
        поэтому ошибка одного документа не мешает остальным. Строка
        считается записанной, если прошёл её XADD.
        """
        result = BulkWriteResult()
        if not events:
            return result

        pipe = self._redis.client.pipeline(transaction=False)
        for event in events:
            self._queue_event(pipe, event)

        replies = await pipe.execute(raise_on_error=False)

        for index, event in enumerate(events):
            stream_reply = replies[2 * index]
            geo_reply = replies[2 * index + 1]
            if isinstance(stream_reply, Exception):
                result.add_error(stream_reply)
                await log_warning(
                    f"Ошибка записи документа устройства {event.device_id}: {stream_reply}",
                    logger_name="redis",
                )
                continue
            result.add_written(index)
            if isinstance(geo_reply, Exception):
                await log_warning(
                    f"Не удалось обновить GEO-индекс для {event.device_id}: {geo_reply}",
                    logger_name="redis",
                )

        return result

    async def health_check(self) -> bool:
        return await self._redis.health_check()


def get_redis() -> RedisClient:
    """
    Возвращает глобальный экземпляр RedisClient.

    Returns:
        RedisClient
    """
    return RedisClient()


async def init_redis() -> RedisClient:
    """
    Инициализирует подключение к Redis.
    Использует настройки из конфигурации.
    """
    from geo_ingest.config import settings

    redis_client = get_redis()
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )
    return redis_client


async def close_redis() -> None:
    """
    Закрывает подключение к Redis.
    """
    redis_client = get_redis()
    await redis_client.disconnect()
    await log_info("Redis отключён", type_msg=TypeMsg.INFO)
