"""
Шина сообщений на базе RabbitMQ.

Устройства публикуют координаты в topic exchange с routing key равным
субъекту ("coordinates"). Шина не разбирает тело: подписчик получает
байты как есть и сам отвечает за декодирование.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable

import aio_pika
from aio_pika import ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange, AbstractQueue

from geo_ingest.common.constants import TypeMsg
from geo_ingest.common.logger import get_logger, log_debug, log_error, log_info

logger = get_logger("event_bus")


# Тип обработчика сырого сообщения
MessageHandler = Callable[[bytes], Awaitable[None]]


class EventBus:
    """
    Шина сообщений на базе RabbitMQ.

    Реализует:
    - Публикацию сырых сообщений в exchange по субъекту
    - Подписку на субъект через durable очередь
    - Автоматическое переподключение (connect_robust)
    """

    _instance: EventBus | None = None
    _connection: AbstractConnection | None = None
    _channel: AbstractChannel | None = None
    _exchange: AbstractExchange | None = None

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection = None
        self._channel = None
        self._exchange = None
        self._exchange_name = "geo.events"
        self._queues: dict[str, AbstractQueue] = {}
        self._consumer_tags: dict[str, str] = {}

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    async def connect(
        self,
        url: str,
        exchange_name: str | None = None,
        prefetch_count: int = 100,
    ) -> None:
        """
        Подключается к RabbitMQ.

        Args:
            url: URL RabbitMQ
            exchange_name: Имя exchange
            prefetch_count: Количество сообщений для prefetch
        """
        if self.is_connected:
            return

        if exchange_name:
            self._exchange_name = exchange_name

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel()

        await self._channel.set_qos(prefetch_count=prefetch_count)

        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )

        await log_info("Подключение к RabbitMQ установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Отменяет подписки и закрывает соединение с RabbitMQ."""
        for queue_name, tag in list(self._consumer_tags.items()):
            queue = self._queues.get(queue_name)
            if queue is None:
                continue
            try:
                await queue.cancel(tag)
            except Exception as e:
                await log_error(f"Не удалось отменить подписку {queue_name}: {e}")
        self._consumer_tags = {}

        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            self._queues = {}
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, subject: str, body: bytes) -> None:
        """
        Публикует сообщение в exchange.

        Args:
            subject: Субъект (routing key)
            body: Тело сообщения

        Raises:
            RuntimeError: Нет соединения с RabbitMQ
        """
        if not self.is_connected or self._exchange is None:
            raise RuntimeError("Нет соединения с RabbitMQ")

        message = Message(
            body=body,
            content_type="application/json",
            timestamp=datetime.now(timezone.utc),
        )
        await self._exchange.publish(message, routing_key=subject)

    async def subscribe(
        self,
        subject: str,
        handler: MessageHandler,
        queue_name: str | None = None,
    ) -> None:
        """
        Подписывается на субъект.

        Args:
            subject: Субъект (routing key pattern)
            handler: Асинхронный обработчик тела сообщения
            queue_name: Имя очереди (если None, geo_ingest.<subject>)

        Raises:
            RuntimeError: Нет соединения с RabbitMQ
        """
        if not self.is_connected or self._channel is None or self._exchange is None:
            raise RuntimeError("Не удалось подписаться: нет соединения с RabbitMQ")

        if queue_name is None:
            queue_name = f"geo_ingest.{subject.replace('.', '_')}"

        if queue_name in self._queues:
            await log_debug(f"Очередь {queue_name} уже подписана", logger_name="event_bus")
            return

        queue = await self._channel.declare_queue(queue_name, durable=True)
        await queue.bind(self._exchange, routing_key=subject)
        self._queues[queue_name] = queue

        tag = await queue.consume(self._make_consumer(handler))
        self._consumer_tags[queue_name] = tag

        await log_info(f"Подписка на субъект: {subject} (очередь {queue_name})", type_msg=TypeMsg.INFO)

    def _make_consumer(self, handler: MessageHandler) -> Callable[[aio_pika.abc.AbstractIncomingMessage], Awaitable[None]]:
        """Создаёт consumer, передающий тело сообщения обработчику."""
        async def consumer(message: aio_pika.abc.AbstractIncomingMessage) -> None:
            # Ошибка обработчика не возвращает сообщение в очередь:
            # битые сообщения не должны крутиться бесконечно
            async with message.process(ignore_processed=True):
                try:
                    await handler(message.body)
                except Exception as e:
                    await log_error(f"Ошибка обработки сообщения: {e}", logger_name="event_bus")

        return consumer

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к RabbitMQ.

        Returns:
            True если подключение работает
        """
        return self.is_connected


# Глобальный экземпляр
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """
    Возвращает глобальный экземпляр EventBus.

    Returns:
        EventBus
    """
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


async def init_event_bus() -> EventBus:
    """
    Инициализирует подключение к RabbitMQ.
    Использует настройки из конфигурации.
    """
    from geo_ingest.config import settings

    event_bus = get_event_bus()
    await event_bus.connect(
        url=settings.rabbitmq.url,
        exchange_name=settings.rabbitmq.RABBITMQ_EXCHANGE,
        prefetch_count=settings.rabbitmq.RABBITMQ_PREFETCH_COUNT,
    )
    await log_info(
        f"RabbitMQ подключён: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}",
        type_msg=TypeMsg.INFO,
    )
    return event_bus


async def close_event_bus() -> None:
    """
    Закрывает подключение к RabbitMQ.
    """
    event_bus = get_event_bus()
    await event_bus.disconnect()
    await log_info("RabbitMQ отключён", type_msg=TypeMsg.INFO)
