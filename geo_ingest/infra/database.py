"""
Менеджер TimescaleDB (PostgreSQL) и хранилище позиций поверх него.
Реализует пул соединений, retry подключения и пакетную вставку
с изоляцией ошибок по строкам.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import wraps
from typing import Any, AsyncGenerator, Callable, Sequence, TypeVar

import asyncpg
from asyncpg import Connection, Pool

from geo_ingest.common.constants import StorageBackend, TypeMsg
from geo_ingest.common.exceptions import StorageError
from geo_ingest.common.logger import get_logger, log_error, log_info, log_warning
from geo_ingest.infra.storage import BulkWriteResult
from geo_ingest.shared.models.position import PositionEvent

logger = get_logger("database")

T = TypeVar("T")


def retry_on_connection_error(
    max_attempts: int = 3,
    delay: float = 1.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Декоратор для повторного подключения при ошибках соединения.
    Применяется только к установке соединения: записи не повторяются.

    Args:
        max_attempts: Максимальное количество попыток
        delay: Базовая задержка между попытками (секунды)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Exception | None = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except (
                    asyncpg.PostgresConnectionError,
                    asyncpg.InterfaceError,
                    ConnectionRefusedError,
                    OSError,
                ) as e:
                    last_error = e
                    if attempt < max_attempts:
                        await log_warning(
                            f"Ошибка подключения к БД (попытка {attempt}/{max_attempts}): {e}",
                        )
                        await asyncio.sleep(delay * attempt)
                    else:
                        await log_error(f"Не удалось подключиться к БД после {max_attempts} попыток: {e}")

            raise last_error  # type: ignore

        return wrapper  # type: ignore

    return decorator


class DatabaseManager:
    """
    Менеджер подключений к PostgreSQL.
    Реализует паттерн Singleton для пула соединений.
    """

    _instance: DatabaseManager | None = None
    _pool: Pool | None = None

    def __new__(cls) -> DatabaseManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._pool = None

    @property
    def pool(self) -> Pool:
        """Возвращает пул соединений."""
        if self._pool is None:
            raise RuntimeError("Пул соединений не инициализирован. Вызовите connect() сначала.")
        return self._pool

    @retry_on_connection_error(max_attempts=3, delay=1.0)
    async def connect(
        self,
        dsn: str,
        min_size: int = 2,
        max_size: int = 25,
        command_timeout: int = 60,
    ) -> None:
        """
        Создаёт пул соединений к PostgreSQL.

        Args:
            dsn: DSN строка подключения
            min_size: Минимальный размер пула
            max_size: Максимальный размер пула
            command_timeout: Таймаут команд (секунды)
        """
        if self._pool is not None:
            return

        await log_info("Подключение к TimescaleDB...", type_msg=TypeMsg.INFO)

        self._pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
        )

        await log_info("Подключение к TimescaleDB установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает пул соединений."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            await log_info("Соединение с TimescaleDB закрыто", type_msg=TypeMsg.INFO)

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[Connection, None]:
        """
        Контекстный менеджер для получения соединения из пула.

        Example:
            async with db.acquire() as conn:
                await conn.execute("INSERT INTO gps_positions ...")
        """
        async with self.pool.acquire() as connection:
            yield connection

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Connection, None]:
        """
        Контекстный менеджер для транзакции.
        Commit при успехе, rollback при исключении.
        """
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                yield connection

    async def execute(self, query: str, *args: Any) -> str:
        """Выполняет SQL запрос без возврата данных."""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any:
        """Выполняет SQL запрос и возвращает одно значение."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, column=column)

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к БД.

        Returns:
            True если подключение работает
        """
        try:
            result = await self.fetchval("SELECT 1")
            return result == 1
        except Exception as e:
            await log_error(f"Health check TimescaleDB failed: {e}")
            return False


# =============================================================================
# ХРАНИЛИЩЕ ПОЗИЦИЙ
# =============================================================================

INSERT_POSITION_SQL = """
    INSERT INTO gps_positions (
        time, device_id, user_id, fleet, latitude, longitude,
        altitude, speed, heading, accuracy, battery_level, origin_ip, metadata, geom
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12::inet, $13::jsonb,
        ST_SetSRID(ST_MakePoint($6, $5), 4326)::geography
    )
"""


class TimescaleStorage:
    """Хранилище позиций в гипертаблице gps_positions."""

    name = StorageBackend.TIMESCALE.value

    def __init__(self, db: DatabaseManager | None = None) -> None:
        self._db = db or get_db()

    async def insert(self, event: PositionEvent) -> None:
        try:
            async with self._db.acquire() as conn:
                await conn.execute(INSERT_POSITION_SQL, *event.to_row())
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise StorageError(f"Ошибка вставки позиции устройства {event.device_id}: {e}") from e

    async def insert_many(self, events: Sequence[PositionEvent]) -> BulkWriteResult:
        """
        Вставляет пакет в одной транзакции.

        Каждая строка выполняется в своей точке сохранения, поэтому
        ошибка строки откатывает только её, а остальные строки пакета
        фиксируются общим commit.
        """
        result = BulkWriteResult()
        if not events:
            return result

        async with self._db.transaction() as conn:
            for index, event in enumerate(events):
                try:
                    async with conn.transaction():
                        await conn.execute(INSERT_POSITION_SQL, *event.to_row())
                except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                    result.add_error(e)
                    await log_warning(
                        f"Ошибка вставки позиции устройства {event.device_id}: {e}",
                        logger_name="database",
                    )
                else:
                    result.add_written(index)

        return result

    async def health_check(self) -> bool:
        return await self._db.health_check()


# Глобальный экземпляр
_db_manager: DatabaseManager | None = None


def get_db() -> DatabaseManager:
    """
    Возвращает глобальный экземпляр DatabaseManager.

    Returns:
        DatabaseManager
    """
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def init_db() -> DatabaseManager:
    """
    Инициализирует подключение к TimescaleDB по настройкам
    и применяет схему, если это разрешено.
    """
    from geo_ingest.config import settings

    db = get_db()
    await db.connect(
        dsn=settings.database.dsn,
        min_size=settings.database.DB_MIN_POOL_SIZE,
        max_size=settings.database.DB_MAX_POOL_SIZE,
        command_timeout=settings.database.DB_COMMAND_TIMEOUT,
    )
    await log_info(
        f"TimescaleDB подключена: {settings.database.DB_HOST}:{settings.database.DB_PORT}/{settings.database.DB_NAME}",
        type_msg=TypeMsg.INFO,
    )

    if settings.database.DB_APPLY_SCHEMA:
        await _init_schema(db)

    return db


async def _init_schema(db: DatabaseManager) -> None:
    """Применяет migrations/init.sql под advisory lock."""
    from geo_ingest.config.loader import get_project_root

    schema_path = get_project_root() / "migrations" / "init.sql"
    if not schema_path.exists():
        await log_warning(f"Файл схемы БД не найден: {schema_path}")
        return

    with open(schema_path, "r", encoding="utf-8") as f:
        schema_sql = f.read()

    await log_info("Применение схемы БД...", type_msg=TypeMsg.INFO)

    try:
        # Advisory lock не даёт двум экземплярам применять схему одновременно
        async with db.transaction() as conn:
            await conn.execute("SELECT pg_advisory_xact_lock(73105)")
            await conn.execute(schema_sql)
    except asyncpg.PostgresError as e:
        if "deadlock detected" in str(e) or "already exists" in str(e):
            await log_warning(f"Игнорируем ошибку инициализации схемы (гонка процессов): {e}")
        else:
            await log_error(f"Ошибка при инициализации схемы БД: {e}")
            raise
    else:
        await log_info("Схема БД применена", type_msg=TypeMsg.INFO)


async def close_db() -> None:
    """
    Закрывает подключение к базе данных.
    """
    db = get_db()
    await db.disconnect()
    await log_info("TimescaleDB отключена", type_msg=TypeMsg.INFO)
