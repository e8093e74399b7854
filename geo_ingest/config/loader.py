"""
Загрузчик конфигурации проекта.
Базовые значения берутся из config/config.json,
адреса и секреты переопределяются переменными окружения (.env).
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from geo_ingest.common.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DISTANCE_THRESHOLD_M,
    DEFAULT_FLUSH_INTERVAL_MS,
    DEFAULT_FLUSH_TIMEOUT,
    DEFAULT_INSERT_TIMEOUT,
    DEFAULT_QUEUE_CAPACITY,
    DEFAULT_REPORT_INTERVAL,
    DEFAULT_WORKER_COUNT,
    BackpressurePolicy,
    CoordinateOrder,
    StorageBackend,
    TimestampUnit,
    WriteMode,
)


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить GEO_INGEST_CONFIG)."""
    override = os.getenv("GEO_INGEST_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "geo_ingest"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/geo_ingest.log"
    LOG_MAX_BYTES: int = 10485760


class RabbitMQSettings(BaseModel):
    """Настройки шины сообщений (RabbitMQ)."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "geo.events"
    RABBITMQ_SUBJECT: str = "coordinates"
    RABBITMQ_PREFETCH_COUNT: int = 100

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Пароль из окружения имеет приоритет."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class DatabaseSettings(BaseModel):
    """Настройки TimescaleDB (PostgreSQL)."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "gps_tracking"
    DB_USER: str = "gps_admin"
    DB_PASSWORD: str = ""
    DB_DSN: str | None = None
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 25
    DB_COMMAND_TIMEOUT: int = 60
    DB_APPLY_SCHEMA: bool = True

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN (явный DB_DSN важнее собранного из частей)."""
        if self.DB_DSN:
            return self.DB_DSN
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis (документное хранилище)."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "geo"
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_STREAM: str = "coordinates"
    REDIS_STREAM_MAXLEN: int = 1_000_000
    REDIS_GEO_KEY: str = "devices:geo"

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class IngestSettings(BaseModel):
    """Настройки пайплайна приёма."""
    STORAGE_BACKEND: StorageBackend = StorageBackend.TIMESCALE
    WRITE_MODE: WriteMode = WriteMode.BATCH
    WORKER_COUNT: int = Field(default=DEFAULT_WORKER_COUNT, ge=1)
    QUEUE_CAPACITY: int = Field(default=DEFAULT_QUEUE_CAPACITY, ge=1)
    QUEUE_POLICY: BackpressurePolicy = BackpressurePolicy.DROP
    DISTANCE_THRESHOLD_M: float = Field(default=DEFAULT_DISTANCE_THRESHOLD_M, ge=0)
    DEDUP_INCLUSIVE: bool = False
    COORDINATE_ORDER: CoordinateOrder = CoordinateOrder.LONLAT
    TIMESTAMP_UNIT: TimestampUnit = TimestampUnit.MILLISECONDS
    VALIDATE_RANGES: bool = True
    INSERT_TIMEOUT: float = Field(default=DEFAULT_INSERT_TIMEOUT, gt=0)
    SHUTDOWN_TIMEOUT: float = Field(default=10.0, gt=0)


class BatchSettings(BaseModel):
    """Настройки пакетной записи."""
    BATCH_SIZE: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    FLUSH_INTERVAL_MS: int = Field(default=DEFAULT_FLUSH_INTERVAL_MS, ge=1)
    FLUSH_TIMEOUT: float = Field(default=DEFAULT_FLUSH_TIMEOUT, gt=0)
    INPUT_CAPACITY: int = Field(default=DEFAULT_QUEUE_CAPACITY, ge=1)


class MetricsSettings(BaseModel):
    """Настройки периодического отчёта по метрикам."""
    REPORT_INTERVAL: int = Field(default=DEFAULT_REPORT_INTERVAL, ge=1)


class HealthSettings(BaseModel):
    """Настройки HTTP эндпоинта health/metrics."""
    HEALTH_ENABLED: bool = True
    HEALTH_HOST: str = "0.0.0.0"
    HEALTH_PORT: int = 3010


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    ingest: IngestSettings = Field(default_factory=IngestSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    health: HealthSettings = Field(default_factory=HealthSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Адреса, секреты и ключевые параметры пайплайна
        переопределяются из переменных окружения.
        """
        config_data = load_config_json()

        # Ключи, начинающиеся с _comment_, служат комментариями
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        def pick(key: str, default: Any) -> Any:
            return os.getenv(key, data.get(key, default))

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "geo_ingest"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", False),
                ENVIRONMENT=pick("ENVIRONMENT", "development"),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=pick("LOG_LEVEL", "INFO"),
                LOG_FORMAT=pick("LOG_FORMAT", "colored"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/geo_ingest.log"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_HOST=pick("RABBITMQ_HOST", "localhost"),
                RABBITMQ_PORT=int(pick("RABBITMQ_PORT", 5672)),
                RABBITMQ_USER=pick("RABBITMQ_USER", "guest"),
                RABBITMQ_PASSWORD=data.get("RABBITMQ_PASSWORD", "guest"),
                RABBITMQ_VHOST=data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_EXCHANGE=pick("RABBITMQ_EXCHANGE", "geo.events"),
                RABBITMQ_SUBJECT=pick("RABBITMQ_SUBJECT", "coordinates"),
                RABBITMQ_PREFETCH_COUNT=data.get("RABBITMQ_PREFETCH_COUNT", 100),
            ),
            database=DatabaseSettings(
                DB_HOST=pick("DB_HOST", "localhost"),
                DB_PORT=int(pick("DB_PORT", 5432)),
                DB_NAME=pick("DB_NAME", "gps_tracking"),
                DB_USER=pick("DB_USER", "gps_admin"),
                DB_PASSWORD=pick("DB_PASSWORD", ""),
                DB_DSN=pick("DB_DSN", None),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 2),
                DB_MAX_POOL_SIZE=data.get("DB_MAX_POOL_SIZE", 25),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 60),
                DB_APPLY_SCHEMA=data.get("DB_APPLY_SCHEMA", True),
            ),
            redis=RedisSettings(
                REDIS_HOST=pick("REDIS_HOST", "localhost"),
                REDIS_PORT=int(pick("REDIS_PORT", 6379)),
                REDIS_DB=data.get("REDIS_DB", 0),
                REDIS_PASSWORD=pick("REDIS_PASSWORD", ""),
                REDIS_NAMESPACE=data.get("REDIS_NAMESPACE", "geo"),
                REDIS_MAX_CONNECTIONS=data.get("REDIS_MAX_CONNECTIONS", 50),
                REDIS_STREAM=data.get("REDIS_STREAM", "coordinates"),
                REDIS_STREAM_MAXLEN=data.get("REDIS_STREAM_MAXLEN", 1_000_000),
                REDIS_GEO_KEY=data.get("REDIS_GEO_KEY", "devices:geo"),
            ),
            ingest=IngestSettings(
                STORAGE_BACKEND=pick("STORAGE_BACKEND", StorageBackend.TIMESCALE),
                WRITE_MODE=pick("WRITE_MODE", WriteMode.BATCH),
                WORKER_COUNT=int(pick("WORKER_COUNT", DEFAULT_WORKER_COUNT)),
                QUEUE_CAPACITY=int(pick("QUEUE_CAPACITY", DEFAULT_QUEUE_CAPACITY)),
                QUEUE_POLICY=pick("QUEUE_POLICY", BackpressurePolicy.DROP),
                DISTANCE_THRESHOLD_M=float(pick("DISTANCE_THRESHOLD", DEFAULT_DISTANCE_THRESHOLD_M)),
                DEDUP_INCLUSIVE=data.get("DEDUP_INCLUSIVE", False),
                COORDINATE_ORDER=pick("COORDINATE_ORDER", CoordinateOrder.LONLAT),
                TIMESTAMP_UNIT=pick("TIMESTAMP_UNIT", TimestampUnit.MILLISECONDS),
                VALIDATE_RANGES=data.get("VALIDATE_RANGES", True),
                INSERT_TIMEOUT=data.get("INSERT_TIMEOUT", DEFAULT_INSERT_TIMEOUT),
                SHUTDOWN_TIMEOUT=data.get("SHUTDOWN_TIMEOUT", 10.0),
            ),
            batch=BatchSettings(
                BATCH_SIZE=int(pick("BATCH_SIZE", DEFAULT_BATCH_SIZE)),
                FLUSH_INTERVAL_MS=int(pick("FLUSH_INTERVAL_MS", DEFAULT_FLUSH_INTERVAL_MS)),
                FLUSH_TIMEOUT=data.get("FLUSH_TIMEOUT", DEFAULT_FLUSH_TIMEOUT),
                INPUT_CAPACITY=data.get("BATCH_INPUT_CAPACITY", DEFAULT_QUEUE_CAPACITY),
            ),
            metrics=MetricsSettings(
                REPORT_INTERVAL=int(pick("REPORT_INTERVAL", DEFAULT_REPORT_INTERVAL)),
            ),
            health=HealthSettings(
                HEALTH_ENABLED=data.get("HEALTH_ENABLED", True),
                HEALTH_HOST=data.get("HEALTH_HOST", "0.0.0.0"),
                HEALTH_PORT=int(pick("HEALTH_PORT", 3010)),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением config.json подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
