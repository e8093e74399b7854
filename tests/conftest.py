# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Sequence
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("RABBITMQ_PASSWORD", "guest")

from geo_ingest.core.cache.proximity import ProximityCache
from geo_ingest.core.metrics import MetricsRegistry
from geo_ingest.infra.storage import BulkWriteResult
from geo_ingest.shared.models.position import PositionEvent


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "PROJECT_NAME": "geo_ingest_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "json",
        "LOG_TO_FILE": False,
        "RABBITMQ_HOST": "rabbit.test",
        "RABBITMQ_EXCHANGE": "geo.test",
        "RABBITMQ_SUBJECT": "coordinates",
        "RABBITMQ_PREFETCH_COUNT": 10,
        "DB_HOST": "db.test",
        "DB_NAME": "gps_test",
        "DB_USER": "tester",
        "REDIS_HOST": "redis.test",
        "REDIS_NAMESPACE": "geo_test",
        "STORAGE_BACKEND": "document",
        "WRITE_MODE": "immediate",
        "WORKER_COUNT": 2,
        "QUEUE_CAPACITY": 100,
        "QUEUE_POLICY": "block",
        "DISTANCE_THRESHOLD": 10.0,
        "DEDUP_INCLUSIVE": True,
        "COORDINATE_ORDER": "latlon",
        "TIMESTAMP_UNIT": "seconds",
        "BATCH_SIZE": 50,
        "FLUSH_INTERVAL_MS": 500,
        "REPORT_INTERVAL": 30,
        "HEALTH_PORT": 3999,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ПАЙПЛАЙНА
# =============================================================================

class FakeStorage:
    """Хранилище в памяти с управляемыми ошибками."""

    name = "fake"

    def __init__(self) -> None:
        self.rows: list[PositionEvent] = []
        self.batches: list[list[PositionEvent]] = []
        self.fail_devices: set[str] = set()
        self.insert_error: Exception | None = None
        self.delay: float = 0.0
        self.healthy = True

    async def insert(self, event: PositionEvent) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.insert_error is not None:
            raise self.insert_error
        if event.device_id in self.fail_devices:
            raise RuntimeError(f"insert failed for {event.device_id}")
        self.rows.append(event)

    async def insert_many(self, events: Sequence[PositionEvent]) -> BulkWriteResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.insert_error is not None:
            raise self.insert_error
        batch = list(events)
        self.batches.append(batch)
        result = BulkWriteResult()
        for index, event in enumerate(batch):
            if event.device_id in self.fail_devices:
                result.add_error(f"insert failed for {event.device_id}")
            else:
                self.rows.append(event)
                result.add_written(index)
        return result

    async def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def metrics() -> MetricsRegistry:
    """Свежий реестр метрик."""
    return MetricsRegistry()


@pytest.fixture
def cache() -> ProximityCache:
    """Пустой кэш координат."""
    return ProximityCache()


@pytest.fixture
def fake_storage() -> FakeStorage:
    """Хранилище в памяти."""
    return FakeStorage()


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины сообщений."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.subscribe = AsyncMock(return_value=None)
    event_bus.health_check = AsyncMock(return_value=True)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

def make_event(
    device_id: str = "device-1",
    latitude: float = 40.7128,
    longitude: float = -74.0060,
    **overrides: Any,
) -> PositionEvent:
    """Создаёт PositionEvent с разумными значениями по умолчанию."""
    data: dict[str, Any] = {
        "device_id": device_id,
        "user_id": "user-1",
        "fleet": "fleet-a",
        "latitude": latitude,
        "longitude": longitude,
        "event_time": datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        "last_modified": 1705320000000,
        "origin_ip": "10.0.0.1",
    }
    data.update(overrides)
    return PositionEvent(**data)


@pytest.fixture
def event_factory() -> Callable[..., PositionEvent]:
    """Фабрика PositionEvent."""
    return make_event


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Сообщение продюсера (GeoJSON-порядок, миллисекунды)."""
    return {
        "unique_id": "device-1",
        "user_id": "user-1",
        "fleet": "fleet-a",
        "location": {"type": "Point", "coordinates": [-74.0060, 40.7128]},
        "ip_origin": "10.0.0.1",
        "last_modified": 1705320000000,
    }


@pytest.fixture
def sample_body(sample_payload: dict[str, Any]) -> bytes:
    """Тело сообщения с шины."""
    return json.dumps(sample_payload).encode()
