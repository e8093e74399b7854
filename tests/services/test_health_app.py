# tests/services/test_health_app.py
"""
Тесты для HTTP эндпоинтов здоровья и метрик.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from geo_ingest.core.metrics import MetricsRegistry
from geo_ingest.services.health.app import create_app, render_prometheus


@pytest.fixture
def pipeline() -> MagicMock:
    """Мок пайплайна с настоящим реестром метрик."""
    mock_pipeline = MagicMock()
    mock_pipeline.is_running = True
    mock_pipeline.queue_size = 3
    mock_pipeline.metrics = MetricsRegistry()
    return mock_pipeline


class TestHealthEndpoint:
    """Тесты для GET /health."""

    def test_healthy(self, pipeline: MagicMock) -> None:
        """Все зависимости доступны: 200 и статус healthy."""
        pipeline.metrics.incr("messages_received", 7)
        checks = {"rabbitmq": AsyncMock(return_value=True), "timescale": AsyncMock(return_value=True)}
        client = TestClient(create_app(pipeline, checks=checks, version="1.0.0"))

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "geo_ingest"
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert data["dependencies"] == {"rabbitmq": "healthy", "timescale": "healthy"}
        assert data["queue_size"] == 3
        assert data["metrics"]["messages_received"] == 7

    def test_snapshot_does_not_reset(self, pipeline: MagicMock) -> None:
        """Запрос здоровья не обнуляет счётчики."""
        pipeline.metrics.incr("processed", 2)
        client = TestClient(create_app(pipeline))

        client.get("/health")

        assert pipeline.metrics.get("processed") == 2

    def test_dependency_unhealthy(self, pipeline: MagicMock) -> None:
        """Недоступная зависимость даёт 503 и статус degraded."""
        checks = {"rabbitmq": AsyncMock(return_value=True), "timescale": AsyncMock(return_value=False)}
        client = TestClient(create_app(pipeline, checks=checks))

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["dependencies"]["timescale"] == "unhealthy"

    def test_check_raises(self, pipeline: MagicMock) -> None:
        """Исключение в проверке считается недоступностью."""
        checks = {"redis": AsyncMock(side_effect=ConnectionError("refused"))}
        client = TestClient(create_app(pipeline, checks=checks))

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["dependencies"]["redis"] == "unhealthy"

    def test_pipeline_not_running(self, pipeline: MagicMock) -> None:
        """Остановленный пайплайн даёт 503."""
        pipeline.is_running = False
        client = TestClient(create_app(pipeline))

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"


class TestMetricsEndpoint:
    """Тесты для GET /metrics."""

    def test_prometheus_text(self, pipeline: MagicMock) -> None:
        """Счётчики отдаются в текстовом формате Prometheus."""
        pipeline.metrics.incr("rows_written", 42)
        client = TestClient(create_app(pipeline))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "# TYPE geo_ingest_rows_written_total counter" in response.text
        assert "geo_ingest_rows_written_total 42" in response.text
        assert "geo_ingest_queue_size 3" in response.text


class TestRenderPrometheus:
    """Тесты для render_prometheus."""

    def test_all_counters(self) -> None:
        """Каждый счётчик получает HELP, TYPE и значение."""
        registry = MetricsRegistry()
        registry.incr("messages_received", 5)

        text = render_prometheus(registry.snapshot())

        for name in registry.snapshot().as_dict():
            assert f"# HELP geo_ingest_{name}_total" in text
            assert f"# TYPE geo_ingest_{name}_total counter" in text
        assert "geo_ingest_messages_received_total 5" in text
        assert "uptime_seconds" not in text

    def test_gauges_and_prefix(self) -> None:
        """Очередь и время работы выводятся как gauge с заданным префиксом."""
        text = render_prometheus(MetricsRegistry().snapshot(), uptime_seconds=1.5, queue_size=0, prefix="svc")

        assert "# TYPE svc_queue_size gauge" in text
        assert "svc_queue_size 0" in text
        assert "svc_uptime_seconds 1.500" in text
        assert text.endswith("\n")
