"""
Общие модели сервисных ответов.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    uptime_seconds: float | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    # dependencies: {"rabbitmq": "healthy", "timescale": "unhealthy"}
    queue_size: int = 0
    metrics: dict[str, int] = Field(default_factory=dict)
