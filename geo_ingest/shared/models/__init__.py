"""
Модели позиций устройств.
"""

from geo_ingest.shared.models.common import HealthStatus
from geo_ingest.shared.models.position import (
    Coordinate,
    PositionEvent,
    WireLocation,
    WireMessage,
    normalize_ip,
    parse_wire_message,
    timestamp_to_datetime,
)

__all__ = [
    "HealthStatus",
    "Coordinate",
    "PositionEvent",
    "WireLocation",
    "WireMessage",
    "normalize_ip",
    "parse_wire_message",
    "timestamp_to_datetime",
]
