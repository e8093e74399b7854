"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class BackpressurePolicy(str, Enum):
    """Поведение при переполнении очереди диспетчера."""
    BLOCK = "block"  # callback шины ждёт свободного места
    DROP = "drop"    # событие отбрасывается, растёт messages_dropped


class WriteMode(str, Enum):
    """Стратегия записи в хранилище."""
    IMMEDIATE = "immediate"
    BATCH = "batch"


class StorageBackend(str, Enum):
    """Тип хранилища."""
    TIMESCALE = "timescale"
    DOCUMENT = "document"


class CoordinateOrder(str, Enum):
    """Порядок элементов в location.coordinates."""
    LONLAT = "lonlat"  # GeoJSON: [longitude, latitude]
    LATLON = "latlon"


class TimestampUnit(str, Enum):
    """Единица измерения last_modified."""
    SECONDS = "seconds"
    MILLISECONDS = "milliseconds"


# Радиус Земли для формулы гаверсинусов (метры)
EARTH_RADIUS_M = 6_371_000.0

# Значения по умолчанию для пайплайна
DEFAULT_DISTANCE_THRESHOLD_M = 5.0
DEFAULT_WORKER_COUNT = 5
DEFAULT_QUEUE_CAPACITY = 10_000
DEFAULT_INSERT_TIMEOUT = 5.0
DEFAULT_BATCH_SIZE = 500
DEFAULT_FLUSH_INTERVAL_MS = 2000
DEFAULT_FLUSH_TIMEOUT = 30.0
DEFAULT_REPORT_INTERVAL = 120
