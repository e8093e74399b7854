"""
Инфраструктура: шина сообщений, TimescaleDB, Redis и контракт хранилища.
"""

from geo_ingest.infra.storage import BulkWriteResult, PositionStorage

__all__ = [
    "BulkWriteResult",
    "PositionStorage",
]
