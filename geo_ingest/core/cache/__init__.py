"""
In-memory кэш последних координат устройств.
"""

from geo_ingest.core.cache.proximity import ProximityCache, ReadWriteLock

__all__ = ["ProximityCache", "ReadWriteLock"]
