"""
Геометрия и фильтрация близких точек.
"""

from geo_ingest.core.geo.distance import haversine_distance
from geo_ingest.core.geo.dedup import Decision, Deduplicator, should_accept

__all__ = [
    "haversine_distance",
    "Decision",
    "Deduplicator",
    "should_accept",
]
