"""
Расстояние между координатами по формуле гаверсинусов.
"""

from __future__ import annotations

import math

from geo_ingest.common.constants import EARTH_RADIUS_M
from geo_ingest.shared.models.position import Coordinate


def haversine_distance(a: Coordinate, b: Coordinate) -> float:
    """Расстояние по дуге большого круга между двумя координатами (метры)."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    half_dlat = (lat2 - lat1) / 2
    half_dlon = math.radians(b.longitude - a.longitude) / 2

    h = math.sin(half_dlat) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(half_dlon) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))
