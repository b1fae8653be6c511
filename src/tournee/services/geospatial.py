"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def travel_time_matrix(points: Sequence[tuple[float, float]], average_speed_kmh: float) -> list[list[int]]:
    """Straight-line travel times in whole seconds between (lat, lon) points."""

    if average_speed_kmh <= 0:
        raise ValueError("Average speed must be positive.")
    size = len(points)
    matrix = [[0] * size for _ in range(size)]
    for i in range(size):
        lat1, lon1 = points[i]
        for j in range(size):
            if i == j:
                continue
            lat2, lon2 = points[j]
            distance_km = haversine_km(lat1, lon1, lat2, lon2)
            matrix[i][j] = int(round(distance_km / average_speed_kmh * 3600.0))
    return matrix
