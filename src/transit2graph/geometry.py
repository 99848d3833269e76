"""
Geometry helpers: great-circle distances, polyline cutting and Hilbert keys.

Coordinate sequences follow the shapely convention of (x=lon, y=lat) pairs.
"""

import math

import numpy as np

from .constants import EARTH_RADIUS_METERS, HILBERT_ORDER


def distance_in_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (haversine) distance between two coordinates in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def line_length_in_meters(coords) -> float:
    """Summed great-circle length of a (lon, lat) coordinate sequence."""
    coords = list(coords)
    total = 0.0
    for (lon1, lat1, *_), (lon2, lat2, *_) in zip(coords, coords[1:]):
        total += distance_in_meters(lat1, lon1, lat2, lon2)
    return total


def cap_distance(distance: float, maximum: float) -> float:
    """Clamp a distance to the largest value the graph store accepts."""
    return maximum if distance > maximum else distance


def split_line_by_distance(coords, max_distance: float) -> list[tuple[list, float]]:
    """Cut a polyline at interior coordinates so pieces stay under max_distance.

    Returns (piece_coords, length_in_meters) tuples. A single segment longer
    than max_distance cannot be cut and is returned as its own piece.
    """
    coords = [tuple(c[:2]) for c in coords]
    if len(coords) < 2:
        return []

    pieces = []
    current = [coords[0]]
    length = 0.0
    for lon, lat in coords[1:]:
        prev_lon, prev_lat = current[-1]
        step = distance_in_meters(prev_lat, prev_lon, lat, lon)
        if length + step > max_distance and len(current) > 1:
            pieces.append((current, length))
            current = [(prev_lon, prev_lat)]
            length = 0.0
        current.append((lon, lat))
        length += step
    pieces.append((current, length))
    return pieces


def hilbert_index(latitudes, longitudes, order: int = HILBERT_ORDER) -> np.ndarray:
    """Hilbert-curve distance of each coordinate on a 2**order grid."""
    n = 1 << order
    lat = np.asarray(latitudes, dtype=np.float64)
    lon = np.asarray(longitudes, dtype=np.float64)
    x = np.floor((lon + 180.0) / 360.0 * (n - 1)).astype(np.int64)
    y = np.floor((lat + 90.0) / 180.0 * (n - 1)).astype(np.int64)
    x = np.clip(x, 0, n - 1)
    y = np.clip(y, 0, n - 1)

    d = np.zeros(len(x), dtype=np.int64)
    s = n // 2
    while s > 0:
        rx = ((x & s) > 0).astype(np.int64)
        ry = ((y & s) > 0).astype(np.int64)
        d += s * s * ((3 * rx) ^ ry)
        # rotate the quadrant
        rotate = ry == 0
        flip = rotate & (rx == 1)
        x = np.where(flip, n - 1 - x, x)
        y = np.where(flip, n - 1 - y, y)
        x, y = np.where(rotate, y, x), np.where(rotate, x, y)
        s //= 2
    return d
