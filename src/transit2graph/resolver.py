"""
Spatial resolution: snap a coordinate onto the nearest eligible graph edge.
"""

import math
from typing import Sequence

import numpy as np
from shapely.geometry import Point
from shapely.ops import nearest_points
from shapely.strtree import STRtree

from .constants import DEFAULT_RESOLVE_DISTANCE, METERS_TO_DEGREES
from .geometry import distance_in_meters
from .graph import RouterPoint, RoutingGraph
from .profiles import Profile


class ResolveError(Exception):
    """No edge usable by the requested profiles lies within the search radius."""


class SpatialResolver:
    """Nearest-edge lookup over the edges present when it was built."""

    def __init__(self, graph: RoutingGraph, max_distance: float = DEFAULT_RESOLVE_DISTANCE):
        self.graph = graph
        self.max_distance = max_distance
        self._edge_ids = []
        self._lines = []
        for edge in graph.edges():
            self._edge_ids.append(edge.id)
            self._lines.append(graph.edge_geometry(edge.id))
        self._tree = STRtree(self._lines) if self._lines else None

    def _search_area(self, point: Point, latitude: float):
        # widen by longitude scale so the buffer covers max_distance east-west
        scale = max(math.cos(math.radians(latitude)), 0.01)
        return point.buffer(self.max_distance * METERS_TO_DEGREES / scale)

    def resolve(
        self, latitude: float, longitude: float, profiles: Sequence[Profile]
    ) -> RouterPoint:
        """Closest point on an edge every profile can traverse."""
        if self._tree is None:
            raise ResolveError("Graph has no edges to resolve onto")

        point = Point(longitude, latitude)
        possible = self._tree.query(self._search_area(point, latitude))
        indices = np.atleast_1d(possible).tolist() if possible is not None else []

        best = None
        for idx in sorted(indices):
            edge_id = self._edge_ids[idx]
            attributes = self.graph.edge_attributes(edge_id)
            if not all(p.can_traverse(attributes) for p in profiles):
                continue
            line = self._lines[idx]
            snapped = nearest_points(point, line)[1]
            distance = distance_in_meters(latitude, longitude, snapped.y, snapped.x)
            if distance > self.max_distance:
                continue
            if best is None or distance < best[0]:
                offset = line.project(snapped, normalized=True) if line.length > 0 else 0.0
                best = (distance, edge_id, offset, snapped)

        if best is None:
            raise ResolveError(
                f"No routable edge within {self.max_distance}m of ({latitude}, {longitude})"
            )
        _, edge_id, offset, snapped = best
        return RouterPoint(edge_id, float(offset), snapped.y, snapped.x)
