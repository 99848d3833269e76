"""
In-memory routing graph: vertices, undirected edges and interned edge profiles.
"""

from dataclasses import dataclass
from typing import Callable, Iterator, Mapping, NamedTuple, Optional

import numpy as np
from shapely.geometry import LineString
from shapely.ops import substring

from .constants import DEFAULT_MAX_EDGE_DISTANCE, NO_VERTEX, ToleranceConfig
from .geometry import cap_distance, hilbert_index, line_length_in_meters


class EdgeProfiles:
    """Interning table of edge attribute sets."""

    def __init__(self):
        self._profiles: list[dict] = []
        self._ids: dict[frozenset, int] = {}

    def add(self, attributes: Mapping[str, str]) -> int:
        """Return the id of an identical attribute set, adding it if new."""
        key = frozenset((str(k), str(v)) for k, v in attributes.items())
        profile_id = self._ids.get(key)
        if profile_id is None:
            profile_id = len(self._profiles)
            self._profiles.append({str(k): str(v) for k, v in attributes.items()})
            self._ids[key] = profile_id
        return profile_id

    def get(self, profile_id: int) -> dict:
        return dict(self._profiles[profile_id])

    def __len__(self) -> int:
        return len(self._profiles)


@dataclass
class Edge:
    """An undirected edge; shape holds interior (lon, lat) points from -> to."""

    id: int
    from_vertex: int
    to_vertex: int
    distance: float
    profile: int
    meta: int = 0
    shape: Optional[list] = None


class EdgeView(NamedTuple):
    """An edge as seen from one of its vertices."""

    edge_id: int
    to: int
    distance: float
    profile_id: int
    meta: int
    forward: bool


@dataclass
class RouterPoint:
    """A location snapped onto an edge; offset is 0 at from_vertex, 1 at to_vertex."""

    edge_id: int
    offset: float
    latitude: float
    longitude: float


class RoutingGraph:
    """Routable network with a locality sort that reports vertex swaps."""

    def __init__(self, max_edge_distance: float = DEFAULT_MAX_EDGE_DISTANCE):
        self.max_edge_distance = float(max_edge_distance)
        self.profiles = EdgeProfiles()
        self._latitudes: list[float] = []
        self._longitudes: list[float] = []
        self._adjacency: list[list[int]] = []
        self._edges: list[Optional[Edge]] = []

    # Vertices

    def insert_vertex(self, latitude: float, longitude: float) -> int:
        vertex = len(self._latitudes)
        self._latitudes.append(float(np.float32(latitude)))
        self._longitudes.append(float(np.float32(longitude)))
        self._adjacency.append([])
        return vertex

    def vertex_count(self) -> int:
        return len(self._latitudes)

    def _check_vertex(self, vertex: int) -> None:
        if not 0 <= vertex < len(self._latitudes):
            raise IndexError(f"Vertex {vertex} does not exist")

    def get_coordinate(self, vertex: int) -> tuple[float, float]:
        """(latitude, longitude) of a vertex."""
        self._check_vertex(vertex)
        return self._latitudes[vertex], self._longitudes[vertex]

    # Edges

    def intern_attribute_profile(self, attributes: Mapping[str, str]) -> int:
        return self.profiles.add(attributes)

    def insert_edge(
        self,
        from_vertex: int,
        to_vertex: int,
        distance: float,
        profile_id: int,
        meta: int = 0,
        shape: Optional[list] = None,
    ) -> int:
        """Add an undirected edge and return its id."""
        self._check_vertex(from_vertex)
        self._check_vertex(to_vertex)
        if from_vertex == to_vertex:
            raise ValueError(f"Cannot add a self-loop on vertex {from_vertex}")
        if distance < 0 or distance > self.max_edge_distance:
            raise ValueError(
                f"Edge distance {distance} outside [0, {self.max_edge_distance}]"
            )
        if not 0 <= profile_id < len(self.profiles):
            raise ValueError(f"Unknown edge profile {profile_id}")

        edge = Edge(
            len(self._edges),
            from_vertex,
            to_vertex,
            float(distance),
            profile_id,
            meta,
            [tuple(c[:2]) for c in shape] if shape else None,
        )
        self._edges.append(edge)
        self._adjacency[from_vertex].append(edge.id)
        self._adjacency[to_vertex].append(edge.id)
        return edge.id

    def get_edge(self, edge_id: int) -> Edge:
        edge = self._edges[edge_id] if 0 <= edge_id < len(self._edges) else None
        if edge is None:
            raise IndexError(f"Edge {edge_id} does not exist")
        return edge

    def edges(self) -> Iterator[Edge]:
        """All live edges in id order."""
        return (e for e in self._edges if e is not None)

    def edge_count(self) -> int:
        return sum(1 for _ in self.edges())

    def edges_from(self, vertex: int) -> Iterator[EdgeView]:
        """Edges incident to a vertex, oriented away from it."""
        self._check_vertex(vertex)
        for edge_id in self._adjacency[vertex]:
            edge = self._edges[edge_id]
            if edge.from_vertex == vertex:
                yield EdgeView(edge.id, edge.to_vertex, edge.distance, edge.profile, edge.meta, True)
            else:
                yield EdgeView(edge.id, edge.from_vertex, edge.distance, edge.profile, edge.meta, False)

    def edge_attributes(self, edge_id: int) -> dict:
        return self.profiles.get(self.get_edge(edge_id).profile)

    def edge_geometry(self, edge_id: int) -> LineString:
        edge = self.get_edge(edge_id)
        from_lat, from_lon = self.get_coordinate(edge.from_vertex)
        to_lat, to_lon = self.get_coordinate(edge.to_vertex)
        return LineString([(from_lon, from_lat), *(edge.shape or []), (to_lon, to_lat)])

    def _remove_edge(self, edge_id: int) -> Edge:
        edge = self.get_edge(edge_id)
        self._edges[edge_id] = None
        self._adjacency[edge.from_vertex].remove(edge_id)
        self._adjacency[edge.to_vertex].remove(edge_id)
        return edge

    # Snapped locations

    def batch_insert_resolved_locations(self, points: list[RouterPoint]) -> list[int]:
        """Turn snapped locations into vertices, splitting edges where needed.

        Returns one vertex per point, in the order given.
        """
        vertices = [NO_VERTEX] * len(points)
        interior: dict[int, list[int]] = {}
        for i, point in enumerate(points):
            edge = self.get_edge(point.edge_id)
            if point.offset <= ToleranceConfig.OFFSET_EPSILON:
                vertices[i] = edge.from_vertex
            elif point.offset >= 1.0 - ToleranceConfig.OFFSET_EPSILON:
                vertices[i] = edge.to_vertex
            else:
                interior.setdefault(edge.id, []).append(i)

        for edge_id, indices in interior.items():
            offsets = sorted({points[i].offset for i in indices})
            split_vertices = self._split_edge(edge_id, offsets)
            for i in indices:
                vertices[i] = split_vertices[points[i].offset]
        return vertices

    def _split_edge(self, edge_id: int, offsets: list[float]) -> dict[float, int]:
        """Split an edge at sorted interior offsets into a chain of edges."""
        line = self.edge_geometry(edge_id)
        edge = self._remove_edge(edge_id)

        split_vertices = {}
        for offset in offsets:
            point = line.interpolate(offset, normalized=True)
            split_vertices[offset] = self.insert_vertex(point.y, point.x)

        chain = [edge.from_vertex] + [split_vertices[o] for o in offsets] + [edge.to_vertex]
        bounds = [0.0] + offsets + [1.0]
        for (a, b), (start, end) in zip(zip(chain, chain[1:]), zip(bounds, bounds[1:])):
            coords = list(substring(line, start, end, normalized=True).coords)
            distance = cap_distance(line_length_in_meters(coords), self.max_edge_distance)
            self.insert_edge(a, b, distance, edge.profile, edge.meta, coords[1:-1] or None)
        return split_vertices

    # Storage maintenance

    def reorder_vertices(
        self, swap_callback: Optional[Callable[[int, int], None]] = None
    ) -> np.ndarray:
        """Sort vertices along a Hilbert curve for spatial locality.

        The permutation is carried out as a series of transpositions and
        swap_callback(v1, v2) is called once for each, before the vertex data
        is moved. Returns perm with new_index = perm[old_index].
        """
        n = self.vertex_count()
        if n == 0:
            return np.arange(0, dtype=np.int64)

        keys = hilbert_index(self._latitudes, self._longitudes)
        order = np.argsort(keys, kind="stable")

        occupant = np.arange(n, dtype=np.int64)  # slot -> original vertex
        slot_of = np.arange(n, dtype=np.int64)  # original vertex -> slot
        for target in range(n):
            wanted = order[target]
            current = slot_of[wanted]
            if current == target:
                continue
            displaced = occupant[target]
            occupant[target], occupant[current] = wanted, displaced
            slot_of[wanted], slot_of[displaced] = target, current
            if swap_callback is not None:
                swap_callback(int(target), int(current))

        self._apply_permutation(slot_of)
        return slot_of

    def _apply_permutation(self, perm: np.ndarray) -> None:
        n = self.vertex_count()
        latitudes = np.empty(n, dtype=np.float64)
        longitudes = np.empty(n, dtype=np.float64)
        latitudes[perm] = self._latitudes
        longitudes[perm] = self._longitudes
        self._latitudes = latitudes.tolist()
        self._longitudes = longitudes.tolist()

        adjacency: list[list[int]] = [[] for _ in range(n)]
        for old, new in enumerate(perm.tolist()):
            adjacency[new] = self._adjacency[old]
        self._adjacency = adjacency

        for edge in self.edges():
            edge.from_vertex = int(perm[edge.from_vertex])
            edge.to_vertex = int(perm[edge.to_vertex])

    def compress(self) -> None:
        """Drop removed edges and renumber the remaining ones densely."""
        live = list(self.edges())
        for new_id, edge in enumerate(live):
            edge.id = new_id
        self._edges = live
        self._adjacency = [[] for _ in range(self.vertex_count())]
        for edge in live:
            self._adjacency[edge.from_vertex].append(edge.id)
            self._adjacency[edge.to_vertex].append(edge.id)
