"""
Transit fusion: add stops, transfer edges and route edges to a routing graph.

The phases run in order and share one FusionState:
  1. collect_stops       - one vertex per distinct stop node, snapped onto the road network
  2. sort_vertices       - locality sort, with stop bookkeeping following every move
  3. add_transfer_edges  - stop vertex <-> snapped road vertex
  4. add_route_edges     - stop vertex <-> stop vertex along each route's ways
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence

import numpy as np

from .constants import NO_VERTEX, TAG_ROUTE, TAG_TYPE, TYPE_ROUTE, TYPE_TRANSFER
from .geometry import cap_distance, distance_in_meters
from .graph import RouterPoint, RoutingGraph
from .osm import MemberLookup, Node, OsmGeoType, Relation, TransitDataIndex, Way, route_type_of
from .profiles import Profile
from .resolver import ResolveError, SpatialResolver


class SkipReason(str, Enum):
    """Why an input record or candidate edge was left out."""

    MISSING_MEMBER = "missing member"
    MISSING_ID = "missing id"
    MISSING_COORDINATES = "missing coordinates"
    DUPLICATE_STOP = "duplicate stop"
    UNRESOLVED = "unresolved stop"
    NO_MEMBERS = "relation without members"
    NOT_A_ROUTE = "not a route relation"
    EMPTY_WAY = "way without nodes"
    UNKNOWN_STOP = "way endpoint is not a stop"
    NO_VERTEX = "way endpoint without vertex"
    SELF_LOOP = "self-loop"
    DUPLICATE_EDGE = "duplicate edge"


def check_stop_node(record) -> Optional[SkipReason]:
    if not isinstance(record, Node):
        return SkipReason.MISSING_MEMBER
    if record.id is None:
        return SkipReason.MISSING_ID
    if record.latitude is None or record.longitude is None:
        return SkipReason.MISSING_COORDINATES
    return None


def check_route_way(record) -> Optional[SkipReason]:
    if not isinstance(record, Way):
        return SkipReason.MISSING_MEMBER
    if not record.nodes:
        return SkipReason.EMPTY_WAY
    return None


def check_route_endpoints(
    from_vertex: Optional[int], to_vertex: Optional[int]
) -> Optional[SkipReason]:
    if from_vertex is None or to_vertex is None:
        return SkipReason.UNKNOWN_STOP
    if from_vertex == NO_VERTEX or to_vertex == NO_VERTEX:
        return SkipReason.NO_VERTEX
    if from_vertex == to_vertex:
        return SkipReason.SELF_LOOP
    return None


@dataclass
class Stop:
    node_id: int
    latitude: float
    longitude: float
    vertex: int
    resolved_vertex: Optional[int] = None


@dataclass
class FusionStats:
    stops_inserted: int = 0
    stops_resolved: int = 0
    transfer_edges: int = 0
    route_edges: int = 0
    skipped: Counter = field(default_factory=Counter)

    def skip(self, reason: SkipReason) -> None:
        self.skipped[reason] += 1

    def as_dict(self) -> dict:
        return {
            "stops_inserted": self.stops_inserted,
            "stops_resolved": self.stops_resolved,
            "transfer_edges": self.transfer_edges,
            "route_edges": self.route_edges,
            "skipped": {reason.value: n for reason, n in sorted(self.skipped.items())},
        }

    def summary(self) -> str:
        lines = [
            f"Stops: {self.stops_inserted} inserted, {self.stops_resolved} resolved",
            f"Edges: {self.transfer_edges} transfer, {self.route_edges} route",
        ]
        for reason, n in self.skipped.most_common():
            lines.append(f"  skipped {n} x {reason.value}")
        return "\n".join(lines)


@dataclass
class FusionState:
    """Mutable bookkeeping for one fusion run."""

    stops: dict[int, Stop] = field(default_factory=dict)
    route_profiles: dict[str, int] = field(default_factory=dict)
    transfer_profile: Optional[int] = None
    stats: FusionStats = field(default_factory=FusionStats)
    _stop_at: Optional[dict[int, int]] = field(default=None, repr=False)

    def add_stop(self, stop: Stop) -> None:
        self.stops[stop.node_id] = stop
        self._stop_at = None

    def vertex_of(self, node_id: int) -> Optional[int]:
        stop = self.stops.get(node_id)
        return stop.vertex if stop is not None else None

    def resolved_vertex_of(self, node_id: int) -> Optional[int]:
        stop = self.stops.get(node_id)
        return stop.resolved_vertex if stop is not None else None

    def stop_at(self, vertex: int) -> Optional[int]:
        """Node id of the stop owning a vertex, if any."""
        if self._stop_at is None:
            self._stop_at = {s.vertex: s.node_id for s in self.stops.values()}
        return self._stop_at.get(vertex)

    def remap_vertices(self, permute: Callable[[int], int]) -> None:
        for stop in self.stops.values():
            stop.vertex = permute(stop.vertex)
            if stop.resolved_vertex is not None:
                stop.resolved_vertex = permute(stop.resolved_vertex)
        self._stop_at = None


class VertexCompactionAdapter:
    """Swap callback that records the permutation applied by a reordering pass.

    Each swap(v1, v2) exchanges what the two slots hold; after the pass,
    permute(old_vertex) gives the slot the vertex ended up in and apply()
    rewrites the stop table in one go.
    """

    def __init__(self, vertex_count: int = 0):
        self._slot_of = np.arange(vertex_count, dtype=np.int64)
        self._occupant = np.arange(vertex_count, dtype=np.int64)
        self.swaps = 0

    def _grow(self, size: int) -> None:
        current = len(self._slot_of)
        if size <= current:
            return
        extra = np.arange(current, size, dtype=np.int64)
        self._slot_of = np.concatenate([self._slot_of, extra])
        self._occupant = np.concatenate([self._occupant, extra])

    def __call__(self, v1: int, v2: int) -> None:
        if v1 == v2:
            return
        self._grow(max(v1, v2) + 1)
        o1 = int(self._occupant[v1])
        o2 = int(self._occupant[v2])
        self._occupant[v1] = o2
        self._occupant[v2] = o1
        self._slot_of[o1] = v2
        self._slot_of[o2] = v1
        self.swaps += 1

    def permute(self, vertex: int) -> int:
        if vertex == NO_VERTEX or vertex >= len(self._slot_of):
            return vertex
        return int(self._slot_of[vertex])

    def apply(self, state: FusionState) -> None:
        state.remap_vertices(self.permute)


def _distance_between(graph: RoutingGraph, v1: int, v2: int) -> float:
    lat1, lon1 = graph.get_coordinate(v1)
    lat2, lon2 = graph.get_coordinate(v2)
    return cap_distance(distance_in_meters(lat1, lon1, lat2, lon2), graph.max_edge_distance)


def collect_stops(
    graph: RoutingGraph,
    relations: Iterable[Relation],
    get_member: MemberLookup,
    resolver: SpatialResolver,
    profiles: Sequence[Profile],
    state: FusionState,
) -> None:
    """Insert one vertex per distinct stop node and snap each onto the network."""
    pending: list[tuple[int, RouterPoint]] = []
    for relation in relations:
        if not relation.members:
            state.stats.skip(SkipReason.NO_MEMBERS)
            continue
        for member in relation.members:
            if member.type != OsmGeoType.NODE:
                continue
            node = get_member(member.type, member.ref)
            reason = check_stop_node(node)
            if reason is None and node.id in state.stops:
                reason = SkipReason.DUPLICATE_STOP
            if reason is not None:
                state.stats.skip(reason)
                continue

            vertex = graph.insert_vertex(node.latitude, node.longitude)
            latitude, longitude = graph.get_coordinate(vertex)
            state.add_stop(Stop(node.id, latitude, longitude, vertex))
            state.stats.stops_inserted += 1

            try:
                pending.append((node.id, resolver.resolve(latitude, longitude, profiles)))
            except ResolveError:
                state.stats.skip(SkipReason.UNRESOLVED)

    vertices = graph.batch_insert_resolved_locations([point for _, point in pending])
    for (node_id, _), vertex in zip(pending, vertices):
        state.stops[node_id].resolved_vertex = vertex
    state.stats.stops_resolved = len(pending)
    print(
        f"  Inserted {state.stats.stops_inserted} stop vertices, "
        f"resolved {state.stats.stops_resolved}",
        flush=True,
    )


def sort_vertices(graph: RoutingGraph, state: FusionState) -> VertexCompactionAdapter:
    """Run the graph's locality sort and carry the stop table along."""
    adapter = VertexCompactionAdapter(graph.vertex_count())
    graph.reorder_vertices(adapter)
    adapter.apply(state)
    return adapter


def transfer_profile_attributes(profiles: Sequence[Profile]) -> dict:
    attributes = {TAG_TYPE: TYPE_TRANSFER}
    for profile in profiles:
        attributes[profile.full_name] = "yes"
    return attributes


def route_profile_attributes(route_type: str) -> dict:
    return {TAG_TYPE: TYPE_ROUTE, TAG_ROUTE: route_type}


def add_transfer_edges(
    graph: RoutingGraph, profiles: Sequence[Profile], state: FusionState
) -> None:
    """Link every resolved stop to the network vertex it snapped onto."""
    if state.transfer_profile is None:
        state.transfer_profile = graph.intern_attribute_profile(
            transfer_profile_attributes(profiles)
        )

    for stop in state.stops.values():
        if stop.resolved_vertex is None:
            continue
        if stop.resolved_vertex == stop.vertex:
            state.stats.skip(SkipReason.SELF_LOOP)
            continue
        distance = _distance_between(graph, stop.vertex, stop.resolved_vertex)
        graph.insert_edge(stop.vertex, stop.resolved_vertex, distance, state.transfer_profile)
        state.stats.transfer_edges += 1
    print(f"  Added {state.stats.transfer_edges} transfer edges", flush=True)


def route_profile(graph: RoutingGraph, state: FusionState, route_type: str) -> int:
    """Profile id for a route type, interned on first use."""
    profile_id = state.route_profiles.get(route_type)
    if profile_id is None:
        profile_id = graph.intern_attribute_profile(route_profile_attributes(route_type))
        state.route_profiles[route_type] = profile_id
    return profile_id


def has_edge(graph: RoutingGraph, from_vertex: int, to_vertex: int) -> bool:
    return any(e.to == to_vertex for e in graph.edges_from(from_vertex))


def add_route_edges(
    graph: RoutingGraph,
    relations: Iterable[Relation],
    get_member: MemberLookup,
    state: FusionState,
) -> None:
    """Link stop vertices along the ways of each route relation.

    An existing edge between the two stops is left as is, including its
    profile.
    """
    for relation in relations:
        route_type = route_type_of(relation)
        if route_type is None:
            state.stats.skip(SkipReason.NOT_A_ROUTE)
            continue
        if not relation.members:
            continue

        for member in relation.members:
            if member.type != OsmGeoType.WAY:
                continue
            way = get_member(member.type, member.ref)
            reason = check_route_way(way)
            if reason is None:
                from_vertex = state.vertex_of(way.nodes[0])
                to_vertex = state.vertex_of(way.nodes[-1])
                reason = check_route_endpoints(from_vertex, to_vertex)
            if reason is not None:
                state.stats.skip(reason)
                continue

            distance = _distance_between(graph, from_vertex, to_vertex)
            profile_id = route_profile(graph, state, route_type)
            if has_edge(graph, from_vertex, to_vertex):
                state.stats.skip(SkipReason.DUPLICATE_EDGE)
                continue
            graph.insert_edge(from_vertex, to_vertex, distance, profile_id)
            state.stats.route_edges += 1
    print(
        f"  Added {state.stats.route_edges} route edges "
        f"({len(state.route_profiles)} route types)",
        flush=True,
    )


def add_public_transport(
    graph: RoutingGraph,
    relations: Iterable[Relation],
    get_member: MemberLookup,
    profiles: Sequence[Profile],
    resolver: Optional[SpatialResolver] = None,
    sort: bool = True,
    compress: bool = True,
) -> FusionState:
    """Fuse transit route relations into the graph and return the run state.

    A resolver indexes the edges present when it was built. Stop insertion
    splits edges and compress renumbers them, so a resolver is good for one
    call only; when none is given a fresh one is built over graph.
    """
    relations = list(relations)
    profiles = list(profiles)
    state = FusionState()
    if resolver is None:
        resolver = SpatialResolver(graph)

    collect_stops(graph, relations, get_member, resolver, profiles, state)
    if sort:
        sort_vertices(graph, state)
    add_transfer_edges(graph, profiles, state)
    add_route_edges(graph, relations, get_member, state)

    if compress:
        graph.compress()
    return state


def add_public_transport_from_elements(
    graph: RoutingGraph,
    elements: Iterable,
    profiles: Sequence[Profile],
    route_filter: Optional[Callable[[Relation], bool]] = None,
    **kwargs,
) -> FusionState:
    """Index raw OSM elements, then fuse the route relations found in them."""
    index = TransitDataIndex.from_elements(elements, route_filter)
    return add_public_transport(graph, index.relations, index.get_member, profiles, **kwargs)
