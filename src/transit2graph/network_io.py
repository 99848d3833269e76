"""
Road network import: build a RoutingGraph from a GeoDataFrame of lines.
"""

import numpy as np
import geopandas as gpd
from scipy.spatial import cKDTree

from .constants import (
    DEFAULT_MAX_EDGE_DISTANCE,
    EDGE_PROFILE_TAGS,
    METERS_TO_DEGREES,
    ToleranceConfig,
)
from .geometry import cap_distance, split_line_by_distance
from .graph import RoutingGraph


def _edge_attributes(row) -> dict:
    """Whitelisted road tags of a GeoDataFrame row."""
    attributes = {}
    for tag in EDGE_PROFILE_TAGS:
        value = row.get(tag)
        if value is None or (isinstance(value, float) and np.isnan(value)):
            continue
        attributes[tag] = str(value)
    return attributes


def _road_lines(gdf: gpd.GeoDataFrame) -> list[tuple[list, dict]]:
    """(coords, attributes) for every LineString part in the frame."""
    if gdf.crs is not None and not gdf.crs.is_geographic:
        gdf = gdf.to_crs(epsg=4326)

    lines = []
    for _, row in gdf.explode(index_parts=False).iterrows():
        geom = row.geometry
        if geom is None or geom.is_empty or geom.geom_type != "LineString":
            continue
        coords = [tuple(c[:2]) for c in geom.coords]
        if len(coords) < 2:
            continue
        lines.append((coords, _edge_attributes(row)))
    return lines


def build_graph_from_geodataframe(
    gdf: gpd.GeoDataFrame,
    max_edge_distance: float = DEFAULT_MAX_EDGE_DISTANCE,
    tolerance_meters: float = ToleranceConfig.ENDPOINT_MERGE_METERS,
) -> RoutingGraph:
    """Build a routing graph whose edges are the road lines of gdf.

    Line endpoints within tolerance_meters share a vertex; lines longer than
    max_edge_distance are cut at interior points.
    """
    graph = RoutingGraph(max_edge_distance)
    lines = _road_lines(gdf)
    if not lines:
        print("No road lines found in network data.")
        return graph

    endpoints = np.array([c for coords, _ in lines for c in (coords[0], coords[-1])])
    tree = cKDTree(endpoints)
    neighbourhoods = tree.query_ball_point(endpoints, r=tolerance_meters * METERS_TO_DEGREES)

    endpoint_vertex: dict[int, int] = {}
    for i, neighbours in enumerate(neighbourhoods):
        representative = min(neighbours)
        if representative not in endpoint_vertex:
            lon, lat = endpoints[representative]
            endpoint_vertex[representative] = graph.insert_vertex(lat, lon)
        endpoint_vertex[i] = endpoint_vertex[representative]

    skipped = 0
    for n, (coords, attributes) in enumerate(lines):
        profile_id = graph.intern_attribute_profile(attributes)
        pieces = split_line_by_distance(coords, max_edge_distance)
        start = endpoint_vertex[2 * n]
        for k, (piece, length) in enumerate(pieces):
            if k == len(pieces) - 1:
                end = endpoint_vertex[2 * n + 1]
            else:
                end = graph.insert_vertex(piece[-1][1], piece[-1][0])
            if start == end:
                skipped += 1
                continue
            graph.insert_edge(
                start,
                end,
                cap_distance(length, max_edge_distance),
                profile_id,
                shape=piece[1:-1] or None,
            )
            start = end

    print(
        f"  Road graph: {graph.vertex_count()} vertices, {graph.edge_count()} edges, "
        f"{len(graph.profiles)} edge profiles ({skipped} degenerate lines skipped)",
        flush=True,
    )
    return graph
