"""
CLI entry point and pipeline orchestration for transit2graph.
"""

import json
import os
import sys
import click

from .config import load_config, Config

TOTAL_STAGES = 5


def _stage(n: int, msg: str) -> None:
    """Print a stage label."""
    print(f"\n[{n}/{TOTAL_STAGES}] {msg}", flush=True)


def _load_transit_json(path: str) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"\nERROR: Failed to read transit file: {path}")
        print(f"  Error: {type(e).__name__}: {str(e)}")
        sys.exit(1)


def _run_pipeline(config: Config) -> dict:
    """Run the full transit fusion pipeline and return the run report."""
    print(f"Running pipeline for: {config.transit_file_name}")
    if config.debug_enabled:
        print("Debug mode: enabled")

    import geopandas as gpd

    from .fusion import add_public_transport
    from .network_io import build_graph_from_geodataframe
    from .osm import TransitDataIndex, elements_from_overpass, route_type_filter
    from .profiles import get_profiles
    from .resolver import SpatialResolver

    profiles = get_profiles(config.profiles)
    print(f"Profiles: {', '.join(p.full_name for p in profiles)}")

    # 1. Road network
    _stage(1, "Loading road network...")
    gdf_roads = gpd.read_file(config.network_path())
    print(f"  {len(gdf_roads)} road features")
    graph = build_graph_from_geodataframe(
        gdf_roads,
        max_edge_distance=config.max_edge_distance,
        tolerance_meters=config.endpoint_tolerance_meters,
    )
    road_vertices = graph.vertex_count()
    road_edges = graph.edge_count()

    # 2. Transit data
    _stage(2, "Loading transit data...")
    elements = elements_from_overpass(_load_transit_json(config.transit_path()))
    print(f"  {len(elements)} OSM elements")

    # 3. Relation index
    _stage(3, "Indexing route relations...")
    index = TransitDataIndex.from_elements(elements, route_type_filter(config.route_types))
    print(f"  {len(index)} route relations")
    if config.route_types:
        print(f"  Route types: {', '.join(config.route_types)}")

    # 4. Fusion
    _stage(4, "Fusing transit data into the road graph...")
    resolver = SpatialResolver(graph, max_distance=config.resolve_max_distance_meters)
    state = add_public_transport(
        graph,
        index.relations,
        index.get_member,
        profiles,
        resolver=resolver,
        sort=config.sort_vertices,
    )
    print(state.stats.summary())
    if config.debug_enabled:
        unresolved = [s.node_id for s in state.stops.values() if s.resolved_vertex is None]
        print(f"  [DEBUG] Unresolved stops: {unresolved[:20]}")
        for route_type, profile_id in sorted(state.route_profiles.items()):
            print(f"  [DEBUG] Route profile {profile_id}: {route_type}")

    # 5. Report
    _stage(5, "Writing report...")
    report = {
        "transit_file": config.transit_file_name,
        "network_file": config.network_file_name,
        "profiles": [p.full_name for p in profiles],
        "road_graph": {"vertices": road_vertices, "edges": road_edges},
        "fused_graph": {
            "vertices": graph.vertex_count(),
            "edges": graph.edge_count(),
            "edge_profiles": len(graph.profiles),
        },
        "route_profiles": state.route_profiles,
        "stats": state.stats.as_dict(),
    }
    paths = config.output_paths()
    with open(paths.report_json, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=4, ensure_ascii=False)
    print(f"  Report written to {paths.report_json}")

    print("\nComplete")
    return report


def _ensure_directories(config: Config) -> None:
    """Create input and output directories if needed."""
    if not os.path.exists(config.input_directory):
        os.makedirs(config.input_directory)
    if not os.path.exists(config.output_directory):
        os.makedirs(config.output_directory)


def _validate_inputs_exist(config: Config) -> None:
    """Verify both input files exist; exit with a helpful message if not."""
    directory = os.path.join(os.getcwd(), config.input_directory)
    for label, path, setting in (
        ("Transit", config.transit_path(), f"transit_file_name = {config.transit_file_name}"),
        ("Network", config.network_path(), f"network_file_name = {config.network_file_name}"),
    ):
        if os.path.exists(path):
            continue
        print(f"\nERROR: {label} file not found!")
        print(f"  Expected file: {path}")
        print(f"  Profile setting: {setting}")
        print(f"  Input directory: {directory}")
        print(f"  Current working directory: {os.getcwd()}")
        sys.exit(1)


@click.command(help="Fuse OSM public transport routes into a routable road graph.")
@click.option(
    "--network-profile",
    required=True,
    help="Path to the network profile configuration file (required).",
    type=click.Path(exists=True),
)
def main(network_profile: str) -> None:
    """Fuse OSM public transport routes into a routable road graph."""
    print(f"Running with network_profile: {network_profile}")
    config = load_config(network_profile)
    _ensure_directories(config)
    _validate_inputs_exist(config)
    _run_pipeline(config)
