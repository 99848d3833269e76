"""
Unit and integration tests for the transit2graph building blocks.
"""

import json
import os
import sys
from pathlib import Path

import pytest

# Add src to path for imports when running tests directly
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))


def _road_graph(highway="residential", max_edge_distance=5000.0, **tags):
    """A single east-west road of about 700m at latitude 50.85."""
    from transit2graph.geometry import distance_in_meters
    from transit2graph.graph import RoutingGraph

    graph = RoutingGraph(max_edge_distance)
    a = graph.insert_vertex(50.85, 4.35)
    b = graph.insert_vertex(50.85, 4.36)
    profile_id = graph.intern_attribute_profile({"highway": highway, **tags})
    graph.insert_edge(a, b, distance_in_meters(50.85, 4.35, 50.85, 4.36), profile_id)
    return graph


class TestGeometry:
    """Tests for geometry helpers."""

    def test_distance_one_degree_latitude(self):
        from transit2graph.geometry import distance_in_meters

        assert distance_in_meters(0.0, 0.0, 1.0, 0.0) == pytest.approx(111195, rel=1e-3)
        assert distance_in_meters(50.0, 4.0, 50.0, 4.0) == 0.0

    def test_line_length_sums_segments(self):
        from transit2graph.geometry import distance_in_meters, line_length_in_meters

        coords = [(4.35, 50.85), (4.355, 50.85), (4.36, 50.85)]
        expected = distance_in_meters(50.85, 4.35, 50.85, 4.36)
        assert line_length_in_meters(coords) == pytest.approx(expected, rel=1e-6)

    def test_cap_distance(self):
        from transit2graph.geometry import cap_distance

        assert cap_distance(12.0, 10.0) == 10.0
        assert cap_distance(8.0, 10.0) == 8.0

    def test_split_line_by_distance(self):
        from transit2graph.geometry import split_line_by_distance

        coords = [(4.35 + i * 0.001, 50.85) for i in range(11)]
        pieces = split_line_by_distance(coords, 250.0)
        assert len(pieces) > 1
        assert all(length <= 250.0 for _, length in pieces)
        assert pieces[0][0][0] == coords[0]
        assert pieces[-1][0][-1] == coords[-1]
        for (first, _), (second, _) in zip(pieces, pieces[1:]):
            assert first[-1] == second[0]

    def test_hilbert_index_is_deterministic(self):
        import numpy as np

        from transit2graph.geometry import hilbert_index

        keys = hilbert_index([50.85, 50.86, -33.9], [4.35, 4.36, 18.4])
        assert keys.dtype == np.int64
        assert len(set(keys.tolist())) == 3
        assert (hilbert_index([50.85], [4.35]) == keys[:1]).all()


class TestOsm:
    """Tests for Overpass parsing and the transit member index."""

    def test_elements_from_overpass(self):
        from transit2graph.osm import Node, OsmGeoType, Relation, Way, elements_from_overpass

        data = {
            "elements": [
                {"type": "node", "id": 1, "lat": 1.0, "lon": 2.0},
                {"type": "way", "id": 2, "nodes": [1, 3]},
                {
                    "type": "relation",
                    "id": 3,
                    "tags": {"type": "route", "route": "bus"},
                    "members": [
                        {"type": "node", "ref": 1, "role": "stop"},
                        {"type": "area", "ref": 9},
                    ],
                },
                {"type": "area", "id": 4},
            ]
        }
        elements = elements_from_overpass(data)
        assert [type(e) for e in elements] == [Node, Way, Relation]
        assert elements[0].latitude == 1.0 and elements[0].longitude == 2.0
        assert elements[1].nodes == [1, 3]
        assert len(elements[2].members) == 1
        assert elements[2].members[0].type == OsmGeoType.NODE

    def test_route_type_of(self):
        from transit2graph.osm import Relation, route_type_of

        assert route_type_of(Relation(1, {"type": "route", "route": "bus"}, [])) == "bus"
        assert route_type_of(Relation(1, {"type": "multipolygon"}, [])) is None
        assert route_type_of(Relation(1, None, [])) is None

    def test_index_keeps_only_routes_with_members(self):
        from transit2graph.osm import Member, Node, OsmGeoType, Relation, TransitDataIndex

        elements = [
            Node(1, 50.0, 4.0),
            Node(2, 50.1, 4.1),
            Relation(10, {"type": "route", "route": "bus"}, [Member(OsmGeoType.NODE, 1)]),
            Relation(11, {"type": "route", "route": "bus"}, []),
            Relation(12, {"type": "route_master"}, [Member(OsmGeoType.NODE, 2)]),
        ]
        index = TransitDataIndex.from_elements(elements)
        assert [r.id for r in index.relations] == [10]
        assert index.get_member(OsmGeoType.NODE, 1) is elements[0]
        assert index.get_member(OsmGeoType.NODE, 2) is None
        assert index.get_member("node", 1) is elements[0]

    def test_registered_member_never_seen_is_none(self):
        from transit2graph.osm import Member, OsmGeoType, Relation, TransitDataIndex

        relation = Relation(10, {"type": "route", "route": "bus"}, [Member(OsmGeoType.WAY, 5)])
        index = TransitDataIndex.from_elements([relation])
        assert len(index) == 1
        assert index.get_member(OsmGeoType.WAY, 5) is None

    def test_route_type_filter(self):
        from transit2graph.osm import Member, OsmGeoType, Relation, TransitDataIndex, route_type_filter

        assert route_type_filter([]) is None
        members = [Member(OsmGeoType.NODE, 1)]
        elements = [
            Relation(10, {"type": "route", "route": "bus"}, members),
            Relation(11, {"type": "route", "route": "tram"}, members),
        ]
        index = TransitDataIndex.from_elements(elements, route_type_filter(["tram"]))
        assert [r.id for r in index.relations] == [11]


class TestProfiles:
    """Tests for travel-mode profiles."""

    def test_can_traverse_by_highway(self):
        from transit2graph.profiles import BICYCLE, CAR, PEDESTRIAN

        assert CAR.can_traverse({"highway": "residential"})
        assert not CAR.can_traverse({"highway": "footway"})
        assert PEDESTRIAN.can_traverse({"highway": "footway"})
        assert BICYCLE.can_traverse({"highway": "cycleway"})

    def test_explicit_tags_win(self):
        from transit2graph.profiles import get_profile

        bicycle = get_profile("bicycle")
        assert bicycle.can_traverse({"highway": "footway", "bicycle": "yes"})
        assert not bicycle.can_traverse({"highway": "residential", "bicycle": "no"})
        assert not bicycle.can_traverse({"highway": "residential", "access": "private"})

    def test_osm_access_keys(self):
        from transit2graph.profiles import CAR, PEDESTRIAN

        assert not PEDESTRIAN.can_traverse({"highway": "footway", "foot": "no"})
        assert PEDESTRIAN.can_traverse({"highway": "motorway", "foot": "designated"})
        assert PEDESTRIAN.can_traverse({"highway": "residential", "access": "no", "foot": "yes"})
        assert not CAR.can_traverse({"highway": "residential", "motor_vehicle": "no"})
        assert not CAR.can_traverse({"highway": "residential", "motorcar": "no"})
        assert CAR.can_traverse(
            {"highway": "residential", "motor_vehicle": "yes", "motorcar": "no"}
        )
        assert CAR.can_traverse({"highway": "residential", "pedestrian": "no", "car": "no"})

    def test_unknown_profile(self):
        from transit2graph.profiles import get_profiles

        assert [p.full_name for p in get_profiles(["Pedestrian", " car"])] == ["pedestrian", "car"]
        with pytest.raises(KeyError):
            get_profiles(["hovercraft"])


class TestRoutingGraph:
    """Tests for the in-memory graph store."""

    def test_vertices_and_coordinates(self):
        from transit2graph.graph import RoutingGraph

        graph = RoutingGraph()
        assert graph.insert_vertex(50.85, 4.35) == 0
        assert graph.insert_vertex(50.86, 4.36) == 1
        assert graph.vertex_count() == 2
        lat, lon = graph.get_coordinate(1)
        assert lat == pytest.approx(50.86, abs=1e-5)
        assert lon == pytest.approx(4.36, abs=1e-5)
        with pytest.raises(IndexError):
            graph.get_coordinate(2)

    def test_profiles_are_interned(self):
        from transit2graph.graph import RoutingGraph

        graph = RoutingGraph()
        first = graph.intern_attribute_profile({"type": "route", "route": "bus"})
        second = graph.intern_attribute_profile({"route": "bus", "type": "route"})
        third = graph.intern_attribute_profile({"type": "route", "route": "tram"})
        assert first == second
        assert third != first
        assert len(graph.profiles) == 2
        assert graph.profiles.get(first) == {"type": "route", "route": "bus"}

    def test_edges_are_enumerated_from_both_ends(self):
        graph = _road_graph()
        [forward] = list(graph.edges_from(0))
        [backward] = list(graph.edges_from(1))
        assert forward.to == 1 and forward.forward
        assert backward.to == 0 and not backward.forward
        assert forward.edge_id == backward.edge_id
        assert graph.edge_count() == 1

    def test_insert_edge_preconditions(self):
        graph = _road_graph(max_edge_distance=1000.0)
        profile_id = 0
        with pytest.raises(ValueError):
            graph.insert_edge(0, 0, 1.0, profile_id)
        with pytest.raises(ValueError):
            graph.insert_edge(0, 1, 1000.5, profile_id)
        with pytest.raises(ValueError):
            graph.insert_edge(0, 1, 1.0, 99)
        with pytest.raises(IndexError):
            graph.insert_edge(0, 7, 1.0, profile_id)

    def test_batch_insert_reuses_end_vertices(self):
        from transit2graph.graph import RouterPoint

        graph = _road_graph()
        vertices = graph.batch_insert_resolved_locations(
            [RouterPoint(0, 0.0, 50.85, 4.35), RouterPoint(0, 1.0, 50.85, 4.36)]
        )
        assert vertices == [0, 1]
        assert graph.vertex_count() == 2
        assert graph.edge_count() == 1

    def test_batch_insert_splits_edge_into_chain(self):
        from transit2graph.graph import RouterPoint

        graph = _road_graph()
        original = graph.get_edge(0).distance
        points = [
            RouterPoint(0, 0.7, 50.85, 4.357),
            RouterPoint(0, 0.2, 50.85, 4.352),
            RouterPoint(0, 0.7, 50.85, 4.357),
        ]
        vertices = graph.batch_insert_resolved_locations(points)
        assert vertices[0] == vertices[2]
        assert vertices[0] != vertices[1]
        assert graph.vertex_count() == 4
        assert graph.edge_count() == 3
        assert sum(e.distance for e in graph.edges()) == pytest.approx(original, rel=1e-4)
        lat, lon = graph.get_coordinate(vertices[1])
        assert lon == pytest.approx(4.352, abs=1e-5)
        neighbours = sorted(e.to for e in graph.edges_from(vertices[1]))
        assert neighbours == sorted([0, vertices[0]])
        with pytest.raises(IndexError):
            graph.get_edge(0)

    def test_compress_renumbers_edges(self):
        from transit2graph.graph import RouterPoint

        graph = _road_graph()
        graph.batch_insert_resolved_locations([RouterPoint(0, 0.5, 50.85, 4.355)])
        graph.compress()
        assert [e.id for e in graph.edges()] == [0, 1]
        for vertex in range(graph.vertex_count()):
            for view in graph.edges_from(vertex):
                assert graph.get_edge(view.edge_id) is not None

    def test_reorder_vertices_reports_every_move(self):
        import random

        from transit2graph.graph import RoutingGraph

        rng = random.Random(42)
        graph = RoutingGraph()
        coords = []
        for _ in range(40):
            v = graph.insert_vertex(rng.uniform(50.0, 51.0), rng.uniform(4.0, 5.0))
            coords.append(graph.get_coordinate(v))
        profile_id = graph.intern_attribute_profile({"highway": "residential"})
        graph.insert_edge(3, 17, 10.0, profile_id)

        slots = list(range(40))
        swaps = []

        def on_swap(v1, v2):
            swaps.append((v1, v2))
            slots[v1], slots[v2] = slots[v2], slots[v1]

        perm = graph.reorder_vertices(on_swap)
        assert swaps
        for old in range(40):
            assert slots[perm[old]] == old
            assert graph.get_coordinate(int(perm[old])) == coords[old]
        [edge] = list(graph.edges())
        assert {edge.from_vertex, edge.to_vertex} == {int(perm[3]), int(perm[17])}

    def test_edge_geometry_includes_shape(self):
        from transit2graph.graph import RoutingGraph

        graph = RoutingGraph()
        a = graph.insert_vertex(50.85, 4.35)
        b = graph.insert_vertex(50.85, 4.36)
        profile_id = graph.intern_attribute_profile({"highway": "residential"})
        edge_id = graph.insert_edge(a, b, 700.0, profile_id, shape=[(4.355, 50.851)])
        line = graph.edge_geometry(edge_id)
        assert len(line.coords) == 3
        assert line.coords[1] == (4.355, 50.851)


class TestSpatialResolver:
    """Tests for nearest-edge resolution."""

    def test_resolves_onto_road(self):
        from transit2graph.profiles import CAR, PEDESTRIAN
        from transit2graph.resolver import SpatialResolver

        graph = _road_graph()
        point = SpatialResolver(graph).resolve(50.85005, 4.352, [PEDESTRIAN, CAR])
        assert point.edge_id == 0
        assert point.offset == pytest.approx(0.2, abs=1e-6)
        assert point.latitude == pytest.approx(50.85)
        assert point.longitude == pytest.approx(4.352)

    def test_respects_every_profile(self):
        from transit2graph.profiles import CAR, PEDESTRIAN
        from transit2graph.resolver import ResolveError, SpatialResolver

        resolver = SpatialResolver(_road_graph(highway="footway"))
        assert resolver.resolve(50.85005, 4.352, [PEDESTRIAN]).edge_id == 0
        with pytest.raises(ResolveError):
            resolver.resolve(50.85005, 4.352, [PEDESTRIAN, CAR])

    def test_rejects_road_closed_to_mode(self):
        from transit2graph.profiles import CAR, PEDESTRIAN
        from transit2graph.resolver import ResolveError, SpatialResolver

        resolver = SpatialResolver(_road_graph(foot="no"))
        assert resolver.resolve(50.85005, 4.355, [CAR]).edge_id == 0
        with pytest.raises(ResolveError):
            resolver.resolve(50.85005, 4.355, [PEDESTRIAN])

    def test_too_far_away(self):
        from transit2graph.profiles import PEDESTRIAN
        from transit2graph.resolver import ResolveError, SpatialResolver

        resolver = SpatialResolver(_road_graph(), max_distance=50.0)
        with pytest.raises(ResolveError):
            resolver.resolve(50.851, 4.352, [PEDESTRIAN])

    def test_empty_graph(self):
        from transit2graph.graph import RoutingGraph
        from transit2graph.profiles import PEDESTRIAN
        from transit2graph.resolver import ResolveError, SpatialResolver

        with pytest.raises(ResolveError):
            SpatialResolver(RoutingGraph()).resolve(50.85, 4.35, [PEDESTRIAN])


class TestNetworkIo:
    """Tests for building a graph from road lines."""

    def test_shared_endpoints_become_one_vertex(self):
        import geopandas as gpd
        from shapely.geometry import LineString

        from transit2graph.network_io import build_graph_from_geodataframe

        gdf = gpd.GeoDataFrame(
            {
                "highway": ["residential", "footway", "residential"],
                "name": ["A", "B", "Loop"],
                "geometry": [
                    LineString([(4.35, 50.85), (4.355, 50.85), (4.36, 50.85)]),
                    LineString([(4.36, 50.85), (4.36, 50.852)]),
                    LineString([(4.37, 50.85), (4.37, 50.85)]),
                ],
            },
            crs="EPSG:4326",
        )
        graph = build_graph_from_geodataframe(gdf)
        assert graph.vertex_count() == 4
        assert graph.edge_count() == 2
        first = graph.get_edge(0)
        assert first.shape == [(4.355, 50.85)]
        assert graph.edge_attributes(0) == {"highway": "residential"}
        assert graph.edge_attributes(1) == {"highway": "footway"}

    def test_long_lines_are_cut(self):
        import geopandas as gpd
        from shapely.geometry import LineString

        from transit2graph.network_io import build_graph_from_geodataframe

        coords = [(4.35 + i * 0.002, 50.85) for i in range(11)]
        gdf = gpd.GeoDataFrame(
            {"highway": ["primary"], "geometry": [LineString(coords)]}, crs="EPSG:4326"
        )
        graph = build_graph_from_geodataframe(gdf, max_edge_distance=500.0)
        assert graph.edge_count() > 1
        assert all(e.distance <= 500.0 for e in graph.edges())


class TestConfig:
    """Tests for config loading."""

    def test_load_config(self):
        from transit2graph.config import load_config

        cfg_path = ROOT / "tests" / "fixtures" / "minimal.ini"
        if not cfg_path.exists():
            pytest.skip("fixture not found")
        config = load_config(str(cfg_path))
        assert config.transit_file_name == "transit.json"
        assert config.network_file_name == "roads.geojson"
        assert config.input_directory == "tests/fixtures/"
        assert config.profiles == ["pedestrian", "bicycle", "car"]
        assert config.route_types == ["bus"]
        assert config.max_edge_distance == 5000.0
        assert config.sort_vertices is True
        assert config.debug_enabled is True
        assert config.output_paths().report_json.startswith("tests/output/MINIMAL_fusion-report_")

    def test_defaults(self, tmp_path):
        from transit2graph.config import load_config

        cfg_path = tmp_path / "profile.ini"
        cfg_path.write_text(
            "[DEFAULT]\ntransit_file_name = my transit.json\n"
            "network_file_name = roads.geojson\nmax_edge_distance = lots\n"
        )
        config = load_config(str(cfg_path))
        assert config.profiles == ["pedestrian", "bicycle", "car"]
        assert config.route_types == []
        assert config.max_edge_distance == 5000.0
        assert config.resolve_max_distance_meters == 50.0
        assert config.output_name_prefix == "MY_TRANSIT"

    def test_missing_transit_file_name_exits(self, tmp_path):
        from transit2graph.config import load_config

        cfg_path = tmp_path / "profile.ini"
        cfg_path.write_text("[DEFAULT]\nnetwork_file_name = roads.geojson\n")
        with pytest.raises(SystemExit):
            load_config(str(cfg_path))


class TestIntegration:
    """Integration test: full pipeline on the fixture data."""

    def test_full_pipeline(self, tmp_path):
        """Run the pipeline on the fixtures and verify the report."""
        from transit2graph.config import load_config
        from transit2graph.cli import _run_pipeline, _ensure_directories

        cfg_path = ROOT / "tests" / "fixtures" / "minimal.ini"
        if not cfg_path.exists():
            pytest.skip("fixture not found")

        # Change to project root so paths resolve
        os.chdir(ROOT)
        config = load_config(str(cfg_path))
        config.output_directory = str(tmp_path)
        _ensure_directories(config)

        report = _run_pipeline(config)

        paths = config.output_paths()
        assert os.path.exists(paths.report_json)
        with open(paths.report_json) as f:
            written = json.load(f)
        assert written == json.loads(json.dumps(report))

        stats = report["stats"]
        assert report["road_graph"] == {"vertices": 3, "edges": 2}
        assert stats["stops_inserted"] == 3
        assert stats["stops_resolved"] == 3
        assert stats["transfer_edges"] == 3
        assert stats["route_edges"] == 2
        assert list(report["route_profiles"]) == ["bus"]
        assert report["fused_graph"]["vertices"] == 3 + 3 + 3
        assert report["fused_graph"]["edges"] == 5 + 3 + 2
