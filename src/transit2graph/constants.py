"""
Constants for transit2graph: tag keys, sentinels, distances and tolerances.
"""

# Tag keys and values used on relations and edge profiles
TAG_TYPE = "type"
TAG_ROUTE = "route"
TYPE_ROUTE = "route"
TYPE_TRANSFER = "transfer"

# Placeholder vertex id meaning "no vertex"
NO_VERTEX = 0xFFFFFFFF

# Longest edge the graph store accepts, in meters
DEFAULT_MAX_EDGE_DISTANCE = 5000.0

# Search radius for snapping a stop onto the road network, in meters
DEFAULT_RESOLVE_DISTANCE = 50.0

EARTH_RADIUS_METERS = 6371000.0
METERS_TO_DEGREES = 1.0 / 111000.0

# Hilbert curve order used by the vertex locality sort (2**order cells per axis)
HILBERT_ORDER = 16

DEFAULT_PROFILES = ["pedestrian", "bicycle", "car"]

# Road tags kept as edge attributes when importing a road network
EDGE_PROFILE_TAGS = (
    "highway",
    "access",
    "foot",
    "bicycle",
    "motor_vehicle",
    "motorcar",
    "junction",
)


class ToleranceConfig:
    """Tolerance values for graph building and location snapping."""

    # Endpoint merge: road line endpoints closer than this share a vertex
    ENDPOINT_MERGE_METERS = 0.5

    # Offset epsilon: snapped offsets this close to 0 or 1 reuse the end vertex
    OFFSET_EPSILON = 1e-6
