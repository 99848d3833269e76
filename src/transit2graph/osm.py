"""
OSM transit input: typed node/way/relation records and the member index.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional, Union

from .constants import TAG_ROUTE, TAG_TYPE, TYPE_ROUTE


class OsmGeoType(str, Enum):
    NODE = "node"
    WAY = "way"
    RELATION = "relation"


@dataclass
class Node:
    id: Optional[int]
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    tags: dict = field(default_factory=dict)

    type = OsmGeoType.NODE


@dataclass
class Way:
    id: Optional[int]
    nodes: Optional[list[int]] = None
    tags: dict = field(default_factory=dict)

    type = OsmGeoType.WAY


@dataclass
class Member:
    type: OsmGeoType
    ref: int
    role: str = ""


@dataclass
class Relation:
    id: Optional[int]
    tags: Optional[dict] = None
    members: Optional[list[Member]] = None

    type = OsmGeoType.RELATION


OsmGeo = Union[Node, Way, Relation]
MemberLookup = Callable[[OsmGeoType, int], Optional[OsmGeo]]


def _parse_element(elem: dict) -> Optional[OsmGeo]:
    """Convert one Overpass JSON element to a record, or None if unknown."""
    kind = elem.get("type")
    tags = elem.get("tags") or {}
    if kind == "node":
        return Node(elem.get("id"), elem.get("lat"), elem.get("lon"), tags)
    if kind == "way":
        return Way(elem.get("id"), elem.get("nodes"), tags)
    if kind == "relation":
        members = None
        if elem.get("members") is not None:
            members = []
            for m in elem["members"]:
                try:
                    member_type = OsmGeoType(m.get("type"))
                except ValueError:
                    continue
                if m.get("ref") is None:
                    continue
                members.append(Member(member_type, m["ref"], m.get("role", "")))
        return Relation(elem.get("id"), elem.get("tags"), members)
    return None


def elements_from_overpass(data: dict) -> list[OsmGeo]:
    """Parse an Overpass API JSON document into typed records."""
    elements = []
    for elem in data.get("elements", []):
        record = _parse_element(elem)
        if record is not None:
            elements.append(record)
    return elements


def route_type_of(relation) -> Optional[str]:
    """The route tag of a type=route relation, or None."""
    tags = getattr(relation, "tags", None)
    if not tags or tags.get(TAG_TYPE) != TYPE_ROUTE:
        return None
    return tags.get(TAG_ROUTE)


def is_transit_route(relation) -> bool:
    """True for a route relation carrying a route type and at least one member."""
    if not isinstance(relation, Relation):
        return False
    return route_type_of(relation) is not None and bool(relation.members)


def route_type_filter(route_types: Iterable[str]) -> Optional[Callable[[Relation], bool]]:
    """Build a relation filter accepting only the given route types."""
    allowed = set(route_types)
    if not allowed:
        return None
    return lambda relation: route_type_of(relation) in allowed


class TransitDataIndex:
    """Transit route relations and the records their members refer to.

    Built in two passes over a re-iterable element sequence: the first keeps
    route relations and registers member keys, the second fills the members.
    """

    def __init__(self, route_filter: Optional[Callable[[Relation], bool]] = None):
        self._filter = route_filter
        self._relations: dict[int, Relation] = {}
        self._members: dict[tuple[OsmGeoType, int], Optional[OsmGeo]] = {}

    @classmethod
    def from_elements(
        cls,
        elements: Iterable[OsmGeo],
        route_filter: Optional[Callable[[Relation], bool]] = None,
    ) -> "TransitDataIndex":
        elements = list(elements)
        index = cls(route_filter)
        for element in elements:
            index.add_relation(element)
        for element in elements:
            index.add_member(element)
        return index

    def add_relation(self, element) -> bool:
        """Keep a transit route relation and register its member keys."""
        if not is_transit_route(element) or element.id is None:
            return False
        if self._filter is not None and not self._filter(element):
            return False
        self._relations[element.id] = element
        for member in element.members:
            self._members.setdefault((member.type, member.ref), None)
        return True

    def add_member(self, element) -> bool:
        """Store the record for a registered member key."""
        if getattr(element, "id", None) is None:
            return False
        key = (element.type, element.id)
        if key not in self._members:
            return False
        self._members[key] = element
        return True

    @property
    def relations(self) -> list[Relation]:
        return list(self._relations.values())

    def get_member(self, member_type: OsmGeoType, member_id: int) -> Optional[OsmGeo]:
        """Record for a member, or None if unknown or never seen."""
        return self._members.get((OsmGeoType(member_type), member_id))

    def __len__(self) -> int:
        return len(self._relations)
