"""
Travel-mode capability profiles used to pick stop access edges.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping


@dataclass(frozen=True)
class Profile:
    """A travel mode, the highway types it may use and its OSM access keys.

    access_keys are checked in order; the first one granting or denying access decides.
    """

    name: str
    highways: frozenset
    access_keys: tuple = ()

    @property
    def full_name(self) -> str:
        return self.name

    def can_traverse(self, attributes: Mapping[str, str]) -> bool:
        for key in self.access_keys:
            explicit = attributes.get(key)
            if explicit is None:
                continue
            if explicit in ("yes", "designated", "permissive"):
                return True
            if explicit == "no":
                return False
        if attributes.get("access") in ("no", "private"):
            return False
        return attributes.get("highway") in self.highways


_COMMON_ROADS = {
    "residential",
    "living_street",
    "service",
    "unclassified",
    "tertiary",
    "tertiary_link",
    "secondary",
    "secondary_link",
    "primary",
    "primary_link",
    "road",
}

PEDESTRIAN = Profile(
    "pedestrian",
    frozenset(_COMMON_ROADS | {"footway", "path", "pedestrian", "steps", "track", "cycleway"}),
    access_keys=("foot",),
)
BICYCLE = Profile(
    "bicycle",
    frozenset(_COMMON_ROADS | {"cycleway", "path", "track"}),
    access_keys=("bicycle",),
)
CAR = Profile(
    "car",
    frozenset(_COMMON_ROADS | {"motorway", "motorway_link", "trunk", "trunk_link"}),
    access_keys=("motor_vehicle", "motorcar"),
)

PROFILES = {p.name: p for p in (PEDESTRIAN, BICYCLE, CAR)}


def get_profile(name: str) -> Profile:
    """Look up a built-in profile by name."""
    try:
        return PROFILES[name.strip().lower()]
    except KeyError:
        raise KeyError(
            f"Unknown profile '{name}'. Available: {', '.join(sorted(PROFILES))}"
        ) from None


def get_profiles(names: Iterable[str]) -> list[Profile]:
    return [get_profile(n) for n in names if n.strip()]
