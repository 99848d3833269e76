"""
Configuration loading and path resolution for transit2graph.
"""

import configparser
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .constants import (
    DEFAULT_MAX_EDGE_DISTANCE,
    DEFAULT_PROFILES,
    DEFAULT_RESOLVE_DISTANCE,
    ToleranceConfig,
)


@dataclass
class OutputPaths:
    """Resolved output file paths."""

    report_json: str


@dataclass
class Config:
    """Run configuration for transit2graph."""

    transit_file_name: str
    network_file_name: str
    input_directory: str
    output_directory: str
    output_name_prefix: str
    profiles: list[str]
    route_types: list[str]
    max_edge_distance: float
    resolve_max_distance_meters: float
    endpoint_tolerance_meters: float
    sort_vertices: bool = True
    debug_enabled: bool = False

    def transit_path(self) -> str:
        """Full path to the transit (Overpass JSON) file."""
        directory = os.path.join(os.getcwd(), self.input_directory)
        return os.path.join(directory, self.transit_file_name)

    def network_path(self) -> str:
        """Full path to the road network file."""
        directory = os.path.join(os.getcwd(), self.input_directory)
        return os.path.join(directory, self.network_file_name)

    def output_paths(self) -> OutputPaths:
        """Resolved output file paths with date suffix."""
        date_string = datetime.today().strftime("%d%b%Y").lower()
        return OutputPaths(
            report_json=os.path.join(
                self.output_directory,
                f"{self.output_name_prefix}_fusion-report_{date_string}.json",
            ),
        )


def _case_preserving_config_parser() -> type[configparser.ConfigParser]:
    """Create a ConfigParser that preserves option case."""

    class CasePreservingConfigParser(configparser.ConfigParser):
        def optionxform(self, optionstr: str) -> str:
            return optionstr

    return CasePreservingConfigParser


def _parse_float(parsed: dict, key: str, default: float) -> float:
    value = parsed.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        print(f"Warning: Invalid {key} value '{value}'. Using default {default}.")
        return default


def _parse_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(";") if item.strip()]


def load_config(config_file: str) -> Config:
    """Load and validate configuration from an INI file."""

    parser_class = _case_preserving_config_parser()
    config = parser_class()
    config.read(config_file)

    parsed: dict[str, str] = {}
    for option, value in config.defaults().items():
        parsed[option] = value

    for section in config.sections():
        for option in config.options(section):
            parsed[option] = config.get(section, option)

    # Required
    transit_file_name = parsed.get("transit_file_name") or None
    if not transit_file_name:
        print("Error. Please set transit_file_name in network profile")
        sys.exit(1)
    network_file_name = parsed.get("network_file_name") or None
    if not network_file_name:
        print("Error. Please set network_file_name in network profile")
        sys.exit(1)

    # Directories
    input_directory = parsed.get("input_directory", "input/")
    output_directory = parsed.get("output_directory", "output/")

    output_name_prefix = (
        parsed.get("output_name_prefix")
        or Path(transit_file_name).stem.replace(" ", "_").upper()
    )

    # Profiles and route filter
    profiles = _parse_list(parsed.get("profiles"))
    if not profiles:
        print("Profiles not found in config file. Using default value.")
        profiles = list(DEFAULT_PROFILES)
    route_types = _parse_list(parsed.get("route_types"))

    # Distances
    max_edge_distance = _parse_float(parsed, "max_edge_distance", DEFAULT_MAX_EDGE_DISTANCE)
    resolve_max_distance_meters = _parse_float(
        parsed, "resolve_max_distance_meters", DEFAULT_RESOLVE_DISTANCE
    )
    endpoint_tolerance_meters = _parse_float(
        parsed, "endpoint_tolerance_meters", ToleranceConfig.ENDPOINT_MERGE_METERS
    )

    # Booleans
    def parse_bool(s: Optional[str], default: bool = False) -> bool:
        if s is None:
            return default
        return str(s).lower() in ("true", "1", "yes", "on")

    sort_vertices = parse_bool(parsed.get("sort_vertices"), True)
    debug_enabled = parse_bool(parsed.get("debug_enabled"), False)

    return Config(
        transit_file_name=transit_file_name,
        network_file_name=network_file_name,
        input_directory=input_directory,
        output_directory=output_directory,
        output_name_prefix=output_name_prefix,
        profiles=profiles,
        route_types=route_types,
        max_edge_distance=max_edge_distance,
        resolve_max_distance_meters=resolve_max_distance_meters,
        endpoint_tolerance_meters=endpoint_tolerance_meters,
        sort_vertices=sort_vertices,
        debug_enabled=debug_enabled,
    )
