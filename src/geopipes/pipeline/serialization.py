"""
Serialization Stages

Render flow geometries as text properties: Well-Known Text and compact
GeoJSON geometry objects.
"""

from __future__ import annotations

import json
from typing import Any

import shapely
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from .flow import Stage
from .metrics import metric_stage

WELL_KNOWN_TEXT = "WellKnownText"
GEOJSON = "GeoJSON"


def to_wkt(geometry: BaseGeometry) -> str:
    return shapely.to_wkt(geometry, rounding_precision=-1, trim=True)


def _compact(value: Any) -> Any:
    """Lists for tuples, ints for integral floats, recursively."""
    if isinstance(value, dict):
        return {key: _compact(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_compact(item) for item in value]
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def to_geojson(geometry: BaseGeometry) -> str:
    """
    Compact GeoJSON geometry text.

    Coordinates are [x, y]; polygon rings repeat their first vertex; integral
    coordinates are written without a decimal part, e.g. [12,56].
    """
    return json.dumps(_compact(mapping(geometry)), separators=(",", ":"))


def create_well_known_text() -> Stage:
    return metric_stage(WELL_KNOWN_TEXT, to_wkt)


def create_json() -> Stage:
    return metric_stage(GEOJSON, to_geojson)
