"""
Metric Stages

Scalar measurements stored on the flow under reserved property names.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import shapely
from shapely.geometry.base import BaseGeometry

from .flow import Stage

AREA = "Area"
LENGTH = "Length"
DISTANCE = "Distance"
NUM_POINTS = "NumPoints"


def metric_stage(name: str, measure: Callable[[BaseGeometry], Any]) -> Stage:
    """Build a stage setting property `name` to `measure(flow.geometry)`."""
    def stage(flows):
        for flow in flows:
            flow.properties[name] = measure(flow.geometry)
            yield flow
    return stage


def calculate_area() -> Stage:
    # Planar area; 0.0 for points and lines
    return metric_stage(AREA, lambda geometry: float(geometry.area))


def calculate_length() -> Stage:
    # Perimeter for polygons, total length for lines
    return metric_stage(LENGTH, lambda geometry: float(geometry.length))


def calculate_distance(reference: BaseGeometry) -> Stage:
    return metric_stage(DISTANCE, lambda geometry: float(geometry.distance(reference)))


def count_points() -> Stage:
    return metric_stage(NUM_POINTS, lambda geometry: int(shapely.get_num_coordinates(geometry)))
