"""
Aggregate Stages

Blocking stages: each drains its whole upstream on the first pull, then
emits a reordered or reduced set of flows.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable
from typing import Any

import shapely
from shapely.errors import GEOSException
from shapely.geometry import LinearRing, LineString, Point, Polygon

from ..types import GeometryOperationError
from .flow import Flow, Stage

logger = logging.getLogger(__name__)

_ON_EDGE = 1e-9


def sort(name: str, reverse: bool = False) -> Stage:
    """
    Stable sort on property `name`.

    Ties keep arrival order. Flows without the property (or with a null
    value) follow the sorted flows, also in arrival order.
    """
    def stage(flows):
        present, missing = [], []
        for flow in flows:
            (missing if flow.properties.get(name) is None else present).append(flow)
        logger.debug(f"Sorting {len(present)} flows on '{name}' ({len(missing)} without value)")
        present.sort(key=lambda flow: flow.properties[name], reverse=reverse)
        yield from present
        yield from missing
    return stage


def _extremum(name: str, better: Callable[[Any, Any], bool]) -> Stage:
    def stage(flows):
        best = None
        for flow in flows:
            value = flow.properties.get(name)
            if value is None:
                continue
            if best is None or better(value, best.properties[name]):
                best = flow
        if best is not None:
            yield best
    return stage


def get_min(name: str) -> Stage:
    """The first flow with the smallest value of `name`; nothing if no flow has it."""
    return _extremum(name, operator.lt)


def get_max(name: str) -> Stage:
    """The first flow with the largest value of `name`; nothing if no flow has it."""
    return _extremum(name, operator.gt)


def _first_vertex_on(boundary: LinearRing, vertices: list) -> int | None:
    """Index of the first vertex met when walking `boundary` edge by edge."""
    points = [Point(vertex) for vertex in vertices]
    trace = list(boundary.coords)
    for a, b in zip(trace, trace[1:]):
        if a == b:
            continue
        edge = LineString([a, b])
        hits = [(edge.project(point), i) for i, point in enumerate(points) if edge.distance(point) <= _ON_EDGE]
        if hits:
            return min(hits)[1]
    return None


def _align_to(geometry, template):
    """
    Lay out a reduced polygon like the first input polygon.

    The exterior takes the template's orientation and starts at the first
    result vertex found by tracing the template's exterior. Anything else
    falls back to the GEOS normal form.
    """
    if geometry.is_empty or not isinstance(geometry, Polygon) or not isinstance(template, Polygon):
        return shapely.normalize(geometry)
    exterior = geometry.exterior
    if exterior.is_ccw != template.exterior.is_ccw:
        exterior = LinearRing(list(exterior.coords)[::-1])
    vertices = list(exterior.coords)[:-1]
    start = _first_vertex_on(template.exterior, vertices)
    if start is None:
        return shapely.normalize(geometry)
    shell = vertices[start:] + vertices[:start]
    return Polygon(shell, [list(interior.coords) for interior in geometry.interiors])


def _reduce_stage(operation: str, reduce: Callable[[list], Any]) -> Stage:
    def stage(flows):
        buffered = list(flows)
        if not buffered:
            return
        try:
            geometry = reduce([flow.geometry for flow in buffered])
        except GEOSException as e:
            raise GeometryOperationError(operation, buffered[0].id, str(e)) from e
        logger.debug(f"{operation} reduced {len(buffered)} flows")
        yield Flow.merge(buffered, _align_to(geometry, buffered[0].geometry))
    return stage


def union_all() -> Stage:
    return _reduce_stage("union_all", shapely.union_all)


def intersect_all() -> Stage:
    # Disjoint inputs still yield one flow, with an empty geometry
    return _reduce_stage("intersect_all", shapely.intersection_all)
