"""
Transform Stages

Streaming geometry operators. Each stage replaces the flow geometry and
leaves its properties untouched; the point extraction stages fan one flow
out into one flow per vertex.

GEOS failures and degenerate input surface as GeometryOperationError naming
the operation and the flow; no flow is ever skipped silently.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable

import numpy as np
import shapely
from shapely.errors import GEOSException
from shapely.geometry import (
    GeometryCollection,
    LinearRing,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)
from shapely.geometry.base import BaseGeometry

from ..types import AffineTransformation, GeometryOperationError
from .flow import Flow, Stage

logger = logging.getLogger(__name__)

DEFAULT_QUAD_SEGS = 8


def geometry_stage(operation: str, transform: Callable[[BaseGeometry], BaseGeometry]) -> Stage:
    """
    Build a 1:1 stage replacing each flow's geometry with `transform(geometry)`.

    Args:
        operation: Operation name used in error messages
        transform: Geometry function; may raise ValueError for degenerate input

    Returns:
        Transform stage
    """
    def stage(flows):
        for flow in flows:
            try:
                flow.geometry = transform(flow.geometry)
            except (GEOSException, ValueError) as e:
                raise GeometryOperationError(operation, flow.id, str(e)) from e
            yield flow
    return stage


def affine_transform(transformation: AffineTransformation) -> Stage:
    return geometry_stage("affine_transform", transformation.apply)


def _boundary(geometry: BaseGeometry) -> BaseGeometry:
    # A hole-free polygon's boundary is its shell ring, kept as a LinearRing
    if isinstance(geometry, Polygon) and not geometry.is_empty and not geometry.interiors:
        return geometry.exterior
    return geometry.boundary


def to_boundary() -> Stage:
    return geometry_stage("boundary", _boundary)


def to_buffer(distance: float, quad_segs: int = DEFAULT_QUAD_SEGS) -> Stage:
    """
    Dilate (positive distance) or erode (negative distance) each geometry.

    Invalid input, e.g. a self-intersecting polygon, is rejected instead of
    being repaired.
    """
    def buffer(geometry: BaseGeometry) -> BaseGeometry:
        if not geometry.is_valid:
            raise ValueError(f"cannot buffer invalid geometry: {shapely.is_valid_reason(geometry)}")
        return geometry.buffer(distance, quad_segs=quad_segs)

    return geometry_stage("buffer", buffer)


def to_centroid() -> Stage:
    return geometry_stage("centroid", lambda geometry: geometry.centroid)


def to_convex_hull() -> Stage:
    return geometry_stage("convex_hull", lambda geometry: geometry.convex_hull)


def to_envelope() -> Stage:
    return geometry_stage("envelope", lambda geometry: geometry.envelope)


def to_interior_point() -> Stage:
    return geometry_stage("interior_point", lambda geometry: geometry.representative_point())


def intersect(other: BaseGeometry) -> Stage:
    return geometry_stage("intersection", lambda geometry: geometry.intersection(other))


def difference(other: BaseGeometry) -> Stage:
    return geometry_stage("difference", lambda geometry: geometry.difference(other))


def _densify_coords(coords: np.ndarray, tolerance: float) -> np.ndarray:
    """Split each segment of length L into int(L / tolerance) + 1 equal parts."""
    if len(coords) < 2:
        return coords
    out = [coords[0]]
    for start, end in zip(coords[:-1], coords[1:]):
        delta = end - start
        pieces = int(math.hypot(delta[0], delta[1]) / tolerance) + 1
        for i in range(1, pieces):
            out.append(start + delta * (i / pieces))
        out.append(end)
    return np.array(out)


def _map_sequences(geometry: BaseGeometry, fn: Callable[[np.ndarray], np.ndarray]) -> BaseGeometry:
    """Rebuild `geometry` with every coordinate sequence passed through `fn`."""
    if geometry.is_empty or isinstance(geometry, (Point, MultiPoint)):
        return geometry
    if isinstance(geometry, LinearRing):
        return LinearRing(fn(np.asarray(geometry.coords)))
    if isinstance(geometry, LineString):
        return LineString(fn(np.asarray(geometry.coords)))
    if isinstance(geometry, Polygon):
        return Polygon(
            fn(np.asarray(geometry.exterior.coords)),
            [fn(np.asarray(ring.coords)) for ring in geometry.interiors],
        )
    if isinstance(geometry, (MultiLineString, MultiPolygon, GeometryCollection)):
        return type(geometry)([_map_sequences(part, fn) for part in geometry.geoms])
    raise ValueError(f"unsupported geometry type {geometry.geom_type}")


def densify(tolerance: float) -> Stage:
    """
    Insert vertices so long segments are split; shape and existing vertices are kept.

    Args:
        tolerance: Segment length threshold, must be positive
    """
    if tolerance <= 0:
        raise ValueError("Densify tolerance must be positive")
    return geometry_stage(
        "densify",
        lambda geometry: _map_sequences(geometry, lambda coords: _densify_coords(coords, tolerance)),
    )


def extract_points() -> Stage:
    """One flow per vertex of each source geometry, closing vertices included."""
    def stage(flows):
        for flow in flows:
            coords = shapely.get_coordinates(flow.geometry)
            for i, (x, y) in enumerate(coords):
                yield flow.fork(str(i), Point(x, y))
    return stage


def extract_osm_points() -> Stage:
    """
    One flow per node of each OSM way record.

    Points come from the way's stored nodes, not from the current flow
    geometry. Flows without an OSM way record produce nothing.
    """
    def stage(flows):
        for flow in flows:
            ways = [record.osm_way for record in flow.records if record.osm_way is not None]
            if not ways:
                logger.debug(f"Flow {flow.id} has no OSM way record, no points extracted")
                continue
            for way in ways:
                for node in way.nodes:
                    yield flow.fork(f"{way.way_id}-{node.node_id}", Point(node.x, node.y))
    return stage
