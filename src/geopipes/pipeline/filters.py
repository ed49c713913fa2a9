"""
Filter Stages

Streaming predicates over flows: attribute comparisons, null checks, window
intersection, compiled CQL expressions, spatial relations and the three
geometry equality comparators. A flow either passes unchanged or is dropped.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable
from typing import Any

from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from ..domain.enums import Comparison, SpatialRelation
from ..types import Envelope, GeometryOperationError
from .cql import compile_cql
from .flow import Flow, Stage

logger = logging.getLogger(__name__)


def _strict_equal(left: Any, right: Any) -> bool:
    """Equality that also requires the same type (1 != 1.0, True != 1)."""
    return type(left) is type(right) and left == right


_COMPARATORS: dict[Comparison, Callable[[Any, Any], bool]] = {
    Comparison.EQUAL: _strict_equal,
    Comparison.NOT_EQUAL: lambda left, right: not _strict_equal(left, right),
    Comparison.GREATER_THAN: operator.gt,
    Comparison.GREATER_THAN_OR_EQUAL: operator.ge,
    Comparison.LESS_THAN: operator.lt,
    Comparison.LESS_THAN_OR_EQUAL: operator.le,
}


def filter_stage(accept: Callable[[Flow], bool]) -> Stage:
    """Wrap a flow predicate as a lazy pass-through stage."""
    def stage(flows):
        return (flow for flow in flows if accept(flow))
    return stage


def property_filter(name: str, value: Any, comparison: Comparison = Comparison.EQUAL) -> Stage:
    """
    Pass flows whose property `name` compares to `value`.

    Flows without the property, or with a null value, never pass an ordering
    comparison; for EQUAL the match is type-sensitive.

    Args:
        name: Property name
        value: Value to compare against
        comparison: Comparison operator (default: EQUAL)

    Returns:
        Filter stage
    """
    comparison = Comparison(comparison)
    compare = _COMPARATORS[comparison]
    ordering = comparison not in (Comparison.EQUAL, Comparison.NOT_EQUAL)

    def accept(flow: Flow) -> bool:
        if name not in flow.properties:
            return comparison == Comparison.NOT_EQUAL
        candidate = flow.properties[name]
        if ordering and candidate is None:
            return False
        try:
            return compare(candidate, value)
        except TypeError:
            return False

    return filter_stage(accept)


def property_null_filter(name: str) -> Stage:
    return filter_stage(lambda flow: flow.properties.get(name) is None)


def property_not_null_filter(name: str) -> Stage:
    return filter_stage(lambda flow: flow.properties.get(name) is not None)


def record_attribute_filter(name: str, value: Any) -> Stage:
    """Pass flows whose originating record has attribute `name` equal to `value`."""
    missing = object()

    def accept(flow: Flow) -> bool:
        return _strict_equal(flow.record_attribute(name, missing), value)

    return filter_stage(accept)


def window_intersection_filter(*bounds) -> Stage:
    """Pass flows whose envelope intersects the window (Envelope or four bounds)."""
    window = Envelope.of(*bounds)

    def accept(flow: Flow) -> bool:
        if flow.geometry.is_empty:
            return False
        return window.intersects(Envelope.from_geometry(flow.geometry))

    return filter_stage(accept)


def cql_filter(expression: str) -> Stage:
    # Compiled here so a malformed expression fails when the stage is built
    predicate = compile_cql(expression)
    logger.debug(f"Compiled CQL filter: {expression}")
    return filter_stage(predicate)


def spatial_relation_filter(relation: SpatialRelation, geometry: BaseGeometry) -> Stage:
    """Pass flows where `flow.geometry <relation> geometry` holds."""
    method = SpatialRelation(relation).value
    return filter_stage(lambda flow: getattr(flow.geometry, method)(geometry))


def _check_tolerance(tolerance: float) -> None:
    if tolerance < 0:
        raise ValueError("Tolerance must be non-negative")


def _exact_matcher(geometry: BaseGeometry, tolerance: float) -> Callable[[BaseGeometry], bool]:
    return lambda candidate: candidate.equals_exact(geometry, tolerance)


def _norm_matcher(geometry: BaseGeometry, tolerance: float) -> Callable[[BaseGeometry], bool]:
    exact = _exact_matcher(geometry, tolerance)
    normalized = geometry.normalize()

    def match(candidate: BaseGeometry) -> bool:
        return exact(candidate) or candidate.normalize().equals_exact(normalized, tolerance)

    return match


def _topo_matcher(geometry: BaseGeometry, tolerance: float) -> Callable[[BaseGeometry], bool]:
    norm = _norm_matcher(geometry, tolerance)
    return lambda candidate: norm(candidate) or candidate.equals(geometry)


def _equality_stage(name: str, match: Callable[[BaseGeometry], bool]) -> Stage:
    def accept(flow: Flow) -> bool:
        try:
            return match(flow.geometry)
        except GEOSException as e:
            raise GeometryOperationError(name, flow.id, str(e)) from e

    return filter_stage(accept)


def equal_exact_filter(geometry: BaseGeometry, tolerance: float = 0.0) -> Stage:
    """
    Same structure and vertex order, each vertex within `tolerance`.
    """
    _check_tolerance(tolerance)
    return _equality_stage("equal_exact", _exact_matcher(geometry, tolerance))


def equal_norm_filter(geometry: BaseGeometry, tolerance: float = 0.0) -> Stage:
    """
    Exact equality after both geometries are put in normal form.

    Normal form fixes ring orientation, start vertex and part order, so
    differently ordered descriptions of the same vertices compare equal.
    Anything passing equal_exact_filter at the same tolerance also passes.
    """
    _check_tolerance(tolerance)
    return _equality_stage("equal_norm", _norm_matcher(geometry, tolerance))


def equal_topo_filter(geometry: BaseGeometry, tolerance: float = 0.0) -> Stage:
    """
    Point-set equality, independent of vertices and representation.

    Anything passing equal_norm_filter at the same tolerance also passes, so
    with a positive tolerance near-equal geometries are accepted as well.
    """
    _check_tolerance(tolerance)
    return _equality_stage("equal_topo", _topo_matcher(geometry, tolerance))
