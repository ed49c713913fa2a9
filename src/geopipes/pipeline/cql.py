"""
CQL Filter Compilation

Parses ECQL text with pygeofilter and compiles the resulting AST into a
predicate over a Flow. Attribute names resolve to the flow's properties
first, then to the originating records' attributes; `the_geom`, `geom` and
`geometry` resolve to the flow geometry.

Unsupported constructs and parse failures are reported as CQLSyntaxError
when the expression is compiled, never while flows are evaluated.
"""

from __future__ import annotations

import logging
import operator
import re
from collections.abc import Callable
from typing import Any

from lark.exceptions import LarkError
from pygeofilter import ast, values
from pygeofilter.parsers.ecql import parse as parse_ecql
from shapely.geometry import box, shape

from ..types import CQLSyntaxError
from .flow import Flow

logger = logging.getLogger(__name__)

GEOMETRY_ATTRIBUTES = {"the_geom", "geom", "geometry"}

Predicate = Callable[[Flow], bool]
Getter = Callable[[Flow], Any]

_MISSING = object()

_COMPARISONS = {
    ast.Equal: operator.eq,
    ast.NotEqual: operator.ne,
    ast.LessThan: operator.lt,
    ast.LessEqual: operator.le,
    ast.GreaterThan: operator.gt,
    ast.GreaterEqual: operator.ge,
}


def compile_cql(expression: str) -> Predicate:
    """
    Compile an ECQL expression into a flow predicate.

    Args:
        expression: ECQL text, e.g. "name = 'Storgatan'" or "BBOX(the_geom, 10, 40, 20, 56)"

    Returns:
        Callable returning True for matching flows

    Raises:
        CQLSyntaxError: If the expression cannot be parsed or uses unsupported constructs
    """
    try:
        node = parse_ecql(expression)
    except LarkError as e:
        raise CQLSyntaxError(expression, str(e)) from e
    return _CQLCompiler(expression).compile(node)


def _attribute_getter(name: str) -> Getter:
    if name in GEOMETRY_ATTRIBUTES:
        return lambda flow: flow.geometry

    def get(flow: Flow) -> Any:
        if name in flow.properties:
            return flow.properties[name]
        return flow.record_attribute(name, _MISSING)

    return get


def _like_regex(node: ast.Like) -> re.Pattern:
    pattern = []
    escaping = False
    for char in node.pattern:
        if escaping:
            pattern.append(re.escape(char))
            escaping = False
        elif node.escapechar and char == node.escapechar:
            escaping = True
        elif char == node.wildcard:
            pattern.append(".*")
        elif char == node.singlechar:
            pattern.append(".")
        else:
            pattern.append(re.escape(char))
    flags = re.IGNORECASE if node.nocase else 0
    return re.compile("".join(pattern) + r"\Z", flags | re.DOTALL)


class _CQLCompiler:
    """Walks a pygeofilter AST once and returns nested closures."""

    def __init__(self, expression: str):
        self.expression = expression

    def unsupported(self, node: Any) -> CQLSyntaxError:
        return CQLSyntaxError(self.expression, f"unsupported construct {type(node).__name__}")

    def compile(self, node: Any) -> Predicate:
        if isinstance(node, ast.And):
            lhs, rhs = self.compile(node.lhs), self.compile(node.rhs)
            return lambda flow: lhs(flow) and rhs(flow)
        if isinstance(node, ast.Or):
            lhs, rhs = self.compile(node.lhs), self.compile(node.rhs)
            return lambda flow: lhs(flow) or rhs(flow)
        if isinstance(node, ast.Not):
            sub = self.compile(node.sub_node)
            return lambda flow: not sub(flow)
        if type(node) in _COMPARISONS:
            return self._comparison(node)
        if isinstance(node, ast.IsNull):
            return self._is_null(node)
        if isinstance(node, ast.Like):
            return self._like(node)
        if isinstance(node, ast.Between):
            return self._between(node)
        if isinstance(node, ast.In):
            return self._in(node)
        if isinstance(node, ast.BBox):
            return self._bbox(node)
        if isinstance(node, ast.SpatialComparisonPredicate):
            return self._spatial(node)
        raise self.unsupported(node)

    def value(self, node: Any) -> Getter:
        if isinstance(node, ast.Attribute):
            return _attribute_getter(node.name)
        if isinstance(node, values.Geometry):
            geometry = shape(node.geometry)
            return lambda flow: geometry
        if isinstance(node, values.Envelope):
            envelope = box(node.x1, node.y1, node.x2, node.y2)
            return lambda flow: envelope
        if isinstance(node, (str, int, float, bool)) or node is None:
            return lambda flow: node
        raise self.unsupported(node)

    def _comparison(self, node: ast.Comparison) -> Predicate:
        compare = _COMPARISONS[type(node)]
        lhs, rhs = self.value(node.lhs), self.value(node.rhs)

        def predicate(flow: Flow) -> bool:
            left, right = lhs(flow), rhs(flow)
            if left is _MISSING or right is _MISSING or left is None or right is None:
                return False
            try:
                return compare(left, right)
            except TypeError:
                # str against number and the like never match
                return False

        return predicate

    def _is_null(self, node: ast.IsNull) -> Predicate:
        lhs = self.value(node.lhs)

        def predicate(flow: Flow) -> bool:
            value = lhs(flow)
            is_null = value is None or value is _MISSING
            return not is_null if node.not_ else is_null

        return predicate

    def _like(self, node: ast.Like) -> Predicate:
        lhs = self.value(node.lhs)
        regex = _like_regex(node)

        def predicate(flow: Flow) -> bool:
            value = lhs(flow)
            if not isinstance(value, str):
                return False
            matched = regex.match(value) is not None
            return not matched if node.not_ else matched

        return predicate

    def _between(self, node: ast.Between) -> Predicate:
        lhs, low, high = self.value(node.lhs), self.value(node.low), self.value(node.high)

        def predicate(flow: Flow) -> bool:
            value = lhs(flow)
            if value is None or value is _MISSING:
                return False
            try:
                inside = low(flow) <= value <= high(flow)
            except TypeError:
                return False
            return not inside if node.not_ else inside

        return predicate

    def _in(self, node: ast.In) -> Predicate:
        lhs = self.value(node.lhs)
        options = [self.value(sub) for sub in node.sub_nodes]

        def predicate(flow: Flow) -> bool:
            value = lhs(flow)
            if value is None or value is _MISSING:
                return False
            found = any(value == option(flow) for option in options)
            return not found if node.not_ else found

        return predicate

    def geometry_value(self, node: Any) -> Getter:
        if isinstance(node, ast.Attribute) and node.name not in GEOMETRY_ATTRIBUTES:
            raise CQLSyntaxError(self.expression, f"'{node.name}' is not a geometry attribute")
        if isinstance(node, (ast.Attribute, values.Geometry, values.Envelope)):
            return self.value(node)
        raise CQLSyntaxError(self.expression, f"expected a geometry, got {node!r}")

    def _bbox(self, node: ast.BBox) -> Predicate:
        lhs = self.geometry_value(node.lhs)
        window = box(node.minx, node.miny, node.maxx, node.maxy)
        return lambda flow: lhs(flow).intersects(window)

    def _spatial(self, node: ast.SpatialComparisonPredicate) -> Predicate:
        method = node.op.name.lower()
        lhs, rhs = self.geometry_value(node.lhs), self.geometry_value(node.rhs)
        return lambda flow: getattr(lhs(flow), method)(rhs(flow))
