"""
Type definitions for the GeoPipes pipeline engine.

This module provides the small immutable value types shared by the layer, the
spatial index and the pipeline stages, together with the exception hierarchy
raised by pipeline operations.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

import shapely.affinity
from shapely.geometry import Polygon, box
from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True)
class Envelope:
    """Axis-aligned bounding box as (minx, miny, maxx, maxy)."""
    minx: float
    miny: float
    maxx: float
    maxy: float

    def __post_init__(self):
        """Validate envelope ordering."""
        if any(math.isnan(v) for v in self.bounds):
            raise ValueError("Envelope bounds must be numbers")
        if self.minx > self.maxx or self.miny > self.maxy:
            raise ValueError(
                f"Envelope minimum must not exceed maximum: {self.bounds}"
            )

    @classmethod
    def of(cls, *args: Union["Envelope", float]) -> "Envelope":
        """
        Build an envelope from either an Envelope or four scalar bounds.

        Args:
            *args: A single Envelope, or minx, miny, maxx, maxy

        Returns:
            Envelope instance
        """
        if len(args) == 1 and isinstance(args[0], Envelope):
            return args[0]
        if len(args) == 4:
            return cls(*(float(v) for v in args))
        raise TypeError("Expected an Envelope or four bounds (minx, miny, maxx, maxy)")

    @classmethod
    def from_geometry(cls, geometry: BaseGeometry) -> "Envelope":
        if geometry.is_empty:
            raise ValueError("Empty geometry has no envelope")
        return cls(*geometry.bounds)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return (self.minx, self.miny, self.maxx, self.maxy)

    def intersects(self, other: "Envelope") -> bool:
        return not (
            other.minx > self.maxx
            or other.maxx < self.minx
            or other.miny > self.maxy
            or other.maxy < self.miny
        )

    def expand_by(self, distance: float) -> "Envelope":
        return Envelope(
            self.minx - distance,
            self.miny - distance,
            self.maxx + distance,
            self.maxy + distance,
        )

    def to_polygon(self) -> Polygon:
        return box(*self.bounds)


@dataclass(frozen=True)
class AffineTransformation:
    """2D affine map x' = a*x + b*y + xoff, y' = d*x + e*y + yoff."""
    a: float = 1.0
    b: float = 0.0
    d: float = 0.0
    e: float = 1.0
    xoff: float = 0.0
    yoff: float = 0.0

    @classmethod
    def translation(cls, dx: float, dy: float) -> "AffineTransformation":
        return cls(xoff=dx, yoff=dy)

    @classmethod
    def scaling(cls, sx: float, sy: float) -> "AffineTransformation":
        return cls(a=sx, e=sy)

    @classmethod
    def rotation(cls, theta: float) -> "AffineTransformation":
        """Counter-clockwise rotation about the origin, theta in radians."""
        cos, sin = math.cos(theta), math.sin(theta)
        return cls(a=cos, b=-sin, d=sin, e=cos)

    @property
    def matrix(self) -> list[float]:
        """Coefficients in the order expected by shapely.affinity.affine_transform."""
        return [self.a, self.b, self.d, self.e, self.xoff, self.yoff]

    def then(self, other: "AffineTransformation") -> "AffineTransformation":
        """Compose: apply this transformation first, then `other`."""
        return AffineTransformation(
            a=other.a * self.a + other.b * self.d,
            b=other.a * self.b + other.b * self.e,
            d=other.d * self.a + other.e * self.d,
            e=other.d * self.b + other.e * self.e,
            xoff=other.a * self.xoff + other.b * self.yoff + other.xoff,
            yoff=other.d * self.xoff + other.e * self.yoff + other.yoff,
        )

    def inverse(self) -> "AffineTransformation":
        det = self.a * self.e - self.b * self.d
        if det == 0:
            raise ValueError("Affine transformation is not invertible")
        a, b = self.e / det, -self.b / det
        d, e = -self.d / det, self.a / det
        return AffineTransformation(
            a=a,
            b=b,
            d=d,
            e=e,
            xoff=-(a * self.xoff + b * self.yoff),
            yoff=-(d * self.xoff + e * self.yoff),
        )

    def apply(self, geometry: BaseGeometry) -> BaseGeometry:
        return shapely.affinity.affine_transform(geometry, self.matrix)


# Pipeline exception hierarchy
class PipelineExhausted(StopIteration):
    """Raised when a flow is requested from a pipeline that has none left.

    Subclasses StopIteration so plain iteration ends normally; it is an
    expected condition, not an error.
    """
    pass


class GeoPipesError(Exception):
    """Base exception for pipeline operations."""
    pass


class CQLSyntaxError(GeoPipesError):
    """Malformed or unsupported CQL filter expression."""
    def __init__(self, expression: str, message: str):
        self.expression = expression
        super().__init__(f"Invalid CQL expression '{expression}': {message}")


class GeometryOperationError(GeoPipesError):
    """A geometric operation failed for a flow's geometry."""
    def __init__(self, operation: str, flow_id: str, message: str):
        self.operation = operation
        self.flow_id = flow_id
        super().__init__(f"{operation} failed for flow {flow_id}: {message}")


class LayerError(GeoPipesError):
    """Error in layer lookup or record insertion."""
    pass


class UnknownStageError(GeoPipesError):
    """A recipe names a stage the pipeline does not provide."""
    pass
