"""
GeoPipeline - Lazy Geometry Pipelines

A GeoPipeline is a single-pass, single-consumer iterator of Flows with one
element of lookahead. Every stage method wraps the current pipeline in a new
one, so pipelines read left to right:

    GeoPipeline.start(layer).calculate_area().sort("Area").next()

All work happens inside `has_next()`/`next()` calls of the consumer; nothing
runs in the background and nothing runs before the first pull.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import Any, Optional

import geopandas as gpd
from shapely.geometry.base import BaseGeometry

from ..domain.enums import Comparison, SpatialRelation
from ..index import (
    SearchAll,
    SearchContain,
    SearchEqualExact,
    SearchFilter,
    SearchIntersect,
    SearchIntersectWindow,
    SearchWithin,
    SearchWithinDistance,
)
from ..layer import Layer
from ..types import AffineTransformation, Envelope, PipelineExhausted
from . import aggregates, filters, islands, metrics, serialization, transforms
from .flow import Flow, Stage

logger = logging.getLogger(__name__)

_NOTHING = object()


class GeoPipeline:
    """
    Lazy chain of pipeline stages over flows from a layer search.

    Pipelines are iterators: `for flow in pipeline` consumes them, and
    requesting a flow past the end with `next()` raises PipelineExhausted.
    """

    def __init__(self, flows: Iterable[Flow], layer: Optional[Layer] = None):
        self._source: Iterator[Flow] = iter(flows)
        self._lookahead: Any = _NOTHING
        self.layer = layer

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @classmethod
    def start(cls, layer: Layer, search: Optional[SearchFilter] = None) -> "GeoPipeline":
        """
        Start a pipeline over the records of `layer` matching `search`.

        Args:
            layer: Layer to read from
            search: Index search filter (default: all records)

        Returns:
            Pipeline yielding one flow per matching record
        """
        search = search or SearchAll()
        logger.debug(f"Starting pipeline on layer '{layer.name}' with {search!r}")
        ids = layer.index.search(search)
        return cls((Flow.from_record(layer.get(record_id)) for record_id in ids), layer)

    @classmethod
    def start_intersect_window_search(cls, layer: Layer, *bounds) -> "GeoPipeline":
        """Records whose envelope intersects the window (Envelope or four bounds)."""
        return cls.start(layer, SearchIntersectWindow(Envelope.of(*bounds)))

    @classmethod
    def start_equal_exact_search(
        cls, layer: Layer, geometry: BaseGeometry, tolerance: float = 0.0
    ) -> "GeoPipeline":
        return cls.start(layer, SearchEqualExact(geometry, tolerance))

    @classmethod
    def start_intersect_search(cls, layer: Layer, geometry: BaseGeometry) -> "GeoPipeline":
        return cls.start(layer, SearchIntersect(geometry))

    @classmethod
    def start_within_search(cls, layer: Layer, geometry: BaseGeometry) -> "GeoPipeline":
        return cls.start(layer, SearchWithin(geometry))

    @classmethod
    def start_contain_search(cls, layer: Layer, geometry: BaseGeometry) -> "GeoPipeline":
        return cls.start(layer, SearchContain(geometry))

    @classmethod
    def start_nearest_neighbor_search(
        cls, layer: Layer, point: BaseGeometry, max_distance: float
    ) -> "GeoPipeline":
        """Records within max_distance of `point`, nearest first, with a Distance property."""
        return (
            cls.start(layer, SearchWithinDistance(point, max_distance))
            .calculate_distance(point)
            .sort(metrics.DISTANCE)
        )

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def has_next(self) -> bool:
        """True if another flow is available; reads at most one flow ahead."""
        if self._lookahead is _NOTHING:
            self._lookahead = next(self._source, _NOTHING)
        return self._lookahead is not _NOTHING

    def next(self) -> Flow:
        if not self.has_next():
            raise PipelineExhausted("No more flows in pipeline")
        flow, self._lookahead = self._lookahead, _NOTHING
        return flow

    def __next__(self) -> Flow:
        return self.next()

    def __iter__(self) -> "GeoPipeline":
        return self

    def add_stage(self, stage: Stage) -> "GeoPipeline":
        """Wrap this pipeline with `stage`, returning the new pipeline."""
        return GeoPipeline(stage(self), self.layer)

    # ------------------------------------------------------------------
    # Terminal operations
    # ------------------------------------------------------------------

    def count(self) -> int:
        """Consume the pipeline and return the number of flows."""
        return sum(1 for _ in self)

    def to_list(self) -> list[Flow]:
        """Consume the pipeline into a reusable list."""
        return list(self)

    def to_feature_collection(self) -> gpd.GeoDataFrame:
        """
        Consume the pipeline into a GeoDataFrame.

        Each flow becomes a row with its properties as columns; the CRS is
        taken from the source layer.

        Returns:
            GeoDataFrame with one row per flow
        """
        flows = self.to_list()
        crs = self.layer.crs if self.layer is not None else None
        return gpd.GeoDataFrame(
            [dict(flow.properties) for flow in flows],
            geometry=[flow.geometry for flow in flows],
            crs=crs,
        )

    # ------------------------------------------------------------------
    # Record properties
    # ------------------------------------------------------------------

    def copy_record_properties(self, names: Optional[Sequence[str]] = None) -> "GeoPipeline":
        """Copy the originating records' attributes into each flow's properties."""
        def stage(flows):
            for flow in flows:
                flow.copy_record_properties(names)
                yield flow
        return self.add_stage(stage)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def property_filter(
        self, name: str, value: Any, comparison: Comparison = Comparison.EQUAL
    ) -> "GeoPipeline":
        return self.add_stage(filters.property_filter(name, value, comparison))

    def property_null_filter(self, name: str) -> "GeoPipeline":
        return self.add_stage(filters.property_null_filter(name))

    def property_not_null_filter(self, name: str) -> "GeoPipeline":
        return self.add_stage(filters.property_not_null_filter(name))

    def record_attribute_filter(self, name: str, value: Any) -> "GeoPipeline":
        return self.add_stage(filters.record_attribute_filter(name, value))

    def osm_attribute_filter(self, name: str, value: Any) -> "GeoPipeline":
        """Filter on an OSM tag of the originating way."""
        return self.record_attribute_filter(name, value)

    def window_intersection_filter(self, *bounds) -> "GeoPipeline":
        return self.add_stage(filters.window_intersection_filter(*bounds))

    def cql_filter(self, expression: str) -> "GeoPipeline":
        return self.add_stage(filters.cql_filter(expression))

    def equal_exact_filter(self, geometry: BaseGeometry, tolerance: float = 0.0) -> "GeoPipeline":
        return self.add_stage(filters.equal_exact_filter(geometry, tolerance))

    def equal_norm_filter(self, geometry: BaseGeometry, tolerance: float = 0.0) -> "GeoPipeline":
        return self.add_stage(filters.equal_norm_filter(geometry, tolerance))

    def equal_topo_filter(self, geometry: BaseGeometry, tolerance: float = 0.0) -> "GeoPipeline":
        return self.add_stage(filters.equal_topo_filter(geometry, tolerance))

    def spatial_relation_filter(self, relation: SpatialRelation, geometry: BaseGeometry) -> "GeoPipeline":
        return self.add_stage(filters.spatial_relation_filter(relation, geometry))

    def intersection_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.INTERSECTS, geometry)

    def within_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.WITHIN, geometry)

    def contain_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.CONTAINS, geometry)

    def cover_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.COVERS, geometry)

    def covered_by_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.COVERED_BY, geometry)

    def disjoint_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.DISJOINT, geometry)

    def touch_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.TOUCHES, geometry)

    def cross_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.CROSSES, geometry)

    def overlap_filter(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.spatial_relation_filter(SpatialRelation.OVERLAPS, geometry)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def apply_affine_transform(self, transformation: AffineTransformation) -> "GeoPipeline":
        return self.add_stage(transforms.affine_transform(transformation))

    def to_boundary(self) -> "GeoPipeline":
        return self.add_stage(transforms.to_boundary())

    def to_buffer(self, distance: float, quad_segs: int = transforms.DEFAULT_QUAD_SEGS) -> "GeoPipeline":
        return self.add_stage(transforms.to_buffer(distance, quad_segs))

    def to_centroid(self) -> "GeoPipeline":
        return self.add_stage(transforms.to_centroid())

    def to_convex_hull(self) -> "GeoPipeline":
        return self.add_stage(transforms.to_convex_hull())

    def to_envelope(self) -> "GeoPipeline":
        return self.add_stage(transforms.to_envelope())

    def to_interior_point(self) -> "GeoPipeline":
        return self.add_stage(transforms.to_interior_point())

    def intersect(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.add_stage(transforms.intersect(geometry))

    def difference(self, geometry: BaseGeometry) -> "GeoPipeline":
        return self.add_stage(transforms.difference(geometry))

    def densify(self, tolerance: float) -> "GeoPipeline":
        return self.add_stage(transforms.densify(tolerance))

    def extract_points(self) -> "GeoPipeline":
        return self.add_stage(transforms.extract_points())

    def extract_osm_points(self) -> "GeoPipeline":
        return self.add_stage(transforms.extract_osm_points())

    def group_by_density_islands(self, tolerance: float) -> "GeoPipeline":
        return self.add_stage(islands.group_by_density_islands(tolerance))

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def calculate_area(self) -> "GeoPipeline":
        return self.add_stage(metrics.calculate_area())

    def calculate_length(self) -> "GeoPipeline":
        return self.add_stage(metrics.calculate_length())

    def calculate_distance(self, reference: BaseGeometry) -> "GeoPipeline":
        return self.add_stage(metrics.calculate_distance(reference))

    def count_points(self) -> "GeoPipeline":
        return self.add_stage(metrics.count_points())

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def sort(self, name: str, reverse: bool = False) -> "GeoPipeline":
        return self.add_stage(aggregates.sort(name, reverse))

    def get_min(self, name: str) -> "GeoPipeline":
        return self.add_stage(aggregates.get_min(name))

    def get_max(self, name: str) -> "GeoPipeline":
        return self.add_stage(aggregates.get_max(name))

    def union_all(self) -> "GeoPipeline":
        return self.add_stage(aggregates.union_all())

    def intersect_all(self) -> "GeoPipeline":
        return self.add_stage(aggregates.intersect_all())

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def create_well_known_text(self) -> "GeoPipeline":
        return self.add_stage(serialization.create_well_known_text())

    def create_json(self) -> "GeoPipeline":
        return self.add_stage(serialization.create_json())

    def __repr__(self) -> str:
        layer = self.layer.name if self.layer is not None else None
        return f"GeoPipeline(layer={layer!r})"
