"""
Layers and Geometry Records

In-memory layers owning geometry records, a geometry factory and a spatial
index. These stand in for the backing spatial store: the pipeline only reads
records through `Layer.get` and `Layer.index.search`.

Layer kinds:
- EditableLayer: records inserted with named property arrays
- OsmLayer: records built from OpenStreetMap ways and their nodes
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

import geopandas as gpd
import numpy as np
import shapely
from shapely.errors import GEOSException
from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry

from .index import SpatialIndex
from .types import LayerError

logger = logging.getLogger(__name__)

DEFAULT_CRS = "EPSG:4326"


def _to_python(value: Any) -> Any:
    """Convert numpy scalars to Python values and NaN to None."""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


@dataclass(frozen=True)
class OsmNode:
    """OSM node reference with its coordinates."""
    node_id: int
    x: float
    y: float


@dataclass(frozen=True)
class OsmWay:
    """OSM way: an ordered list of nodes."""
    way_id: int
    nodes: tuple[OsmNode, ...]


@dataclass
class Record:
    """A stored geometry with its attributes."""
    id: int
    geometry: BaseGeometry
    properties: dict[str, Any] = field(default_factory=dict)
    osm_way: Optional[OsmWay] = None


class GeometryFactory:
    """
    Creates geometries with one precision model and one reference system.

    A grid_size of 0 keeps full floating precision; a positive grid_size snaps
    every created geometry to that grid.
    """

    def __init__(self, grid_size: float = 0.0, crs: str = DEFAULT_CRS):
        if grid_size < 0:
            raise ValueError("Grid size must be non-negative")
        self.grid_size = grid_size
        self.crs = crs

    def create(self, geometry: BaseGeometry) -> BaseGeometry:
        if geometry is None:
            raise LayerError("Geometry must not be None")
        if self.grid_size > 0:
            return shapely.set_precision(geometry, self.grid_size)
        return geometry

    def from_wkt(self, text: str) -> BaseGeometry:
        try:
            return self.create(shapely.from_wkt(text))
        except GEOSException as e:
            raise LayerError(f"Invalid WKT '{text}': {e}") from e

    def point(self, x: float, y: float) -> Point:
        return self.create(Point(x, y))

    def __repr__(self) -> str:
        return f"GeometryFactory(grid_size={self.grid_size}, crs={self.crs})"


class Layer:
    """Named collection of records sharing a geometry factory and index."""

    def __init__(self, name: str, geometry_factory: Optional[GeometryFactory] = None):
        self.name = name
        self.geometry_factory = geometry_factory or GeometryFactory()
        self.index = SpatialIndex()
        self._records: dict[int, Record] = {}
        self._next_id = 1

    @property
    def crs(self) -> str:
        return self.geometry_factory.crs

    def get(self, record_id: int) -> Record:
        try:
            return self._records[record_id]
        except KeyError:
            raise LayerError(f"Layer '{self.name}' has no record {record_id}") from None

    def records(self) -> Iterator[Record]:
        return iter(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def _insert(
        self,
        geometry: BaseGeometry,
        properties: Mapping[str, Any],
        osm_way: Optional[OsmWay] = None,
    ) -> Record:
        record = Record(
            id=self._next_id,
            geometry=self.geometry_factory.create(geometry),
            properties=dict(properties),
            osm_way=osm_way,
        )
        self._next_id += 1
        self._records[record.id] = record
        self.index.add(record)
        return record

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, records={len(self)})"


class EditableLayer(Layer):
    """Layer accepting direct record insertion."""

    def add(
        self,
        geometry: BaseGeometry,
        names: Sequence[str] = (),
        values: Sequence[Any] = (),
    ) -> Record:
        """
        Insert a geometry with named property arrays.

        Args:
            geometry: Geometry to store (passed through the layer's factory)
            names: Property names
            values: Property values, aligned with names

        Returns:
            The stored record
        """
        if len(names) != len(values):
            raise LayerError(
                f"Property names and values differ in length: {len(names)} != {len(values)}"
            )
        return self._insert(geometry, dict(zip(names, values)))

    @classmethod
    def from_geodataframe(
        cls,
        name: str,
        gdf: gpd.GeoDataFrame,
        geometry_factory: Optional[GeometryFactory] = None,
    ) -> "EditableLayer":
        """Load every row of a GeoDataFrame as a record; null geometries are skipped."""
        if geometry_factory is None:
            crs = gdf.crs.to_string() if gdf.crs is not None else DEFAULT_CRS
            geometry_factory = GeometryFactory(crs=crs)
        layer = cls(name, geometry_factory)

        geometry_column = gdf.geometry.name
        columns = [c for c in gdf.columns if c != geometry_column]
        skipped = 0
        for _, row in gdf.iterrows():
            geometry = row[geometry_column]
            if geometry is None:
                skipped += 1
                continue
            layer.add(geometry, columns, [_to_python(row[c]) for c in columns])

        if skipped:
            logger.warning(f"Skipped {skipped} rows without geometry while loading '{name}'")
        logger.info(f"Loaded layer '{name}' with {len(layer):,} records")
        return layer


class OsmLayer(Layer):
    """Layer of OpenStreetMap ways, each stored as a LineString over its nodes."""

    def add_way(
        self,
        way_id: int,
        nodes: Sequence[tuple[int, float, float]],
        tags: Optional[Mapping[str, Any]] = None,
    ) -> Record:
        if len(nodes) < 2:
            raise LayerError(f"Way {way_id} needs at least two nodes, got {len(nodes)}")
        way = OsmWay(way_id, tuple(OsmNode(int(n), float(x), float(y)) for n, x, y in nodes))
        geometry = LineString([(node.x, node.y) for node in way.nodes])
        return self._insert(geometry, tags or {}, osm_way=way)


class SpatialDatabase:
    """Registry of named layers sharing default precision and CRS."""

    def __init__(self, grid_size: float = 0.0, crs: str = DEFAULT_CRS):
        self.grid_size = grid_size
        self.crs = crs
        self._layers: dict[str, Layer] = {}

    def _factory(self) -> GeometryFactory:
        return GeometryFactory(grid_size=self.grid_size, crs=self.crs)

    def get_layer(self, name: str) -> Layer:
        if name not in self._layers:
            raise LayerError(f"Layer not found: {name}")
        return self._layers[name]

    def layer_names(self) -> list[str]:
        return list(self._layers)

    def get_or_create_editable_layer(self, name: str) -> EditableLayer:
        layer = self._layers.get(name)
        if layer is None:
            layer = EditableLayer(name, self._factory())
            self._layers[name] = layer
            logger.debug(f"Created editable layer '{name}'")
        elif not isinstance(layer, EditableLayer):
            raise LayerError(f"Layer '{name}' exists and is not editable")
        return layer

    def create_osm_layer(self, name: str) -> OsmLayer:
        if name in self._layers:
            raise LayerError(f"Layer already exists: {name}")
        layer = OsmLayer(name, self._factory())
        self._layers[name] = layer
        return layer

    def add_layer(self, layer: Layer) -> Layer:
        if layer.name in self._layers:
            raise LayerError(f"Layer already exists: {layer.name}")
        self._layers[layer.name] = layer
        return layer
