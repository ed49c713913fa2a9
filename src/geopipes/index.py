"""
Spatial Index and Search Filters

In-memory spatial index over layer records, backed by a shapely STRtree that
is rebuilt lazily after inserts. Searches take a SearchFilter: the filter's
optional window prunes candidates through the tree, then `accepts` decides
on the full record.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Optional

from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from .types import Envelope

if TYPE_CHECKING:
    from .layer import Record

logger = logging.getLogger(__name__)


class SearchFilter:
    """Base search predicate: no window, accepts everything."""

    window: Optional[Envelope] = None

    def accepts(self, record: Record) -> bool:
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(window={self.window})"


class SearchAll(SearchFilter):
    """Match every record."""
    pass


class SearchIntersectWindow(SearchFilter):
    """Records whose envelope intersects the window."""

    def __init__(self, envelope: Envelope):
        self.window = envelope

    def accepts(self, record: Record) -> bool:
        if record.geometry.is_empty:
            return False
        return self.window.intersects(Envelope.from_geometry(record.geometry))


class _GeometrySearch(SearchFilter):
    relation = "intersects"

    def __init__(self, geometry: BaseGeometry):
        self.geometry = geometry
        self.window = Envelope.from_geometry(geometry)

    def accepts(self, record: Record) -> bool:
        return getattr(record.geometry, self.relation)(self.geometry)


class SearchIntersect(_GeometrySearch):
    relation = "intersects"


class SearchWithin(_GeometrySearch):
    relation = "within"


class SearchContain(_GeometrySearch):
    relation = "contains"


class SearchEqualExact(SearchFilter):
    """Records structurally equal to a geometry, coordinate-wise within tolerance."""

    def __init__(self, geometry: BaseGeometry, tolerance: float = 0.0):
        if tolerance < 0:
            raise ValueError("Tolerance must be non-negative")
        self.geometry = geometry
        self.tolerance = tolerance
        self.window = Envelope.from_geometry(geometry).expand_by(tolerance)

    def accepts(self, record: Record) -> bool:
        return record.geometry.equals_exact(self.geometry, self.tolerance)


class SearchWithinDistance(SearchFilter):
    """Records within max_distance of a geometry."""

    def __init__(self, geometry: BaseGeometry, max_distance: float):
        if max_distance < 0:
            raise ValueError("Maximum distance must be non-negative")
        self.geometry = geometry
        self.max_distance = max_distance
        self.window = Envelope.from_geometry(geometry).expand_by(max_distance)

    def accepts(self, record: Record) -> bool:
        return record.geometry.distance(self.geometry) <= self.max_distance


class SearchAttributeEquals(SearchFilter):
    """Records whose attribute equals a value (same type, same value)."""

    def __init__(self, name: str, value: Any):
        self.name = name
        self.value = value

    def accepts(self, record: Record) -> bool:
        if self.name not in record.properties:
            return False
        candidate = record.properties[self.name]
        return type(candidate) is type(self.value) and candidate == self.value


class SpatialIndex:
    """
    STRtree-backed index over a layer's records.

    The tree is immutable, so inserts only invalidate it; the next windowed
    search rebuilds it from the current records.
    """

    def __init__(self):
        self._records: list[Record] = []
        self._tree: Optional[STRtree] = None

    def add(self, record: Record) -> None:
        self._records.append(record)
        self._tree = None

    def __len__(self) -> int:
        return len(self._records)

    def _ensure_tree(self) -> STRtree:
        if self._tree is None:
            self._tree = STRtree([record.geometry for record in self._records])
            logger.debug(f"Built STRtree over {len(self._records)} records")
        return self._tree

    def search(self, search_filter: SearchFilter) -> Iterator[int]:
        """
        Lazily yield ids of matching records in insertion order.

        Args:
            search_filter: Predicate deciding which records match

        Yields:
            Record ids
        """
        if search_filter.window is None:
            positions = range(len(self._records))
        else:
            hits = self._ensure_tree().query(search_filter.window.to_polygon())
            positions = sorted(int(i) for i in hits)

        for position in positions:
            record = self._records[position]
            if search_filter.accepts(record):
                yield record.id
