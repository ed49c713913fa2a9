"""
Density Islands

Groups geometries into clusters that are transitively connected by pairwise
distance at most `tolerance`. Close pairs come from an STRtree `dwithin`
query; clusters are merged with a union-find so membership never depends on
visiting order and no recursion is involved.
"""

from __future__ import annotations

import logging

import shapely
from shapely.errors import GEOSException
from shapely.strtree import STRtree

from ..types import GeometryOperationError
from .flow import Flow, Stage

logger = logging.getLogger(__name__)


class UnionFind:
    """Disjoint sets over 0..size-1 with path halving and union by size."""

    def __init__(self, size: int):
        self._parent = list(range(size))
        self._size = [1] * size

    def find(self, item: int) -> int:
        parent = self._parent
        while parent[item] != item:
            parent[item] = parent[parent[item]]
            item = parent[item]
        return item

    def union(self, a: int, b: int) -> bool:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        return True

    def groups(self) -> list[list[int]]:
        """Member lists, each ascending, ordered by their smallest member."""
        by_root: dict[int, list[int]] = {}
        for item in range(len(self._parent)):
            by_root.setdefault(self.find(item), []).append(item)
        return list(by_root.values())


def group_by_density_islands(tolerance: float) -> Stage:
    """
    Blocking stage emitting one flow per density island.

    Each output flow's geometry is the union of its members' geometries and it
    carries all of their records.

    Args:
        tolerance: Maximum distance between two geometries of one island

    Returns:
        Aggregating stage
    """
    if tolerance < 0:
        raise ValueError("Density island tolerance must be non-negative")

    def stage(flows):
        buffered = list(flows)
        if not buffered:
            return
        geometries = [flow.geometry for flow in buffered]

        islands = UnionFind(len(buffered))
        left, right = STRtree(geometries).query(geometries, predicate="dwithin", distance=tolerance)
        for a, b in zip(left.tolist(), right.tolist()):
            islands.union(a, b)

        groups = islands.groups()
        logger.debug(f"Grouped {len(buffered)} flows into {len(groups)} density islands")
        for members in groups:
            try:
                geometry = shapely.union_all([geometries[i] for i in members])
            except GEOSException as e:
                raise GeometryOperationError("density_islands", buffered[members[0]].id, str(e)) from e
            yield Flow.merge([buffered[i] for i in members], geometry)

    return stage
