"""
Pipeline Enumerations

Core enums for type safety and clear interface definitions across the pipeline.
"""

from enum import Enum


class Comparison(str, Enum):
    """Comparison operators accepted by property filters."""
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"


class SpatialRelation(str, Enum):
    """Binary spatial predicates; values are the shapely method names."""
    INTERSECTS = "intersects"
    WITHIN = "within"
    CONTAINS = "contains"
    COVERS = "covers"
    COVERED_BY = "covered_by"
    DISJOINT = "disjoint"
    TOUCHES = "touches"
    CROSSES = "crosses"
    OVERLAPS = "overlaps"


class ExportFormat(str, Enum):
    """Export format options for data output."""
    GEOJSON = "geojson"     # Standards-compliant JSON format
    GPKG = "gpkg"           # SQLite-based format
