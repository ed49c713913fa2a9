"""
Domain Models and Types

This module contains the enumerations and recipe models used throughout the pipeline.

Models:
- Recipe: Named pipeline with a source, stages and an export format
- SourceSpec: Vector file loaded as a layer
- StageSpec: One stage invocation

Enums:
- Comparison: Property filter comparison operators
- SpatialRelation: Binary spatial predicates
- ExportFormat: Export format options (geojson, gpkg)
"""

from .enums import Comparison, ExportFormat, SpatialRelation
from .models import Recipe, SourceSpec, StageSpec

__all__ = [
    "Recipe", "SourceSpec", "StageSpec",
    "Comparison", "SpatialRelation", "ExportFormat"
]
