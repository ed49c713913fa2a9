"""
Pipeline Domain Models

Pydantic models describing YAML pipeline recipes.
These models validate recipe files before any layer is loaded.
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from .enums import ExportFormat


class SourceSpec(BaseModel):
    """Vector file loaded into an editable layer."""
    path: Path = Field(..., description="Path to a vector file readable by geopandas")
    layer: Optional[str] = Field(None, description="Layer name inside multi-layer sources")
    name: Optional[str] = Field(None, description="Layer name in the spatial database")

    class Config:
        """Pydantic configuration."""
        frozen = True


class StageSpec(BaseModel):
    """One chained pipeline stage."""
    stage: str = Field(..., description="Stage name, e.g. 'to_buffer' or 'sort'")
    args: list[Any] = Field(default_factory=list, description="Positional arguments")
    kwargs: dict[str, Any] = Field(default_factory=dict, description="Keyword arguments")

    class Config:
        """Pydantic configuration."""
        frozen = True


class Recipe(BaseModel):
    """A named pipeline: source, stages and optional export."""
    name: str = Field(..., description="Recipe identifier")
    description: Optional[str] = Field(None, description="Human-readable description")
    source: SourceSpec
    search: Optional[tuple[float, float, float, float]] = Field(
        None, description="Optional window search (minx, miny, maxx, maxy)"
    )
    stages: list[StageSpec] = Field(default_factory=list)
    output_format: ExportFormat = Field(default=ExportFormat.GEOJSON)
