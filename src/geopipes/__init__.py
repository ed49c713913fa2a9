"""
GeoPipes - lazy, pull-based geometry pipelines.

Usage:
    from geopipes import GeoPipeline, SpatialDatabase
    database = SpatialDatabase()
    layer = database.get_or_create_editable_layer("boxes")
    GeoPipeline.start(layer).calculate_area().sort("Area").to_list()
"""

from .layer import EditableLayer, Layer, OsmLayer, SpatialDatabase
from .pipeline.core import GeoPipeline
from .pipeline.flow import Flow
from .types import (
    AffineTransformation,
    CQLSyntaxError,
    Envelope,
    GeoPipesError,
    GeometryOperationError,
    LayerError,
    PipelineExhausted,
    UnknownStageError,
)

__version__ = "0.1.0"

__all__ = [
    "GeoPipeline", "Flow",
    "Layer", "EditableLayer", "OsmLayer", "SpatialDatabase",
    "AffineTransformation", "Envelope",
    "GeoPipesError", "CQLSyntaxError", "GeometryOperationError",
    "LayerError", "PipelineExhausted", "UnknownStageError",
]
