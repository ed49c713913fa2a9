"""
GeoPipes Pipeline Components

Lazy, pull-based geometry pipelines over layer searches.

Components:
- core: GeoPipeline, the fluent pipeline with one-flow lookahead
- flow: Flow, the unit passed between stages
- filters, transforms, metrics, aggregates, islands, serialization: stage factories
- export: Exporter for GeoJSON and GeoPackage output
"""

from .core import GeoPipeline
from .export import Exporter
from .flow import Flow, Stage

__all__ = ["GeoPipeline", "Flow", "Stage", "Exporter"]
