"""
Exporter - Pipeline Result Export

Writes the feature collection produced by a pipeline to GeoJSON or
GeoPackage, with format detection from the file extension.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import geopandas as gpd

from ..domain.enums import ExportFormat
from ..utils import ensure_directory

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    ExportFormat.GEOJSON: "geojson",
    ExportFormat.GPKG: "gpkg",
}


def infer_format(path: Path) -> ExportFormat:
    """Export format implied by a file suffix; GeoJSON when unknown."""
    suffix = path.suffix.lower()
    if suffix == '.gpkg':
        return ExportFormat.GPKG
    return ExportFormat.GEOJSON


class Exporter:
    """
    Multi-format data exporter.

    Supports GeoJSON and GeoPackage export with automatic format detection
    from file extensions.
    """

    def __init__(self, out_path: Optional[Path] = None, fmt: Optional[ExportFormat] = None):
        """
        Initialize exporter with output path and format.

        Args:
            out_path: Output file path (format inferred from extension if not specified)
            fmt: Explicit format override
        """
        self.out_path = out_path
        self.fmt = ExportFormat(fmt) if fmt else None

        if out_path and not self.fmt:
            self.fmt = infer_format(out_path)
        if not self.fmt:
            self.fmt = ExportFormat.GEOJSON

    def write(self, data: gpd.GeoDataFrame, base_name: str, out_dir: Optional[Path] = None) -> Path:
        """
        Write a GeoDataFrame in the configured format.

        Args:
            data: Features to write
            base_name: Base filename (without extension), also the GPKG layer name
            out_dir: Output directory used when no explicit path was given

        Returns:
            Path to the created file
        """
        if self.out_path:
            output_path = self.out_path
        else:
            output_path = (out_dir or Path.cwd()) / f"{base_name}.{_EXTENSIONS[self.fmt]}"

        ensure_directory(output_path.parent)

        if self.fmt == ExportFormat.GEOJSON:
            self._export_to_geojson(data, output_path)
        elif self.fmt == ExportFormat.GPKG:
            self._export_to_gpkg(data, output_path, base_name)
        else:
            raise ValueError(f"Unsupported export format: {self.fmt}")

        return output_path

    def _export_to_geojson(self, data: gpd.GeoDataFrame, output_path: Path) -> None:
        data.to_file(output_path, driver='GeoJSON')

        if not self._validate_geojson_file(output_path):
            raise ValueError(f"Generated GeoJSON file is invalid: {output_path}")

        logger.info(f"GeoJSON export completed: {len(data):,} features written to {output_path}")

    def _export_to_gpkg(self, data: gpd.GeoDataFrame, output_path: Path, layer_name: str) -> None:
        logger.debug(f"Exporting layer '{layer_name}' with {len(data)} features")
        data.to_file(output_path, driver='GPKG', layer=layer_name)
        logger.info(f"GeoPackage export completed: {len(data):,} features written to {output_path}")

    def _validate_geojson_file(self, filepath: Path) -> bool:
        """Validate that exported GeoJSON file is properly formatted."""
        try:
            with open(filepath, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"GeoJSON validation failed: {e}")
            return False

        if not isinstance(data, dict):
            logger.error("Invalid GeoJSON: root must be an object")
            return False

        if data.get("type") != "FeatureCollection":
            logger.error("Invalid GeoJSON: type must be 'FeatureCollection'")
            return False

        if not isinstance(data.get("features"), list):
            logger.error("Invalid GeoJSON: features must be an array")
            return False

        return True
