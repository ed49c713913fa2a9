"""
Recipe loading and pipeline assembly.

A recipe is a YAML file naming a vector source and a chain of stages:

    name: road-buffers
    source:
      path: roads.geojson
    search: [10.0, 55.0, 14.0, 57.0]
    stages:
      - stage: cql_filter
        args: ["highway = 'primary'"]
      - stage: to_buffer
        args: [0.001]
      - stage: calculate_area

Geometry arguments (for equality and relation filters, `intersect`,
`difference` and `calculate_distance`) are written as WKT.
"""

import logging
from pathlib import Path
from typing import Any

import geopandas as gpd
from pydantic import ValidationError

from .config.settings import ConfigurationError
from .domain.models import Recipe, StageSpec
from .layer import EditableLayer, GeometryFactory, Layer, SpatialDatabase
from .pipeline.core import GeoPipeline
from .pipeline.transforms import DEFAULT_QUAD_SEGS
from .types import AffineTransformation, UnknownStageError
from .utils import load_yaml_file

logger = logging.getLogger(__name__)

# Stages taking only scalar arguments
PLAIN_STAGES = frozenset({
    "property_filter", "property_null_filter", "property_not_null_filter",
    "record_attribute_filter", "osm_attribute_filter",
    "window_intersection_filter", "cql_filter",
    "to_boundary", "to_buffer", "to_centroid", "to_convex_hull", "to_envelope",
    "to_interior_point", "densify", "extract_points", "extract_osm_points",
    "group_by_density_islands",
    "calculate_area", "calculate_length", "count_points",
    "sort", "get_min", "get_max", "union_all", "intersect_all",
    "create_well_known_text", "create_json", "copy_record_properties",
})

# Stages whose first argument is a geometry given as WKT
GEOMETRY_STAGES = frozenset({
    "equal_exact_filter", "equal_norm_filter", "equal_topo_filter",
    "intersection_filter", "within_filter", "contain_filter", "cover_filter",
    "covered_by_filter", "disjoint_filter", "touch_filter", "cross_filter",
    "overlap_filter", "intersect", "difference", "calculate_distance",
})

AFFINE_STAGES = {
    "translate": AffineTransformation.translation,
    "scale": AffineTransformation.scaling,
    "rotate": AffineTransformation.rotation,
}


def available_stages() -> list[str]:
    """Every stage name accepted in recipes, sorted."""
    return sorted(PLAIN_STAGES | GEOMETRY_STAGES | set(AFFINE_STAGES))


def load_recipe(path: Path) -> Recipe:
    """
    Load and validate a YAML recipe.

    A relative source path is resolved against the recipe's directory.

    Args:
        path: Recipe file

    Returns:
        Validated Recipe

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid
    """
    try:
        data = load_yaml_file(path)
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(str(e)) from e

    source = data.get("source")
    if isinstance(source, dict) and "path" in source:
        source_path = Path(source["path"])
        if not source_path.is_absolute():
            data["source"] = {**source, "path": path.parent / source_path}

    try:
        recipe = Recipe(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid recipe {path}: {e}") from e

    unknown = [spec.stage for spec in recipe.stages if spec.stage not in available_stages()]
    if unknown:
        raise UnknownStageError(f"Unknown stages in {path}: {', '.join(unknown)}")

    logger.debug(f"Loaded recipe '{recipe.name}' with {len(recipe.stages)} stages")
    return recipe


def load_source_layer(recipe: Recipe, database: SpatialDatabase) -> Layer:
    """Read the recipe's source file into an editable layer of `database`."""
    source = recipe.source
    name = source.name or source.path.stem
    if not source.path.exists():
        raise ConfigurationError(f"Source file not found: {source.path}")

    read_kwargs = {"layer": source.layer} if source.layer else {}
    gdf = gpd.read_file(source.path, **read_kwargs)

    crs = gdf.crs.to_string() if gdf.crs is not None else database.crs
    factory = GeometryFactory(grid_size=database.grid_size, crs=crs)
    return database.add_layer(EditableLayer.from_geodataframe(name, gdf, factory))


def apply_stage(
    pipeline: GeoPipeline,
    spec: StageSpec,
    geometry_factory: GeometryFactory,
    buffer_quad_segs: int = DEFAULT_QUAD_SEGS,
) -> GeoPipeline:
    """
    Chain one recipe stage onto `pipeline`.

    Args:
        pipeline: Pipeline to extend
        spec: Stage name and arguments
        geometry_factory: Factory used to parse WKT geometry arguments
        buffer_quad_segs: Default quadrant segments for `to_buffer`

    Returns:
        The extended pipeline

    Raises:
        UnknownStageError: If the stage name is not recognised
        ConfigurationError: If the arguments do not fit the stage
    """
    name = spec.stage
    args: list[Any] = list(spec.args)
    kwargs = dict(spec.kwargs)

    if name in AFFINE_STAGES:
        try:
            transformation = AFFINE_STAGES[name](*args, **kwargs)
        except TypeError as e:
            raise ConfigurationError(f"Invalid arguments for stage '{name}': {e}") from e
        return pipeline.apply_affine_transform(transformation)

    if name in GEOMETRY_STAGES:
        if not args:
            raise ConfigurationError(f"Stage '{name}' needs a WKT geometry argument")
        args[0] = geometry_factory.from_wkt(args[0])
    elif name not in PLAIN_STAGES:
        raise UnknownStageError(f"Unknown stage: {name}")

    if name == "to_buffer" and len(args) < 2:
        kwargs.setdefault("quad_segs", buffer_quad_segs)

    try:
        return getattr(pipeline, name)(*args, **kwargs)
    except TypeError as e:
        raise ConfigurationError(f"Invalid arguments for stage '{name}': {e}") from e


def build_pipeline(
    recipe: Recipe,
    layer: Layer,
    buffer_quad_segs: int = DEFAULT_QUAD_SEGS,
) -> GeoPipeline:
    """
    Assemble the recipe's pipeline over `layer`.

    Nothing is evaluated until the returned pipeline is consumed.
    """
    if recipe.search is not None:
        pipeline = GeoPipeline.start_intersect_window_search(layer, *recipe.search)
    else:
        pipeline = GeoPipeline.start(layer)

    for spec in recipe.stages:
        pipeline = apply_stage(pipeline, spec, layer.geometry_factory, buffer_quad_segs)
        logger.debug(f"Added stage '{spec.stage}'")
    return pipeline
