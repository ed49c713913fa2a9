import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from .config.settings import Config, ConfigurationError
from .domain.enums import ExportFormat
from .pipeline.export import Exporter
from .recipes import available_stages, build_pipeline, load_recipe, load_source_layer
from .types import GeoPipesError
from .utils import setup_logging, timer

app = typer.Typer(help="GeoPipes: lazy geometry pipelines over vector layers")

logger = logging.getLogger(__name__)


@timer
def execute_recipe(recipe_path: Path, config: Config, output_path: Optional[Path], fmt: Optional[ExportFormat]) -> int:
    """
    Load, run and optionally export a recipe.

    Returns:
        Number of flows produced by the pipeline
    """
    recipe = load_recipe(recipe_path)
    logger.info(f"Running recipe '{recipe.name}' ({len(recipe.stages)} stages)")

    database = config.create_spatial_database()
    layer = load_source_layer(recipe, database)
    pipeline = build_pipeline(recipe, layer, config.geometry.buffer_quad_segs)

    if output_path is None:
        return pipeline.count()

    result = pipeline.to_feature_collection()
    exporter = Exporter(output_path, fmt or (None if output_path.suffix else recipe.output_format))
    written = exporter.write(result, recipe.name)
    logger.info(f"Wrote {len(result):,} flows to {written}")
    return len(result)


@app.command("run")
def run(
    recipe: Annotated[Path, typer.Argument(help="Path to YAML recipe file")],
    output_path: Annotated[Optional[Path], typer.Argument(help="Output file path (optional - only counts flows if omitted)")] = None,
    format: Annotated[Optional[ExportFormat], typer.Option("--format", "-f", help="Export format: geojson, gpkg")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
    log_file: Annotated[Optional[Path], typer.Option("--log-file", help="Also write log output to this file")] = None,
    env_file: Annotated[Optional[Path], typer.Option("--env-file", help="Explicit .env file to load")] = None,
):
    """
    Run a pipeline recipe.

    Loads the recipe's source into a layer, chains its stages and either
    prints the number of resulting flows or exports them.

    Examples:
        geopipes run recipes/buffers.yml
        geopipes run recipes/buffers.yml out/buffers.gpkg
        geopipes run recipes/buffers.yml out/buffers --format geojson
    """
    try:
        config = Config(env_file=env_file)
        setup_logging(verbose, log_file, config.logging.level)
        count = execute_recipe(recipe, config, output_path, format)
    except (GeoPipesError, ConfigurationError) as e:
        logger.error(f"Pipeline failed: {e}")
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"Flows: {count}")


@app.command("list-stages")
def list_stages():
    """
    List every stage name accepted in recipes.

    Examples:
        geopipes list-stages
    """
    stages = available_stages()
    typer.echo("Available Stages")
    typer.echo("=" * 50)
    for name in stages:
        typer.echo(f"* {name}")
    typer.echo(f"\nFound {len(stages)} stages")


@app.command("version")
def version():
    """Display version information."""
    from . import __version__
    typer.echo(f"geopipes version: {__version__}")


if __name__ == "__main__":
    app()
