"""
Configuration management for geopipes.

Usage:
    from geopipes.config.settings import Config
    config = Config()
    database = config.create_spatial_database()

Environment Variables:
    GEOPIPES_GRID_SIZE: Precision grid applied to created geometries (0 = none)
    GEOPIPES_CRS: Coordinate reference system of created layers
    GEOPIPES_BUFFER_QUAD_SEGS: Segments per quarter circle for buffers
    GEOPIPES_LOG_LEVEL: Default log level for the CLI
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..layer import DEFAULT_CRS, SpatialDatabase

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class GeometryConfig:
    """Geometry factory and operation settings."""
    grid_size: float = 0.0
    crs: str = DEFAULT_CRS
    buffer_quad_segs: int = 8

    def __post_init__(self):
        """Validate geometry settings."""
        if self.grid_size < 0:
            raise ValueError("Grid size must be non-negative")
        if not self.crs:
            raise ValueError("CRS cannot be empty")
        if self.buffer_quad_segs < 1:
            raise ValueError("Buffer quadrant segments must be at least 1")


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"

    def __post_init__(self):
        self.level = self.level.upper()
        if self.level not in _LOG_LEVELS:
            raise ValueError(f"Log level must be one of: {', '.join(_LOG_LEVELS)}")


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


class Config:
    """
    Centralized configuration for geopipes.

    Environment variables loaded (in order of preference):
    1. Explicit environment file passed to constructor
    2. .env file in project root
    3. System environment variables

    Example:
        config = Config()
        config = Config(env_file=Path("/etc/geopipes.env"))
    """

    def __init__(self, env_file: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            env_file: Explicit path to environment file
        """
        self.project_root = self._find_project_root()
        self._load_environment_variables(env_file)
        self._load_geometry_config()
        self._load_logging_config()

    def _find_project_root(self) -> Path:
        """Find project root directory containing pyproject.toml, .git or a .env file."""
        current = Path(__file__).resolve()

        for parent in current.parents:
            if any((parent / marker).exists() for marker in ['pyproject.toml', '.git']):
                return parent

        if (Path.cwd() / '.env').exists():
            return Path.cwd()

        return Path.cwd()

    def _load_environment_variables(self, env_file: Optional[Path]) -> None:
        """Load environment variables from appropriate source."""
        loaded_files = []

        if env_file:
            if not env_file.exists():
                raise ConfigurationError(f"Specified env file not found: {env_file}")
            load_dotenv(env_file)
            loaded_files.append(str(env_file))
            logger.info(f"Loaded configuration from {env_file}")
        else:
            generic_env_file = self.project_root / ".env"
            if generic_env_file.exists():
                load_dotenv(generic_env_file)
                loaded_files.append(str(generic_env_file))
                logger.debug(f"Loaded generic config: {generic_env_file}")

        if not loaded_files:
            logger.debug("No .env files found, using system environment variables only")

        self._loaded_env_files = loaded_files
        logger.debug(f"Project root: {self.project_root}")

    def _load_geometry_config(self) -> None:
        """Load geometry settings with defaults."""
        try:
            self.geometry = GeometryConfig(
                grid_size=float(os.getenv("GEOPIPES_GRID_SIZE", "0")),
                crs=os.getenv("GEOPIPES_CRS", DEFAULT_CRS),
                buffer_quad_segs=int(os.getenv("GEOPIPES_BUFFER_QUAD_SEGS", "8")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid geometry configuration: {e}") from e

    def _load_logging_config(self) -> None:
        try:
            self.logging = LoggingConfig(level=os.getenv("GEOPIPES_LOG_LEVEL", "INFO"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid logging configuration: {e}") from e

    def create_spatial_database(self) -> SpatialDatabase:
        """
        Create an empty spatial database using the configured geometry settings.

        Returns:
            SpatialDatabase whose layers share one geometry factory
        """
        return SpatialDatabase(grid_size=self.geometry.grid_size, crs=self.geometry.crs)

    def __repr__(self) -> str:
        return (
            f"Config(grid_size={self.geometry.grid_size}, "
            f"crs={self.geometry.crs}, "
            f"log_level={self.logging.level})"
        )
