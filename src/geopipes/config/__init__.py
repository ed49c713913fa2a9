"""
Configuration module for geopipes.
"""

from .settings import (
    Config,
    ConfigurationError,
    GeometryConfig,
    LoggingConfig,
)

__all__ = [
    'Config',
    'ConfigurationError',
    'GeometryConfig',
    'LoggingConfig',
]
