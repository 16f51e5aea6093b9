"""Configuration loading utilities for surfels."""

from .schema import (
    SurfaceConfig,
    load_config,
)

__all__ = ["SurfaceConfig", "load_config"]
