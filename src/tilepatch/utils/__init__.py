"""
Utilities

Tile math, configuration and logging helpers shared by every stage of the
tile transformation pipeline.
"""

from .tile_math import (
    MAX_LATITUDE,
    MAX_ZOOM,
    expand_range,
    tile_column,
    tile_row,
)
from .logging import configure_logging

__all__ = [
    "MAX_LATITUDE",
    "MAX_ZOOM",
    "expand_range",
    "tile_column",
    "tile_row",
    "configure_logging",
]
