"""
tilepatch

Batch-edit the vector tiles of an MBTiles dataset in place: every tile in
a zoom range and bounding box is decoded into GeoJSON layers, handed to a
user transform, and re-encoded and written back when the transform
changes it.
"""

__version__ = "1.0.0"

from . import monitoring
from . import processing
from . import storage
from . import tile_generation
from . import utils

__all__ = [
    "monitoring",
    "processing",
    "storage",
    "tile_generation",
    "utils"
]
