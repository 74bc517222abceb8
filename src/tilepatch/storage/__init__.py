"""
Storage Module

Tile store interface consumed by the pipeline and its MBTiles
implementation.
"""

from .base_store import DatasetInfo, TileStore, VECTOR_TILE_FORMATS
from .mbtiles_store import MBTilesStore

__all__ = [
    "DatasetInfo",
    "TileStore",
    "VECTOR_TILE_FORMATS",
    "MBTilesStore"
]
