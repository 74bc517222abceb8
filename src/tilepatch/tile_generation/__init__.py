"""
Tile Generation Module

Tile coordinates, tile range resolution and the vector tile codec used
to rewrite tiles in place.

This module covers:
- Slippy-map tile ranges clamped to dataset metadata
- Mapbox Vector Tile (MVT) decoding into GeoJSON layers
- Re-tiling of GeoJSON layers for a single tile
"""

from .tile_spec import (
    DatasetInfo,
    GeoBoundingBox,
    TileCoordinate,
    ZoomRange,
)
from .range_resolver import RangeResolver, ResolvedRange, ZoomLevelRange
from .vector_tile_codec import LayerFeatureCollection, VectorTileCodec

__all__ = [
    "DatasetInfo",
    "GeoBoundingBox",
    "TileCoordinate",
    "ZoomRange",
    "RangeResolver",
    "ResolvedRange",
    "ZoomLevelRange",
    "LayerFeatureCollection",
    "VectorTileCodec"
]
