"""
Slippy-map tile math.

Pure functions mapping geographic coordinates to tile indices under the
Web Mercator tiling scheme, plus the integer range helpers used to turn a
pair of bounds into an explicit index sequence.
"""

import math
from typing import Sequence, Tuple

# Highest zoom level accepted anywhere in the pipeline
MAX_ZOOM = 24

# Latitude at which Web Mercator maps to a square world
MAX_LATITUDE = 85.0511287798066

# Half the width of the world in EPSG:3857 meters
MERCATOR_ORIGIN = 20037508.342789244

# Tile grid resolution and overlap used when a dataset does not declare its own
DEFAULT_EXTENT = 4096
DEFAULT_BUFFER = 4096


def tile_column(lon: float, zoom: int) -> int:
    """Return the tile column containing longitude `lon` at `zoom`."""
    return math.floor((lon + 180.0) / 360.0 * 2 ** zoom)


def tile_row(lat: float, zoom: int) -> int:
    """
    Return the tile row (origin at the top) containing latitude `lat`.

    The caller is responsible for clamping `lat` into the Web Mercator
    range first; the poles have no finite row.
    """
    lat_rad = math.radians(lat)
    return math.floor(
        (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi)
        / 2.0 * 2 ** zoom
    )


def expand_range(bounds: Sequence[int]) -> range:
    """
    Expand a pair of integers, given in any order, into the inclusive
    ascending sequence between them.

    >>> list(expand_range((7, 5)))
    [5, 6, 7]
    """
    if not bounds:
        raise ValueError("Cannot expand an empty range")
    low, high = min(bounds), max(bounds)
    return range(low, high + 1)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_index(index: int, zoom: int) -> int:
    """Clamp a column or row index into the grid of `zoom`."""
    return int(clamp(index, 0, 2 ** zoom - 1))


def tile_bounds_mercator(zoom: int, column: int, row: int) -> Tuple[float, float, float, float]:
    """Return the EPSG:3857 bounds (minx, miny, maxx, maxy) of a tile."""
    size = 2 * MERCATOR_ORIGIN / 2 ** zoom
    minx = -MERCATOR_ORIGIN + column * size
    maxy = MERCATOR_ORIGIN - row * size
    return (minx, maxy - size, minx + size, maxy)


def mercator_to_degrees(x: float, y: float) -> Tuple[float, float]:
    """Inverse spherical Mercator: EPSG:3857 meters to (lon, lat)."""
    lon = x / MERCATOR_ORIGIN * 180.0
    lat = math.degrees(2.0 * math.atan(math.exp(y / MERCATOR_ORIGIN * math.pi)) - math.pi / 2.0)
    return lon, lat


def tile_bounds_degrees(zoom: int, column: int, row: int) -> Tuple[float, float, float, float]:
    """Return the bounds (west, south, east, north) of a tile in degrees."""
    minx, miny, maxx, maxy = tile_bounds_mercator(zoom, column, row)
    return mercator_to_degrees(minx, miny) + mercator_to_degrees(maxx, maxy)


def flip_row(zoom: int, row: int) -> int:
    """Convert a row between top-origin (XYZ) and bottom-origin (TMS) numbering."""
    return (2 ** zoom - 1) - row
