"""
Tile Range Resolver

Turns a requested zoom range and geographic bounding box into the exact
set of tile coordinates to visit, clamped to what the dataset declares.
The tile count is known before any tile is read, which is what progress
reporting and dry runs rely on.
"""

from dataclasses import dataclass
from typing import Iterator, List

import structlog

from ..exceptions import UnsupportedFormatError
from ..utils.tile_math import (
    MAX_LATITUDE,
    MAX_ZOOM,
    clamp,
    clamp_index,
    expand_range,
    tile_column,
    tile_row,
)
from .tile_spec import DatasetInfo, GeoBoundingBox, TileCoordinate, ZoomRange


@dataclass(frozen=True)
class ZoomLevelRange:
    """Columns and rows to visit at one zoom level."""
    zoom: int
    columns: range
    rows: range

    @property
    def tile_count(self) -> int:
        return len(self.columns) * len(self.rows)

    def __iter__(self) -> Iterator[TileCoordinate]:
        for column in self.columns:
            for row in self.rows:
                yield TileCoordinate(self.zoom, column, row)


@dataclass(frozen=True)
class ResolvedRange:
    """Clamped zoom range and bbox plus the per-zoom index ranges they cover."""
    zoom: ZoomRange
    bbox: GeoBoundingBox
    levels: List[ZoomLevelRange]

    @property
    def tile_count(self) -> int:
        return sum(level.tile_count for level in self.levels)

    def __iter__(self) -> Iterator[TileCoordinate]:
        for level in self.levels:
            yield from level

    def __len__(self) -> int:
        return self.tile_count


class RangeResolver:
    """Resolves requested zoom/bbox values against dataset metadata."""

    def __init__(self):
        self.logger = structlog.get_logger(component="RangeResolver")

    def resolve(
        self,
        dataset: DatasetInfo,
        requested_zoom: ZoomRange,
        requested_bbox: GeoBoundingBox
    ) -> ResolvedRange:
        """
        Clamp the request to the dataset and expand it into tile index ranges.

        Args:
            dataset: Dataset metadata from the tile store
            requested_zoom: Zoom range asked for by the caller
            requested_bbox: Bounding box asked for by the caller

        Returns:
            ResolvedRange with one ZoomLevelRange per zoom level

        Raises:
            UnsupportedFormatError: if the dataset is not a vector tile dataset
        """
        if not dataset.is_vector:
            raise UnsupportedFormatError(dataset.format)

        zoom = self.clamp_zoom(dataset, requested_zoom)
        bbox = self.clamp_bbox(dataset, requested_bbox)

        # Rows are undefined at the poles
        min_lat = clamp(bbox.min_lat, -MAX_LATITUDE, MAX_LATITUDE)
        max_lat = clamp(bbox.max_lat, -MAX_LATITUDE, MAX_LATITUDE)

        levels = []
        for z in expand_range(tuple(zoom)):
            columns = expand_range((
                clamp_index(tile_column(bbox.min_lon, z), z),
                clamp_index(tile_column(bbox.max_lon, z), z)
            ))
            rows = expand_range((
                clamp_index(tile_row(min_lat, z), z),
                clamp_index(tile_row(max_lat, z), z)
            ))
            levels.append(ZoomLevelRange(z, columns, rows))

        resolved = ResolvedRange(zoom=zoom, bbox=bbox, levels=levels)

        self.logger.debug(
            "Resolved tile range",
            dataset=dataset.id,
            zoom=list(zoom),
            bbox=list(bbox),
            tile_count=resolved.tile_count
        )
        return resolved

    def clamp_zoom(self, dataset: DatasetInfo, requested: ZoomRange) -> ZoomRange:
        minzoom = int(clamp(dataset.minzoom, 0, MAX_ZOOM))
        maxzoom = int(clamp(dataset.maxzoom, minzoom, MAX_ZOOM))
        zoom = requested.clamp(minzoom, maxzoom)
        if zoom != requested:
            self.logger.info(
                "Adjusting zoom",
                requested=list(requested),
                adjusted=list(zoom)
            )
        return zoom

    def clamp_bbox(self, dataset: DatasetInfo, requested: GeoBoundingBox) -> GeoBoundingBox:
        bbox = requested.clamp(dataset.bounds)
        if bbox != requested:
            self.logger.info(
                "Adjusting bbox",
                requested=list(requested),
                adjusted=list(bbox)
            )
        return bbox
