"""
Vector Tile Codec

Converts stored Mapbox Vector Tile (MVT) blobs into per-layer GeoJSON
feature collections in longitude/latitude, and re-tiles such collections
back into a compressed MVT blob for one specific tile.

This module covers:
- gzip/zlib detection and compression
- tile-local integer geometry <-> EPSG:4326 reprojection through EPSG:3857
- clipping to the tile extent plus buffer, without simplification
- MVT protobuf encoding and decoding via mapbox_vector_tile
"""

import gzip
import zlib
from typing import Any, Dict, List, Mapping

import mapbox_vector_tile
from mapbox_vector_tile.encoder import on_invalid_geometry_make_valid
from pyproj import Transformer
from shapely.affinity import affine_transform
from shapely.geometry import (
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    mapping,
    shape,
)
from shapely.geometry.base import BaseGeometry
from shapely.ops import clip_by_rect, transform
import structlog

from ..exceptions import CodecError
from ..utils.tile_math import DEFAULT_BUFFER, DEFAULT_EXTENT, MAX_LATITUDE
from .tile_spec import TileCoordinate

# Layer name -> GeoJSON FeatureCollection
LayerFeatureCollection = Dict[str, Dict[str, Any]]

COMPRESSIONS = ("gzip", "zlib", "none")
DEFAULT_GZIP_LEVEL = 4

WGS84_EPSG = 4326
WEB_MERCATOR_EPSG = 3857

# Geometry classes grouped by dimension, used to drop collapsed parts after clipping
_DIMENSION_TYPES = {
    0: (Point, MultiPoint),
    1: (LineString, MultiLineString),
    2: (Polygon, MultiPolygon),
}


def decompress(data: bytes) -> bytes:
    """Inflate a gzip or zlib payload; anything else is returned as-is."""
    if data[:2] == b"\x1f\x8b":
        return gzip.decompress(data)
    if data[:1] == b"\x78":
        return zlib.decompress(data)
    return data


class VectorTileCodec:
    """
    Decode and encode vector tiles anchored on their own tile coordinate.

    Extent and buffer are expressed in tile units; a buffer equal to the
    extent keeps geometry up to one full tile beyond every edge. With
    `layer_extents` a layer decoded with its own extent is re-encoded at
    that extent; `extent` applies to layers that carry none.
    """

    def __init__(
        self,
        extent: int = DEFAULT_EXTENT,
        buffer: int = DEFAULT_BUFFER,
        compression: str = "gzip",
        gzip_level: int = DEFAULT_GZIP_LEVEL,
        layer_extents: bool = False
    ):
        if compression not in COMPRESSIONS:
            raise ValueError(f"Unsupported compression: {compression}")

        self.extent = extent
        self.buffer = buffer
        self.compression = compression
        self.gzip_level = gzip_level
        self.layer_extents = layer_extents

        self.logger = structlog.get_logger(component="VectorTileCodec")

        self.wgs84_to_mercator = Transformer.from_crs(
            WGS84_EPSG,
            WEB_MERCATOR_EPSG,
            always_xy=True
        )
        self.mercator_to_wgs84 = Transformer.from_crs(
            WEB_MERCATOR_EPSG,
            WGS84_EPSG,
            always_xy=True
        )

    def decode(self, coordinate: TileCoordinate, data: bytes) -> LayerFeatureCollection:
        """
        Decode a stored tile into GeoJSON feature collections per layer.

        Args:
            coordinate: Tile the blob belongs to, used as reprojection anchor
            data: Blob as stored (optionally gzip/zlib compressed)

        Returns:
            Mapping of layer name to FeatureCollection in longitude/latitude

        Raises:
            CodecError: on decompression, protobuf or geometry failures
        """
        try:
            raw = decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise CodecError(coordinate.tile_id, f"cannot decompress tile: {e}") from e

        try:
            decoded = mapbox_vector_tile.decode(raw, default_options={"y_coord_down": True})
        except Exception as e:
            raise CodecError(coordinate.tile_id, f"cannot parse vector tile: {e}") from e

        collections = {}
        for layer_name, layer in decoded.items():
            extent = layer.get("extent") or self.extent
            features = []
            for feature in layer["features"]:
                try:
                    geometry = self._to_geographic(feature["geometry"], coordinate, extent)
                except Exception as e:
                    raise CodecError(
                        coordinate.tile_id,
                        f"invalid geometry in layer {layer_name!r}: {e}"
                    ) from e
                features.append({
                    "type": "Feature",
                    "id": feature.get("id"),
                    "properties": feature.get("properties", {}),
                    "geometry": geometry,
                })
            collections[layer_name] = {
                "type": "FeatureCollection",
                "extent": extent,
                "features": features,
            }

        self.logger.debug(
            "Decoded tile",
            tile_id=coordinate.tile_id,
            layers={name: len(c["features"]) for name, c in collections.items()}
        )
        return collections

    def encode(self, coordinate: TileCoordinate, layers: Mapping[str, Any]) -> bytes:
        """
        Re-tile geographic feature collections for one tile and compress them.

        Args:
            coordinate: Tile to produce; neighbouring tiles are never produced
            layers: Mapping of layer name to FeatureCollection (or feature list)

        Returns:
            Compressed MVT blob

        Raises:
            CodecError: on geometry or encoding failures
        """
        minx, miny, maxx, maxy = coordinate.mercator_bounds
        pad = (maxx - minx) * self.buffer / self.extent
        clip_box = (minx - pad, miny - pad, maxx + pad, maxy + pad)

        tile_layers = []
        layer_options = {}
        for layer_name, collection in layers.items():
            try:
                features = self._clip_features(collection, clip_box)
            except Exception as e:
                raise CodecError(
                    coordinate.tile_id,
                    f"cannot re-tile layer {layer_name!r}: {e}"
                ) from e
            if features:
                tile_layers.append({"name": layer_name, "features": features})
                layer_extent = self._layer_extent(collection)
                if layer_extent != self.extent:
                    layer_options[layer_name] = {"extents": layer_extent}

        try:
            pbf = mapbox_vector_tile.encode(
                tile_layers,
                per_layer_options=layer_options,
                default_options={
                    "quantize_bounds": (minx, miny, maxx, maxy),
                    "extents": self.extent,
                    "on_invalid_geometry": on_invalid_geometry_make_valid,
                }
            )
        except Exception as e:
            raise CodecError(coordinate.tile_id, f"cannot encode vector tile: {e}") from e

        self.logger.debug(
            "Encoded tile",
            tile_id=coordinate.tile_id,
            layers=[layer["name"] for layer in tile_layers],
            size_bytes=len(pbf)
        )
        return self.compress(pbf)

    def _layer_extent(self, collection: Any) -> int:
        if self.layer_extents and isinstance(collection, Mapping):
            extent = collection.get("extent")
            if isinstance(extent, int) and extent > 0:
                return extent
        return self.extent

    def compress(self, data: bytes) -> bytes:
        if self.compression == "gzip":
            return gzip.compress(data, compresslevel=self.gzip_level)
        if self.compression == "zlib":
            return zlib.compress(data, self.gzip_level)
        return data

    def _to_geographic(
        self,
        geometry: Dict[str, Any],
        coordinate: TileCoordinate,
        extent: int
    ) -> Dict[str, Any]:
        """Convert tile-local (y down) geometry into longitude/latitude."""
        minx, miny, maxx, maxy = coordinate.mercator_bounds
        scale = (maxx - minx) / extent

        geom = shape(geometry)
        if geom.is_empty:
            return mapping(geom)

        # tile pixels -> EPSG:3857 meters
        geom = affine_transform(geom, [scale, 0, 0, -scale, minx, maxy])
        return mapping(transform(self.mercator_to_wgs84.transform, geom))

    def _to_mercator(self, x, y, z=None):
        y = [max(-MAX_LATITUDE, min(MAX_LATITUDE, lat)) for lat in y]
        return self.wgs84_to_mercator.transform(x, y)

    def _clip_features(self, collection: Any, clip_box) -> List[Dict[str, Any]]:
        """Project features to EPSG:3857 and clip them to the buffered tile."""
        if isinstance(collection, Mapping):
            source = collection.get("features") or []
        else:
            source = collection or []

        features = []
        for feature in source:
            geometry = feature.get("geometry")
            if geometry is None:
                continue
            geom = geometry if isinstance(geometry, BaseGeometry) else shape(geometry)
            if geom.is_empty:
                continue

            projected = transform(self._to_mercator, geom)
            clipped = self._homogenize(clip_by_rect(projected, *clip_box), projected)
            if clipped is None or clipped.is_empty:
                continue

            features.append({
                "geometry": clipped,
                "properties": feature.get("properties") or {},
                "id": feature.get("id"),
            })
        return features

    @staticmethod
    def _homogenize(clipped: BaseGeometry, original: BaseGeometry):
        """Keep only the parts of a clip result that match the source dimension."""
        if clipped.geom_type != "GeometryCollection" or original.geom_type == "GeometryCollection":
            return clipped

        single, multi = _DIMENSION_TYPES[_dimension(original)]
        parts = []
        for part in clipped.geoms:
            if isinstance(part, multi):
                parts.extend(part.geoms)
            elif isinstance(part, single):
                parts.append(part)

        if not parts:
            return None
        if len(parts) == 1:
            return parts[0]
        return multi(parts)


def _dimension(geom: BaseGeometry) -> int:
    if isinstance(geom, (Point, MultiPoint)):
        return 0
    if isinstance(geom, (LineString, MultiLineString)):
        return 1
    return 2
