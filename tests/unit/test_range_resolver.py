"""
Unit Tests for the Tile Range Resolver

Requested zoom ranges and bounding boxes are clamped to the dataset and
expanded into per-zoom column/row ranges.
"""

import unittest

import pytest

from tilepatch.cli import parse_zoom
from tilepatch.exceptions import UnsupportedFormatError
from tilepatch.tile_generation.range_resolver import RangeResolver
from tilepatch.tile_generation.tile_spec import (
    DatasetInfo,
    GeoBoundingBox,
    TileCoordinate,
    ZoomRange,
)


def dataset(minzoom=0, maxzoom=14, bounds=(-180.0, -85.0511, 180.0, 85.0511), tile_format="pbf"):
    return DatasetInfo(
        id="test",
        name="test",
        format=tile_format,
        scheme="tms",
        minzoom=minzoom,
        maxzoom=maxzoom,
        bounds=GeoBoundingBox(*bounds),
    )


class TestRangeResolver(unittest.TestCase):
    """Test suite for RangeResolver."""

    def setUp(self):
        self.resolver = RangeResolver()

    def test_zoom_above_dataset_is_clamped(self):
        resolved = self.resolver.resolve(dataset(0, 14), ZoomRange(20, 22), GeoBoundingBox.world())

        self.assertEqual(resolved.zoom, ZoomRange(14, 14))
        self.assertEqual([level.zoom for level in resolved.levels], [14])

    def test_zoom_is_clamped_into_dataset_range(self):
        resolved = self.resolver.resolve(dataset(3, 8), ZoomRange.full(), GeoBoundingBox.world())

        self.assertEqual(resolved.zoom, ZoomRange(3, 8))
        self.assertEqual([level.zoom for level in resolved.levels], [3, 4, 5, 6, 7, 8])

    def test_bbox_is_clamped_to_dataset_bounds(self):
        info = dataset(bounds=(-10.0, -10.0, 10.0, 10.0))

        resolved = self.resolver.resolve(info, ZoomRange(0, 2), GeoBoundingBox.world())

        self.assertEqual(resolved.bbox, GeoBoundingBox(-10.0, -10.0, 10.0, 10.0))

    def test_single_zoom_expression(self):
        resolved = self.resolver.resolve(dataset(), parse_zoom("5"), GeoBoundingBox.world())

        self.assertEqual(resolved.zoom, ZoomRange(5, 5))
        self.assertEqual({c.zoom for c in resolved}, {5})
        self.assertEqual(resolved.tile_count, 32 * 32)

    def test_resolution_is_idempotent(self):
        info = dataset(2, 9, bounds=(-20.0, 30.0, 40.0, 60.0))
        first = self.resolver.resolve(info, ZoomRange(0, 12), GeoBoundingBox(-50.0, 0.0, 10.0, 80.0))
        second = self.resolver.resolve(info, first.zoom, first.bbox)

        self.assertEqual(second.zoom, first.zoom)
        self.assertEqual(second.bbox, first.bbox)
        self.assertEqual(second.levels, first.levels)

    def test_tile_count_matches_enumeration(self):
        info = dataset(bounds=(-10.0, -10.0, 10.0, 10.0))

        resolved = self.resolver.resolve(info, ZoomRange(0, 2), GeoBoundingBox.world())
        coordinates = list(resolved)

        # z0: 1 tile, z1: 2x2 around the origin, z2: 2x2 around the origin
        self.assertEqual(resolved.tile_count, 9)
        self.assertEqual(len(coordinates), resolved.tile_count)
        self.assertEqual(len(set(coordinates)), len(coordinates))
        self.assertIn(TileCoordinate(2, 1, 1), coordinates)
        self.assertIn(TileCoordinate(2, 2, 2), coordinates)

    def test_columns_then_rows_ascending(self):
        info = dataset(bounds=(-10.0, -10.0, 10.0, 10.0))

        resolved = self.resolver.resolve(info, ZoomRange(2, 2), GeoBoundingBox.world())

        self.assertEqual(
            [c.tile_id for c in resolved],
            ["2/1/1", "2/1/2", "2/2/1", "2/2/2"]
        )

    def test_poles_and_antimeridian_stay_in_grid(self):
        info = dataset(bounds=(-180.0, -90.0, 180.0, 90.0))

        resolved = self.resolver.resolve(info, ZoomRange(0, 3), GeoBoundingBox.world())

        for level in resolved.levels:
            size = 2 ** level.zoom
            self.assertEqual(level.columns, range(0, size))
            self.assertEqual(level.rows, range(0, size))

    def test_raster_dataset_is_rejected(self):
        with pytest.raises(UnsupportedFormatError):
            self.resolver.resolve(dataset(tile_format="png"), ZoomRange.full(), GeoBoundingBox.world())

    def test_missing_format_is_rejected(self):
        with pytest.raises(UnsupportedFormatError):
            self.resolver.resolve(dataset(tile_format=""), ZoomRange.full(), GeoBoundingBox.world())


class TestValueTypes(unittest.TestCase):
    """Test suite for the zoom and bbox value types."""

    def test_zoom_range_validation(self):
        with pytest.raises(ValueError):
            ZoomRange(5, 3)
        with pytest.raises(ValueError):
            ZoomRange(0, 25)

    def test_bbox_from_sequence_orders_axes(self):
        bbox = GeoBoundingBox.from_sequence([10, 20, -10, -20])
        self.assertEqual(list(bbox), [-10.0, -20.0, 10.0, 20.0])

    def test_bbox_clamp(self):
        bbox = GeoBoundingBox.world().clamp(GeoBoundingBox(-10.0, -5.0, 10.0, 5.0))
        self.assertEqual(bbox, GeoBoundingBox(-10.0, -5.0, 10.0, 5.0))

    def test_tile_id(self):
        self.assertEqual(TileCoordinate(5, 3, 2).tile_id, "5/3/2")


if __name__ == '__main__':
    unittest.main()
