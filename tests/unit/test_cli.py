"""
Unit Tests for the Command Line Interface

Argument parsing plus end-to-end invocations of `main` against MBTiles
files on disk.
"""

import shutil
import tempfile
import textwrap
import unittest
from pathlib import Path
from unittest.mock import patch

import pytest

from tilepatch.cli import main, parse_bbox, parse_zoom
from tilepatch.exceptions import PreconditionError
from tilepatch.tile_generation.tile_spec import GeoBoundingBox, ZoomRange

from tile_fixtures import create_mbtiles, read_tile, sample_tile, stored_tile


class TestArgumentParsing(unittest.TestCase):
    """Test suite for zoom and bbox expressions."""

    def test_zoom_expressions(self):
        self.assertEqual(parse_zoom(None), ZoomRange.full())
        self.assertEqual(parse_zoom(""), ZoomRange.full())
        self.assertEqual(parse_zoom("5"), ZoomRange(5, 5))
        self.assertEqual(parse_zoom("5-12"), ZoomRange(5, 12))
        self.assertEqual(parse_zoom("12..5"), ZoomRange(5, 12))
        self.assertEqual(parse_zoom("3-40"), ZoomRange(3, 24))

    def test_bbox_expressions(self):
        self.assertEqual(parse_bbox(None), GeoBoundingBox.world())
        self.assertEqual(parse_bbox("-10,-5,10,5"), GeoBoundingBox(-10.0, -5.0, 10.0, 5.0))
        self.assertEqual(parse_bbox("10 5 -10 -5"), GeoBoundingBox(-10.0, -5.0, 10.0, 5.0))
        self.assertEqual(parse_bbox("-200,-95,200,95"), GeoBoundingBox.world())

    def test_invalid_bbox(self):
        with pytest.raises(PreconditionError):
            parse_bbox("1,2,3")
        with pytest.raises(PreconditionError):
            parse_bbox("1,2,3,4,5")
        with pytest.raises(PreconditionError):
            parse_bbox("1,2,3,-")


class TestMain(unittest.TestCase):
    """Test suite for the tilepatch entry point."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.temp_path = Path(self.temp_dir)
        self.tiles = create_mbtiles(
            self.temp_path / "tiles.mbtiles",
            {(1, x, y): sample_tile() for x in range(2) for y in range(2)}
        )

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def script(self, body: str) -> Path:
        path = self.temp_path / "transform.py"
        path.write_text(textwrap.dedent(body))
        return path

    def test_no_change_run_succeeds(self):
        script = self.script("""
            def transform(layers):
                return None
        """)

        exit_code = main(["-z", "1", "-t", str(self.tiles), "-s", str(script)])

        self.assertEqual(exit_code, 0)
        self.assertEqual(stored_tile(self.tiles, 1, 0, 0), sample_tile())

    def test_positional_paths_and_negative_bbox(self):
        script = self.script("""
            def transform(layers):
                layers.pop("water")
                return layers
        """)

        exit_code = main(["-z", "1", "--bbox=-170,10,-10,80", str(self.tiles), str(script)])

        self.assertEqual(exit_code, 0)
        self.assertEqual(set(read_tile(stored_tile(self.tiles, 1, 0, 0))), {"pois"})
        self.assertEqual(stored_tile(self.tiles, 1, 1, 0), sample_tile())

    def test_custom_function_name(self):
        script = self.script("""
            def relabel(layers, coordinate):
                for feature in layers["pois"]["features"]:
                    feature["properties"]["tile"] = coordinate.tile_id
                return layers
        """)

        exit_code = main(["-z", "1", "-f", "relabel", str(self.tiles), str(script)])

        self.assertEqual(exit_code, 0)
        tile = read_tile(stored_tile(self.tiles, 1, 1, 0))
        self.assertEqual(tile["pois"]["features"][0]["properties"]["tile"], "1/1/0")

    def test_transform_failure_exits_with_error(self):
        script = self.script("""
            def transform(layers):
                raise ValueError("bad tile")
        """)

        with patch("sys.stderr") as stderr:
            exit_code = main(["-z", "1", str(self.tiles), str(script)])

        self.assertEqual(exit_code, 1)
        written = "".join(call.args[0] for call in stderr.write.call_args_list)
        self.assertIn("Error: bad tile", written)
        self.assertEqual(stored_tile(self.tiles, 1, 0, 0), sample_tile())

    def test_missing_tiles_fail_unless_skipped(self):
        sparse = create_mbtiles(self.temp_path / "sparse.mbtiles", {(1, 0, 0): sample_tile()})
        script = self.script("""
            def transform(layers):
                return None
        """)

        with patch("sys.stderr") as stderr:
            self.assertEqual(main(["-z", "1", "-t", str(sparse), "-s", str(script)]), 1)
        written = "".join(call.args[0] for call in stderr.write.call_args_list)
        self.assertIn("Error: Tile does not exist: 1/0/1", written)

        self.assertEqual(main(["-z", "1", "--skip-missing", str(sparse), str(script)]), 0)

    def test_bbox_flag_with_negative_value(self):
        script = self.script("""
            def transform(layers):
                layers.pop("water")
                return layers
        """)

        exit_code = main(["-z", "1", "-b", "-170,10,-10,80", "-t", str(self.tiles), "-s", str(script)])

        self.assertEqual(exit_code, 0)
        self.assertEqual(set(read_tile(stored_tile(self.tiles, 1, 0, 0))), {"pois"})
        self.assertEqual(stored_tile(self.tiles, 1, 1, 1), sample_tile())

    def test_usage_errors_exit_with_one(self):
        script = self.script("def transform(layers):\n    return None\n")

        with patch("sys.stderr"):
            self.assertEqual(main(["--no-such-flag", str(self.tiles), str(script)]), 1)
            self.assertEqual(main(["-c", "many", str(self.tiles), str(script)]), 1)
            self.assertEqual(main(["-b"]), 1)

    def test_version_exits_with_zero(self):
        with patch("sys.stdout"):
            self.assertEqual(main(["--version"]), 0)

    def test_dry_run(self):
        script = self.script("""
            def transform(layers):
                raise AssertionError("must not run")
        """)

        with patch("builtins.print") as printed:
            exit_code = main(["-z", "0-2", "--dry-run", str(self.tiles), str(script)])

        self.assertEqual(exit_code, 0)
        self.assertIn("21 tiles", printed.call_args.args[0])

    def test_missing_arguments(self):
        script = self.script("def transform(layers):\n    return None\n")

        self.assertEqual(main([str(script)]), 1)
        self.assertEqual(main([str(self.tiles)]), 1)
        self.assertEqual(main([str(self.temp_path / "absent.mbtiles"), str(script)]), 1)
        self.assertEqual(main(["-c", "0", str(self.tiles), str(script)]), 1)

    def test_raster_dataset_is_rejected(self):
        raster = create_mbtiles(
            self.temp_path / "raster.mbtiles",
            {(0, 0, 0): b"\x89PNG"},
            metadata={"format": "png"}
        )
        script = self.script("def transform(layers):\n    return None\n")

        self.assertEqual(main([str(raster), str(script)]), 1)

    def test_invalid_environment(self):
        script = self.script("def transform(layers):\n    return None\n")

        with patch.dict("os.environ", {"TILEPATCH_CONCURRENCY": "zero"}):
            self.assertEqual(main([str(self.tiles), str(script)]), 1)


if __name__ == '__main__':
    unittest.main()
