"""
MBTiles Tile Store

SQLite-backed tile store following the MBTiles 1.3 layout. Supports both
the plain `tiles` table and the deduplicated `map`/`images` layout that
exposes `tiles` as a view.
"""

import hashlib
import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from ..exceptions import StoreError, TileNotFoundError
from ..tile_generation.tile_spec import GeoBoundingBox
from ..utils.tile_math import MAX_LATITUDE, flip_row
from .base_store import DatasetInfo, TileStore

CONTENT_TYPES = {
    "pbf": "application/x-protobuf",
    "mvt": "application/vnd.mapbox-vector-tile",
    "png": "image/png",
    "jpg": "image/jpeg",
    "webp": "image/webp",
}


def _content_encoding(data: bytes) -> Optional[str]:
    if data[:2] == b"\x1f\x8b":
        return "gzip"
    if data[:1] == b"\x78":
        return "deflate"
    return None


class MBTilesStore(TileStore):
    """
    Tile store backed by an MBTiles file opened read-write.

    Rows are addressed top-origin; when the dataset scheme is `tms` they
    are flipped before touching the database.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self.logger = self.logger.bind(path=str(self.path))
        self._writing = False

        if not self.path.is_file():
            raise StoreError(f"MBTiles file not found: {self.path}")

        try:
            self.connection = sqlite3.connect(
                f"{self.path.resolve().as_uri()}?mode=rw",
                uri=True,
                isolation_level=None
            )
            self._metadata = self._read_metadata()
            self._deduplicated = self._uses_deduplicated_layout()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open MBTiles file {self.path}: {e}") from e

        self.scheme = self._metadata.get("scheme", "tms").lower()

        self.logger.debug(
            "MBTiles store opened",
            scheme=self.scheme,
            deduplicated=self._deduplicated
        )

    def _read_metadata(self) -> Dict[str, str]:
        rows = self.connection.execute("SELECT name, value FROM metadata").fetchall()
        return {name: value for name, value in rows}

    def _uses_deduplicated_layout(self) -> bool:
        rows = self.connection.execute(
            "SELECT name, type FROM sqlite_master WHERE name IN ('tiles', 'map', 'images')"
        ).fetchall()
        objects = {name: kind for name, kind in rows}
        if "tiles" not in objects:
            raise StoreError(f"{self.path} has no tiles table")
        return objects["tiles"] == "view" and "map" in objects and "images" in objects

    def _db_row(self, zoom: int, row: int) -> int:
        return flip_row(zoom, row) if self.scheme == "tms" else row

    def _zoom_bounds(self) -> Tuple[int, int]:
        minzoom, maxzoom = self.connection.execute(
            "SELECT MIN(zoom_level), MAX(zoom_level) FROM tiles"
        ).fetchone()
        return (minzoom or 0, maxzoom or 0)

    def _metadata_int(self, key: str, document: Dict[str, Any]) -> Optional[int]:
        value = self._metadata.get(key, document.get(key))
        if value is None or value == "":
            return None
        return int(value)

    def get_info(self) -> DatasetInfo:
        """Read dataset metadata, deriving missing zoom bounds from the tiles."""
        try:
            document = json.loads(self._metadata.get("json") or "{}")
            if not isinstance(document, dict):
                document = {}

            minzoom = self._metadata_int("minzoom", document)
            maxzoom = self._metadata_int("maxzoom", document)
            if minzoom is None or maxzoom is None:
                derived = self._zoom_bounds()
                minzoom = derived[0] if minzoom is None else minzoom
                maxzoom = derived[1] if maxzoom is None else maxzoom

            if self._metadata.get("bounds"):
                bounds = GeoBoundingBox.from_sequence(self._metadata["bounds"].split(","))
            else:
                bounds = GeoBoundingBox(-180.0, -MAX_LATITUDE, 180.0, MAX_LATITUDE)

            return DatasetInfo(
                id=self.path.stem,
                name=self._metadata.get("name", self.path.stem),
                format=self._metadata.get("format", ""),
                scheme=self.scheme,
                minzoom=minzoom,
                maxzoom=maxzoom,
                bounds=bounds,
                extent=self._metadata_int("extent", document),
                buffer=self._metadata_int("buffer", document),
            )
        except (sqlite3.Error, ValueError) as e:
            raise StoreError(f"Invalid MBTiles metadata in {self.path}: {e}") from e

    def get_tile(self, zoom: int, column: int, row: int) -> Tuple[bytes, Dict[str, str]]:
        try:
            result = self.connection.execute(
                "SELECT tile_data FROM tiles "
                "WHERE zoom_level = ? AND tile_column = ? AND tile_row = ?",
                (zoom, column, self._db_row(zoom, row))
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot read tile {zoom}/{column}/{row}: {e}") from e

        if result is None or result[0] is None:
            raise TileNotFoundError(zoom, column, row)

        data = bytes(result[0])
        headers = {}
        tile_format = self._metadata.get("format", "").lower()
        if tile_format in CONTENT_TYPES:
            headers["Content-Type"] = CONTENT_TYPES[tile_format]
        encoding = _content_encoding(data)
        if encoding:
            headers["Content-Encoding"] = encoding
        return data, headers

    def put_tile(self, zoom: int, column: int, row: int, data: bytes) -> None:
        db_row = self._db_row(zoom, row)
        try:
            if self._deduplicated:
                tile_id = hashlib.md5(data).hexdigest()
                self.connection.execute(
                    "INSERT OR REPLACE INTO images (tile_id, tile_data) VALUES (?, ?)",
                    (tile_id, sqlite3.Binary(data))
                )
                self.connection.execute(
                    "INSERT OR REPLACE INTO map (zoom_level, tile_column, tile_row, tile_id) "
                    "VALUES (?, ?, ?, ?)",
                    (zoom, column, db_row, tile_id)
                )
            else:
                self.connection.execute(
                    "INSERT OR REPLACE INTO tiles (zoom_level, tile_column, tile_row, tile_data) "
                    "VALUES (?, ?, ?, ?)",
                    (zoom, column, db_row, sqlite3.Binary(data))
                )
        except sqlite3.Error as e:
            raise StoreError(f"Cannot write tile {zoom}/{column}/{row}: {e}") from e

    def start_writing(self) -> None:
        if self._writing:
            raise StoreError("Write transaction already open")
        try:
            self.connection.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StoreError(f"Cannot start writing to {self.path}: {e}") from e
        self._writing = True

    def stop_writing(self) -> None:
        if not self._writing:
            return
        try:
            self.connection.execute("COMMIT")
        except sqlite3.Error as e:
            raise StoreError(f"Cannot commit {self.path}: {e}") from e
        finally:
            self._writing = False

    def abort_writing(self) -> None:
        """Roll back everything written since `start_writing`."""
        if not self._writing:
            return
        try:
            self.connection.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise StoreError(f"Cannot roll back {self.path}: {e}") from e
        finally:
            self._writing = False

    def close(self) -> None:
        if self._writing:
            self.abort_writing()
        self.connection.close()
