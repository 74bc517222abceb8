"""
Exception hierarchy for tile transformation runs.

Every error that aborts a run derives from TilePatchError, except the
exceptions raised by a user transform, which are propagated unchanged.
"""

from typing import Optional


class TilePatchError(Exception):
    """Base class for all errors raised by tilepatch."""


class PreconditionError(TilePatchError):
    """Raised before any tile work starts (bad arguments, missing files)."""


class UnsupportedFormatError(PreconditionError):
    """Raised when the dataset does not declare a vector tile format."""

    def __init__(self, tile_format: Optional[str]):
        self.tile_format = tile_format
        super().__init__(
            f"Dataset does not contain vector tiles (format: {tile_format!r})"
        )


class StoreError(TilePatchError):
    """Raised for tile store open/read/write/transaction failures."""


class TileNotFoundError(StoreError):
    """Raised by a store when the requested tile does not exist."""

    def __init__(self, zoom: int, column: int, row: int):
        self.zoom = zoom
        self.column = column
        self.row = row
        super().__init__(f"Tile does not exist: {zoom}/{column}/{row}")


class CodecError(TilePatchError):
    """Raised when a tile blob cannot be decoded or re-encoded."""

    def __init__(self, tile_id: str, message: str):
        self.tile_id = tile_id
        super().__init__(f"Tile {tile_id}: {message}")


class TransformError(TilePatchError):
    """Raised when a transform returns something other than layers or None."""
