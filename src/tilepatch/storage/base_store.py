"""
Base Tile Store

Defines the interface the pipeline consumes from a persistent tile store:
dataset metadata, tile reads and writes, and a single write transaction
bracketing a whole run.
"""

from abc import ABC, abstractmethod
from typing import Dict, Tuple

import structlog

from ..tile_generation.tile_spec import DatasetInfo, VECTOR_TILE_FORMATS


class TileStore(ABC):
    """
    Abstract base class for tile stores.

    Rows passed to `get_tile` and `put_tile` are top-origin (XYZ); a store
    whose on-disk scheme differs converts internally.
    """

    def __init__(self):
        self.logger = structlog.get_logger(store_type=self.__class__.__name__)

    @abstractmethod
    def get_info(self) -> DatasetInfo:
        """Read dataset metadata."""

    @abstractmethod
    def get_tile(self, zoom: int, column: int, row: int) -> Tuple[bytes, Dict[str, str]]:
        """
        Read a tile blob.

        Returns:
            The stored blob and a dictionary of headers describing it

        Raises:
            TileNotFoundError: if the tile does not exist
        """

    @abstractmethod
    def put_tile(self, zoom: int, column: int, row: int, data: bytes) -> None:
        """Overwrite a tile blob."""

    @abstractmethod
    def start_writing(self) -> None:
        """Open the write transaction."""

    @abstractmethod
    def stop_writing(self) -> None:
        """Commit and close the write transaction."""

    def abort_writing(self) -> None:
        """
        Close the write transaction after a failed run.

        Stores without rollback keep whatever was written so far.
        """
        self.stop_writing()

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False
