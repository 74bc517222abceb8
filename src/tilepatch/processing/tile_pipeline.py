"""
Tile Transform Pipeline

Orchestrates one run over a tile store: read dataset metadata, resolve
the tile range, open the write transaction, then push every tile through
decode -> transform -> (encode -> write back) on a bounded worker pool.

The run is all-or-nothing from the caller's point of view: the first
failing tile stops the queue, the write transaction is aborted and the
error is raised.
"""

import asyncio
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, Optional

import structlog

from ..exceptions import TileNotFoundError
from ..monitoring.metrics import MetricsCollector
from ..storage.base_store import TileStore
from ..tile_generation.range_resolver import RangeResolver, ResolvedRange
from ..tile_generation.tile_spec import DatasetInfo, TileCoordinate
from ..tile_generation.vector_tile_codec import VectorTileCodec
from ..utils.config import RunConfig
from .transform_invoker import TransformInvoker


@dataclass(frozen=True)
class TileJob:
    """One unit of work: a tile to visit exactly once."""
    coordinate: TileCoordinate


@dataclass
class RunResult:
    """Summary of a completed run."""
    tile_count: int
    processed: int = 0
    unchanged: int = 0
    written: int = 0
    missing: int = 0
    duration: float = 0.0
    dry_run: bool = False
    zoom: Optional[list] = None
    bbox: Optional[list] = None

    def as_dict(self) -> Dict[str, object]:
        return dict(self.__dict__)


class TileJobQueue:
    """
    Drains tile jobs with a fixed number of workers.

    With the default concurrency of 1 each tile is fully processed before
    the next one starts. After the first failure no new job is started;
    jobs already running finish, then the first error is raised.
    """

    def __init__(self, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        self.concurrency = concurrency
        self.logger = structlog.get_logger(component="TileJobQueue")

    async def run(
        self,
        jobs: Iterable[TileJob],
        handler: Callable[[TileJob], Awaitable[None]]
    ) -> int:
        """
        Run `handler` for every job.

        Returns:
            Number of jobs started
        """
        pending = iter(jobs)
        errors = []
        started = 0

        async def worker():
            nonlocal started
            while not errors:
                job = next(pending, None)
                if job is None:
                    return
                started += 1
                try:
                    await handler(job)
                except Exception as e:
                    errors.append(e)
                    return

        await asyncio.gather(*(worker() for _ in range(self.concurrency)))

        if errors:
            for extra in errors[1:]:
                self.logger.error("Additional tile failure", error=str(extra))
            raise errors[0]
        return started


class TileTransformPipeline:
    """
    Applies a transform to every tile of a zoom/bbox range in a tile store.

    The store is owned by the caller; the pipeline only brackets its own
    writes in a single transaction.
    """

    def __init__(
        self,
        store: TileStore,
        config: RunConfig,
        metrics: Optional[MetricsCollector] = None,
        resolver: Optional[RangeResolver] = None
    ):
        self.store = store
        self.config = config
        self.metrics = metrics or MetricsCollector()
        self.resolver = resolver or RangeResolver()
        self.invoker = TransformInvoker(config.transform)
        self.logger = structlog.get_logger(component="TileTransformPipeline")

        self.stats = {"unchanged": 0, "written": 0, "missing": 0}
        self.remaining = 0
        self.dataset: Optional[DatasetInfo] = None

    def resolve(self) -> ResolvedRange:
        """Read dataset metadata and resolve the tile range of this run."""
        info = self.store.get_info()
        self.dataset = info
        self.logger.debug("Tileset", id=info.id, name=info.name, scheme=info.scheme)

        resolved = self.resolver.resolve(info, self.config.zoom, self.config.bbox)

        self.config = self.config.with_range(resolved.zoom, resolved.bbox).with_dataset(
            info.scheme,
            extent=info.extent,
            buffer=info.buffer
        )
        return resolved

    @contextmanager
    def writing(self):
        """Hold the store's write transaction; abort it on any failure."""
        self.store.start_writing()
        try:
            yield
        except BaseException:
            self.logger.warning("Aborting write transaction")
            try:
                self.store.abort_writing()
            except Exception as abort_error:
                self.logger.error(
                    "Failed to abort write transaction",
                    error=str(abort_error),
                    error_type=type(abort_error).__name__
                )
            raise
        self.logger.debug("Committing write transaction")
        self.store.stop_writing()

    async def run(self) -> RunResult:
        """
        Execute the run.

        Returns:
            RunResult with per-outcome tile counts

        Raises:
            The first error of any tile, store, codec or transform failure
        """
        start_time = time.time()
        resolved = self.resolve()
        tile_count = resolved.tile_count

        self.logger.info(
            "Tiles to process",
            tile_count=tile_count,
            zoom=list(resolved.zoom),
            bbox=list(resolved.bbox)
        )

        result = RunResult(
            tile_count=tile_count,
            dry_run=self.config.dry_run,
            zoom=list(resolved.zoom),
            bbox=list(resolved.bbox)
        )
        if self.config.dry_run:
            return result

        codec = VectorTileCodec(
            extent=self.config.extent,
            buffer=self.config.buffer,
            compression=self.config.compression,
            gzip_level=self.config.gzip_level,
            layer_extents=self.dataset.extent is None
        )
        queue = TileJobQueue(self.config.concurrency)
        self.remaining = tile_count
        self.metrics.set_gauge(MetricsCollector.TILES_PENDING, tile_count)

        async def handle(job: TileJob) -> None:
            await self.process_tile(job.coordinate, codec)

        try:
            with self.writing():
                result.processed = await queue.run(
                    (TileJob(coordinate) for coordinate in resolved),
                    handle
                )
        except Exception as e:
            self.logger.error(
                "Run aborted",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=time.time() - start_time
            )
            raise

        result.unchanged = self.stats["unchanged"]
        result.written = self.stats["written"]
        result.missing = self.stats["missing"]
        result.duration = time.time() - start_time

        self.logger.info(
            "Run completed",
            processed=result.processed,
            written=result.written,
            unchanged=result.unchanged,
            missing=result.missing,
            duration_seconds=result.duration
        )
        return result

    async def process_tile(self, coordinate: TileCoordinate, codec: VectorTileCodec) -> None:
        """Decode, transform and, when changed, re-encode and store one tile."""
        tile_id = coordinate.tile_id
        self.logger.debug("Processing tile", tile_id=tile_id, bounds=coordinate.bounds)
        stage = "read"

        try:
            try:
                data, _headers = self.store.get_tile(coordinate.zoom, coordinate.column, coordinate.row)
            except TileNotFoundError:
                if not self.config.skip_missing:
                    raise
                self.logger.debug("Tile missing", tile_id=tile_id)
                self._count("missing")
                return

            stage = "decode"
            with self.metrics.time_stage(stage):
                layers = codec.decode(coordinate, data)

            stage = "transform"
            with self.metrics.time_stage(stage):
                replacement = await self.invoker.invoke(layers, coordinate)

            if replacement is None:
                self.logger.debug("No change", tile_id=tile_id)
                self._count("unchanged")
                return

            stage = "encode"
            with self.metrics.time_stage(stage):
                blob = codec.encode(coordinate, replacement)

            stage = "write"
            with self.metrics.time_stage(stage):
                self.store.put_tile(coordinate.zoom, coordinate.column, coordinate.row, blob)

            self.logger.debug("Saved tile", tile_id=tile_id, size_bytes=len(blob))
            self._count("written")

        except Exception as e:
            self.metrics.tile_outcome("failed")
            self.logger.error(
                "Tile processing failed",
                tile_id=tile_id,
                stage=stage,
                error=str(e)
            )
            raise

    def _count(self, status: str) -> None:
        self.stats[status] += 1
        self.metrics.tile_outcome(status)
        self.remaining -= 1
        self.metrics.set_gauge(MetricsCollector.TILES_PENDING, self.remaining)
