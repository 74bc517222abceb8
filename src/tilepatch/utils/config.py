"""
Configuration

Environment-driven defaults (`Config`) and the immutable value that
describes a single run (`RunConfig`). Components receive the run
configuration explicitly; nothing reads process-wide state after start-up.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Optional

from ..tile_generation.tile_spec import GeoBoundingBox, ZoomRange
from ..tile_generation.vector_tile_codec import COMPRESSIONS, DEFAULT_GZIP_LEVEL
from .tile_math import DEFAULT_BUFFER, DEFAULT_EXTENT

ENV_PREFIX = "TILEPATCH_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(f"{ENV_PREFIX}{name}")
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Process-level settings, populated from `TILEPATCH_*` variables."""
    concurrency: int = 1
    tile_extent: int = DEFAULT_EXTENT
    tile_buffer: int = DEFAULT_BUFFER
    compression: str = "gzip"
    gzip_level: int = DEFAULT_GZIP_LEVEL
    transform_function: str = "transform"
    skip_missing: bool = False
    log_level: str = "INFO"
    log_format: str = "console"
    pushgateway: Optional[str] = None

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        if self.tile_extent <= 0:
            raise ValueError("Tile extent must be positive")
        if self.tile_buffer < 0:
            raise ValueError("Tile buffer must not be negative")
        if self.compression not in COMPRESSIONS:
            raise ValueError(f"Unsupported compression: {self.compression}")
        if not 0 <= self.gzip_level <= 9:
            raise ValueError("Compression level must be between 0 and 9")

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            concurrency=int(_env("CONCURRENCY", "1")),
            tile_extent=int(_env("TILE_EXTENT", str(DEFAULT_EXTENT))),
            tile_buffer=int(_env("TILE_BUFFER", str(DEFAULT_BUFFER))),
            compression=_env("COMPRESSION", "gzip").lower(),
            gzip_level=int(_env("GZIP_LEVEL", str(DEFAULT_GZIP_LEVEL))),
            transform_function=_env("TRANSFORM_FUNCTION", "transform"),
            skip_missing=_env_flag("SKIP_MISSING", False),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_format=_env("LOG_FORMAT", "console").lower(),
            pushgateway=os.getenv(f"{ENV_PREFIX}PUSHGATEWAY") or None,
        )


@dataclass(frozen=True)
class RunConfig:
    """
    Immutable description of one run.

    The range resolver never mutates this value; clamped zoom and bbox are
    applied with `with_range`, which returns a new instance.
    """
    source: Path
    transform: Callable[..., Any]
    zoom: ZoomRange = field(default_factory=ZoomRange.full)
    bbox: GeoBoundingBox = field(default_factory=GeoBoundingBox.world)
    scheme: Optional[str] = None
    extent: int = DEFAULT_EXTENT
    buffer: int = DEFAULT_BUFFER
    concurrency: int = 1
    compression: str = "gzip"
    gzip_level: int = DEFAULT_GZIP_LEVEL
    skip_missing: bool = False
    dry_run: bool = False

    def with_range(self, zoom: ZoomRange, bbox: GeoBoundingBox) -> "RunConfig":
        return replace(self, zoom=zoom, bbox=bbox)

    def with_dataset(
        self,
        scheme: Optional[str],
        extent: Optional[int] = None,
        buffer: Optional[int] = None
    ) -> "RunConfig":
        """Thread dataset-level values through, keeping fallbacks for absent ones."""
        return replace(
            self,
            scheme=scheme,
            extent=extent if extent else self.extent,
            buffer=buffer if buffer is not None else self.buffer,
        )

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "RunConfig":
        values = dict(
            extent=config.tile_extent,
            buffer=config.tile_buffer,
            concurrency=config.concurrency,
            compression=config.compression,
            gzip_level=config.gzip_level,
            skip_missing=config.skip_missing,
        )
        values.update(kwargs)
        return cls(**values)
