"""
Processing Module

Runs a user transform over every tile of a resolved range: the transform
invoker, the tile job queue and the pipeline that ties them to a store.
"""

from .transform_invoker import TransformInvoker, load_transform
from .tile_pipeline import RunResult, TileJob, TileJobQueue, TileTransformPipeline

__all__ = [
    "TransformInvoker",
    "load_transform",
    "RunResult",
    "TileJob",
    "TileJobQueue",
    "TileTransformPipeline"
]
