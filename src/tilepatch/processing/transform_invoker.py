"""
Transform Invoker

Loads the user transform from a Python file and calls it once per tile
with the decoded layers. A transform returns either None, meaning the tile
is unchanged, or a complete replacement mapping of layer name to feature
collection. Layers missing from the replacement are dropped from the tile.
"""

import importlib.util
import inspect
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Optional, Union

import structlog

from ..exceptions import PreconditionError, TransformError
from ..tile_generation.tile_spec import TileCoordinate
from ..tile_generation.vector_tile_codec import LayerFeatureCollection

TransformFunction = Callable[..., Any]


def load_transform(path: Union[str, Path], function_name: str = "transform") -> TransformFunction:
    """
    Import a transform script and return its transform callable.

    Raises:
        PreconditionError: if the file is missing, cannot be imported, or
            does not define a callable named `function_name`
    """
    path = Path(path)
    if not path.is_file():
        raise PreconditionError(f"Transform script not found: {path}")

    spec = importlib.util.spec_from_file_location(f"tilepatch_transform_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise PreconditionError(f"Cannot load transform script: {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise PreconditionError(f"Cannot load transform script {path}: {e}") from e

    function = getattr(module, function_name, None)
    if not callable(function):
        raise PreconditionError(
            f"Transform script {path} does not define a callable {function_name!r}"
        )
    return function


def _accepts_coordinate(function: TransformFunction) -> bool:
    """True when the transform takes a second positional argument."""
    try:
        parameters = inspect.signature(function).parameters.values()
    except (TypeError, ValueError):
        return False

    positional = 0
    for parameter in parameters:
        if parameter.kind == parameter.VAR_POSITIONAL:
            return True
        if parameter.kind in (parameter.POSITIONAL_ONLY, parameter.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


class TransformInvoker:
    """Calls a transform and validates what it hands back."""

    def __init__(self, function: TransformFunction):
        if not callable(function):
            raise PreconditionError("Transform must be callable")
        self.function = function
        self.pass_coordinate = _accepts_coordinate(function)
        self.logger = structlog.get_logger(component="TransformInvoker")

    async def invoke(
        self,
        layers: LayerFeatureCollection,
        coordinate: TileCoordinate
    ) -> Optional[LayerFeatureCollection]:
        """
        Run the transform for one tile.

        Exceptions raised by the transform propagate unchanged.

        Returns:
            None when the tile is unchanged, otherwise the replacement layers

        Raises:
            TransformError: if the transform returns neither None nor a mapping
                of layer names to feature collections
        """
        if self.pass_coordinate:
            result = self.function(layers, coordinate)
        else:
            result = self.function(layers)

        if inspect.isawaitable(result):
            result = await result

        if result is None:
            return None

        if not isinstance(result, Mapping):
            raise TransformError(
                f"Transform returned {type(result).__name__} for tile "
                f"{coordinate.tile_id}; expected a mapping of layers or None"
            )

        for layer_name, collection in result.items():
            if not isinstance(layer_name, str) or not layer_name:
                raise TransformError(
                    f"Transform returned an invalid layer name {layer_name!r} "
                    f"for tile {coordinate.tile_id}"
                )
            if not isinstance(collection, (Mapping, list, tuple)):
                raise TransformError(
                    f"Layer {layer_name!r} of tile {coordinate.tile_id} is "
                    f"{type(collection).__name__}, expected a feature collection"
                )

        return dict(result)
