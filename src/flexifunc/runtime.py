"""Helpers for running generated artifacts in-process."""

import logging
import typing
from typing import Any, Optional

from .request import GeneratedArtifact

logger = logging.getLogger(__name__)

T = typing.TypeVar("T")
E = typing.TypeVar("E", bound=BaseException)

# `Result[Ok, Err]`: a function returns either its value or an error object
Result = typing.Union[T, E]


def materialize(artifact: GeneratedArtifact, namespace: Optional[dict[str, Any]] = None) -> Any:
    """Execute an artifact's definition and return the value of its expression.

    For functions and closures this is the bound callable. For immediate blocks it
    is the block's value, or a coroutine the caller has to await when the block is
    async.

    The definition is executed in `namespace` (a fresh dict if not given), which
    gets `typing` and `Result` unless it already defines those names.
    """
    if namespace is None:
        namespace = {}
    namespace.setdefault("typing", typing)
    namespace.setdefault("Result", Result)

    filename = f"<flexifunc {artifact.mode.value} {artifact.kind.value} {artifact.name or artifact.expression}>"
    logger.debug("Materializing %s", filename)
    exec(compile(artifact.definition, filename, "exec"), namespace)
    return eval(compile(artifact.expression, filename, "eval"), namespace)
