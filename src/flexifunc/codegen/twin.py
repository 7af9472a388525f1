"""Twin deriver: derives the async twin of a synchronous function request."""

import dataclasses
import logging
import typing
from typing import Optional, Union

from ..exceptions import MalformedRequest
from ..request import GeneratedArtifact, Kind, Mode, SynthesisRequest, TwinOptions, TypeRef
from .compile import synthesize
from .parser import parse_function

logger = logging.getLogger(__name__)

ASYNC_SUFFIX = "_async"


class TwinArtifacts(typing.NamedTuple):
    """The primary artifact and its twin, meant to be placed at the same scope."""

    primary: GeneratedArtifact
    twin: GeneratedArtifact

    @property
    def source(self) -> str:
        return f"{self.primary.definition}\n\n\n{self.twin.definition}\n"

    def __str__(self) -> str:
        return self.source


def derive_twin_name(name: str, options: Optional[TwinOptions] = None) -> str:
    """Textual name derivation; collisions with existing names are not checked."""
    if options is not None and options.async_name is not None:
        return options.async_name
    return f"{name}{ASYNC_SUFFIX}"


def derive_twin(primary: SynthesisRequest, options: Optional[TwinOptions] = None) -> SynthesisRequest:
    """
    Derive the async twin request of a synchronous named function.

    Parameters, body and decorators are copied verbatim. Only the mode, the name and
    (when `options.error_type` is set) the error component of the return type change.
    The primary request is never modified.

    Args:
        primary: A `Mode.SYNC` / `Kind.NAMED_FUNCTION` request
        options: Twin configuration; defaults to `TwinOptions()`

    Returns:
        The twin request

    Raises:
        MalformedRequest: If the primary has the wrong shape, or an error type override is
            given for a return type that is not result-bearing
    """
    options = options if options is not None else TwinOptions()
    if primary.kind is not Kind.NAMED_FUNCTION:
        raise MalformedRequest("kind", f"twin derivation requires a named function, got {primary.kind.value!r}")
    if primary.mode is not Mode.SYNC:
        raise MalformedRequest("mode", f"twin derivation requires a synchronous primary, {primary.name!r} is async")

    return_type = primary.return_type
    error_type = primary.error_type
    if options.error_type is not None:
        if return_type is None or not return_type.is_result:
            shown = return_type.text if return_type is not None else None
            raise MalformedRequest(
                "error_type",
                f"cannot override the error type of {primary.name!r}: return type {shown!r} is not result-bearing",
            )
        return_type = return_type.with_error(options.error_type)
        error_type = options.error_type

    twin = dataclasses.replace(
        primary,
        mode=Mode.ASYNC,
        name=derive_twin_name(primary.name, options),
        return_type=return_type,
        error_type=error_type,
    )
    logger.debug("Derived twin %r of %r", twin.name, primary.name)
    return twin


def synthesize_twin(primary: SynthesisRequest, options: Optional[TwinOptions] = None) -> TwinArtifacts:
    """Synthesize a primary request together with its derived twin."""
    twin = derive_twin(primary, options)
    return TwinArtifacts(synthesize(primary), synthesize(twin))


def twin_from_source(
    source: str,
    *,
    filename: str = "<string>",
    error_type: Union[TypeRef, str, None] = None,
    async_name: Optional[str] = None,
) -> TwinArtifacts:
    """
    Annotate-a-function entry point: parse a function definition and emit it with its twin.

    Options passed here take precedence over the ones given to a `@twin(...)`
    decorator in the source.

    Example:
        ```python
        pair = twin_from_source('''
        def compute(data: bytes) -> Result[int, MyError]:
            return len(data)
        ''', error_type="MyCustomError")
        print(pair.source)  # compute(...) and async compute_async(...)
        ```
    """
    invocation = parse_function(source, filename=filename)
    options = invocation.options.merge(TwinOptions(error_type=error_type, async_name=async_name))
    return synthesize_twin(invocation.request, options)
