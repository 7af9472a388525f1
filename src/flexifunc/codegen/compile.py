"""Variant synthesizer: renders `SynthesisRequest`s into source code.

Six templates are selected by `(mode, kind)`. Sync and async variants of the same
kind only differ in their scaffolding (`def` vs `async def`) and in the declared
result; the body text is emitted identically in both.
"""

from __future__ import annotations

import ast
import dataclasses
import inspect
import logging
import sys
import typing
from typing import Callable, Iterable, Optional

from ..module import Module, is_registering_decorator
from ..request import GeneratedArtifact, Kind, Mode, SynthesisRequest, indent_source
from .parser import parse_function
from .signature_utils import format_callable_type, format_parameters

logger = logging.getLogger(__name__)

INDENT = "    "
BLOCK_FUNCTION_NAME = "_flexifunc_block"


def _indent(text: str, levels: int = 1) -> str:
    return indent_source(text, INDENT * levels)


def _format_body(body: str, levels: int = 1) -> str:
    return _indent(body if body.strip() else "pass", levels)


def _format_result_annotation(mode: Mode, return_type: Optional[str]) -> Optional[str]:
    """The result as seen by a caller: unchanged for sync, awaitable for async."""
    if mode is Mode.SYNC:
        return return_type
    return f"typing.Awaitable[{return_type if return_type is not None else 'typing.Any'}]"


def _format_header(request: SynthesisRequest, name: str, return_type: Optional[str]) -> str:
    prefix = "async def" if request.mode is Mode.ASYNC else "def"
    return_str = f" -> {return_type}" if return_type is not None else ""
    return f"{prefix} {name}({format_parameters(request.parameters)}){return_str}:"


def _format_function(request: SynthesisRequest, name: str, return_type: Optional[str]) -> str:
    lines = [f"@{decorator}" for decorator in request.decorators]
    lines.append(_format_header(request, name, return_type))
    lines.append(_format_body(request.body))
    return "\n".join(lines)


def _return_type_text(request: SynthesisRequest) -> Optional[str]:
    return_type = request.effective_return_type
    return return_type.text if return_type is not None else None


def _named_function(request: SynthesisRequest) -> GeneratedArtifact:
    return_type = _return_type_text(request)
    return GeneratedArtifact(
        mode=request.mode,
        kind=request.kind,
        name=request.name,
        definition=_format_function(request, request.name, return_type),
        expression=request.name,
        body=request.body,
        result_annotation=_format_result_annotation(request.mode, return_type),
    )


def _closure(request: SynthesisRequest) -> GeneratedArtifact:
    # The closure is created by a factory so the binding is a plain value
    # that the surrounding program has to call (and await, for async mode).
    return_type = _return_type_text(request)
    result_annotation = _format_result_annotation(request.mode, return_type)
    factory_name = f"_{request.name}_closure"
    callable_type = format_callable_type(request.parameters, result_annotation)

    definition = (
        f"def {factory_name}():\n"
        f"{_indent(_format_function(request, request.name, return_type))}\n"
        f"{INDENT}return {request.name}\n"
        f"\n"
        f"\n"
        f"{request.name}: {callable_type!r} = {factory_name}()"
    )
    return GeneratedArtifact(
        mode=request.mode,
        kind=request.kind,
        name=request.name,
        definition=definition,
        expression=request.name,
        body=request.body,
        result_annotation=callable_type,
    )


def _immediate_block(request: SynthesisRequest) -> GeneratedArtifact:
    return_type = _return_type_text(request)
    return GeneratedArtifact(
        mode=request.mode,
        kind=request.kind,
        name=None,
        definition=_format_function(request, BLOCK_FUNCTION_NAME, return_type),
        expression=f"{BLOCK_FUNCTION_NAME}()",
        body=request.body,
        result_annotation=_format_result_annotation(request.mode, return_type),
    )


_KIND_TEMPLATES: dict[Kind, Callable[[SynthesisRequest], GeneratedArtifact]] = {
    Kind.NAMED_FUNCTION: _named_function,
    Kind.CLOSURE: _closure,
    Kind.IMMEDIATE_BLOCK: _immediate_block,
}

TEMPLATES: dict[tuple[Mode, Kind], Callable[[SynthesisRequest], GeneratedArtifact]] = {
    (mode, kind): template for mode in Mode for kind, template in _KIND_TEMPLATES.items()
}


def synthesize(request: SynthesisRequest) -> GeneratedArtifact:
    """
    Emit the construct described by a request.

    Synthesis is pure and deterministic: the same request always yields an identical
    artifact, and a well-formed request never fails.

    Args:
        request: A validated request

    Returns:
        The generated artifact, tagged with the request's mode and kind
    """
    artifact = TEMPLATES[(request.mode, request.kind)](request)
    logger.debug("Synthesized %s %s %r", request.mode.value, request.kind.value, artifact.expression)
    return artifact


def synthesize_all(requests: Iterable[SynthesisRequest]) -> list[GeneratedArtifact]:
    return [synthesize(request) for request in requests]


def _resolve_decorator(f: Callable, decorator: str) -> typing.Any:
    """Look up a dotted-name decorator in the globals of `f`. Calls are never evaluated."""
    node = ast.parse(decorator, mode="eval").body
    attrs: list[str] = []
    while isinstance(node, ast.Attribute):
        attrs.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name) or node.id not in f.__globals__:
        return None
    obj = f.__globals__[node.id]
    for attr in reversed(attrs):
        obj = getattr(obj, attr, None)
    return obj


def _strip_registering_decorators(f: Callable, request: SynthesisRequest) -> SynthesisRequest:
    # e.g. `opts = wrapper_module.twin(error_type=...)` applied as `@opts`
    kept = tuple(d for d in request.decorators if not is_registering_decorator(_resolve_decorator(f, d)))
    if kept == request.decorators:
        return request
    logger.debug("Dropping registration decorators %s from %r", set(request.decorators) - set(kept), request.name)
    return dataclasses.replace(request, decorators=kept)


def _unexported_names(module_name: str) -> list[str]:
    """Globals of a module that `from module import *` leaves out, dunders aside."""
    origin = sys.modules.get(module_name)
    if origin is None:
        return []
    names = [
        name
        for name in vars(origin)
        if name.isidentifier() and not (name.startswith("__") and name.endswith("__"))
    ]
    exported = getattr(origin, "__all__", None)
    if exported is None:
        return sorted(name for name in names if name.startswith("_"))
    return sorted(set(names) - set(exported))


def compile_module(module: Module) -> str:
    """
    Compile every function registered on a Module into a generated module.

    Each function's source is read back with `inspect.getsource`, parsed, and emitted
    together with its async twin. Options given when registering win over options read
    from the source. The generated module imports every global of the origin modules,
    private ones included, so that names used by the copied bodies, annotations and
    decorators resolve.

    Args:
        module: The Module whose registrations should be compiled

    Returns:
        Source code of the generated module
    """
    from .twin import synthesize_twin

    origin_modules: list[str] = []
    sections: list[str] = []
    emitted: dict[str, str] = {}

    for f, registration in module.module_items().items():
        filename = inspect.getsourcefile(f) or "<unknown>"
        invocation = parse_function(inspect.getsource(f), filename=filename)
        request = _strip_registering_decorators(f, invocation.request)
        pair = synthesize_twin(request, invocation.options.merge(registration.options))

        for artifact in pair:
            if artifact.name in emitted:
                logger.warning(
                    "%r generated from %s.%s rebinds the name already generated from %s in %s",
                    artifact.name,
                    f.__module__,
                    registration.name,
                    emitted[artifact.name],
                    module.target_module,
                )
            emitted[artifact.name] = f"{f.__module__}.{registration.name}"

        if f.__module__ not in origin_modules:
            origin_modules.append(f.__module__)
        sections.append(pair.source)

    header_lines = [
        f"# Generated by flexifunc from {', '.join(origin_modules) or 'no modules'}. Do not edit.",
        "import typing",
        "",
    ]
    for origin in origin_modules:
        header_lines.append(f"from {origin} import *  # noqa: F401,F403")
        hidden = _unexported_names(origin)
        if hidden:
            header_lines.append(f"from {origin} import {', '.join(hidden)}  # noqa: F401")
    header = "\n".join(header_lines)

    return "\n\n\n".join([header] + [section.rstrip("\n") for section in sections]) + "\n"


def compile_modules(modules: typing.Sequence[Module]) -> dict[str, str]:
    """
    Compile a set of Modules, keyed by target module name.

    Modules that share a target module are compiled into a single file.
    """
    by_target: dict[str, list[Module]] = {}
    for module in modules:
        by_target.setdefault(module.target_module, []).append(module)

    result = {}
    for target_module, group in by_target.items():
        if len(group) > 1:
            logger.debug("Merging %d Module objects targeting %s", len(group), target_module)
        # registrations are global per target module, so any one of them sees all items
        result[target_module] = compile_module(group[-1])
    return result
