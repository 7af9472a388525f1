"""Request parser: turns invocations into `SynthesisRequest`s.

Two invocation shapes are recognized:

- a single (optionally `@twin`-annotated) function definition given as source
  text, see `parse_function`
- an explicit `(mode, kind, name, parameters, return_type, body)` tuple, see
  `parse_construct` and `parse_tuple`

Signatures are read with the `ast` module, but bodies are only ever sliced out
of the source text: they are never parsed or rewritten.
"""

import ast
import io
import logging
import tokenize
import typing
from typing import Optional, Sequence, Union

from ..exceptions import MalformedRequest
from ..request import (
    KEYWORD_ONLY,
    POSITIONAL_ONLY,
    POSITIONAL_OR_KEYWORD,
    VAR_KEYWORD,
    VAR_POSITIONAL,
    Kind,
    Mode,
    Parameter,
    RequestBuilder,
    SynthesisRequest,
    TwinOptions,
    TypeRef,
    dedent_source,
)

logger = logging.getLogger(__name__)

TWIN_MARKER = "twin"
TWIN_OPTION_NAMES = ("error_type", "async_name")

ParameterSpec = Union[Parameter, Sequence[typing.Any]]


class TwinInvocation(typing.NamedTuple):
    """A parsed annotate-a-function invocation: the primary request plus its twin options."""

    request: SynthesisRequest
    options: TwinOptions


def _segment(source: str, node: Optional[ast.AST]) -> Optional[str]:
    if node is None:
        return None
    return ast.get_source_segment(source, node)


def _parameter_from_arg(source: str, arg: ast.arg, default: Optional[ast.expr], kind, index: int) -> Parameter:
    annotation = _segment(source, arg.annotation)
    return Parameter(
        name=arg.arg,
        annotation=TypeRef.parse(annotation, f"parameters[{index}]") if annotation is not None else None,
        default=_segment(source, default),
        kind=kind,
    )


def _parameters_from_ast(source: str, args: ast.arguments) -> list[Parameter]:
    params: list[Parameter] = []
    positional = args.posonlyargs + args.args
    # defaults line up with the tail of the positional parameters
    defaults: list[Optional[ast.expr]] = [None] * (len(positional) - len(args.defaults)) + list(args.defaults)

    for i, (arg, default) in enumerate(zip(positional, defaults)):
        kind = POSITIONAL_ONLY if i < len(args.posonlyargs) else POSITIONAL_OR_KEYWORD
        params.append(_parameter_from_arg(source, arg, default, kind, len(params)))
    if args.vararg is not None:
        params.append(_parameter_from_arg(source, args.vararg, None, VAR_POSITIONAL, len(params)))
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(_parameter_from_arg(source, arg, default, KEYWORD_ONLY, len(params)))
    if args.kwarg is not None:
        params.append(_parameter_from_arg(source, args.kwarg, None, VAR_KEYWORD, len(params)))

    return params


def parse_parameters(text: str) -> tuple[Parameter, ...]:
    """Parse a parameter list written as Python source, e.g. `"a: int, *, b: str = 'x'"`."""
    source = f"def _({text}):\n    pass\n"
    try:
        module = ast.parse(source)
    except SyntaxError as exc:
        raise MalformedRequest("parameters", f"{text!r} is not a valid parameter list ({exc.msg})") from None
    node = module.body[0]
    if len(module.body) != 1 or not isinstance(node, ast.FunctionDef) or node.returns is not None:
        raise MalformedRequest("parameters", f"{text!r} is not a valid parameter list")
    return tuple(_parameters_from_ast(source, node.args))


def _header_colon(source: str, node: Union[ast.FunctionDef, ast.AsyncFunctionDef]) -> tuple[int, int]:
    """Locate the colon that ends a function header, as a (1-based row, column) pair."""
    depth = 0
    in_header = False
    tokens = tokenize.generate_tokens(io.StringIO(source).readline)
    for tok in tokens:
        if not in_header:
            in_header = tok.type == tokenize.NAME and tok.string == "def" and tok.start[0] >= node.lineno
            continue
        if tok.type != tokenize.OP:
            continue
        if tok.string in "([{":
            depth += 1
        elif tok.string in ")]}":
            depth -= 1
        elif tok.string == ":" and depth == 0:
            return tok.start
    raise MalformedRequest("source", f"could not find the end of the header of {node.name!r}")


def _body_source(source: str, node: Union[ast.FunctionDef, ast.AsyncFunctionDef]) -> str:
    row, col = _header_colon(source, node)
    lines = source.splitlines()
    rest_of_header = lines[row - 1][col + 1 :]
    body_lines = lines[row : node.end_lineno]
    if rest_of_header.strip() and not rest_of_header.strip().startswith("#"):
        # one-line definition, e.g. `def f(x): return x`
        body_lines = [rest_of_header.strip()] + body_lines
    return "\n".join(body_lines)


def _is_twin_marker(node: ast.expr) -> bool:
    if isinstance(node, ast.Name):
        return node.id == TWIN_MARKER
    if isinstance(node, ast.Attribute):
        return node.attr == TWIN_MARKER
    return False


def _twin_options(source: str, call: ast.Call) -> TwinOptions:
    if call.args:
        raise MalformedRequest(
            "decorators", f"twin options must be passed as keywords ({', '.join(TWIN_OPTION_NAMES)})"
        )
    values: dict[str, str] = {}
    for kw in call.keywords:
        if kw.arg is None:
            raise MalformedRequest("decorators", "twin options cannot be passed with ** unpacking")
        if kw.arg not in TWIN_OPTION_NAMES:
            raise MalformedRequest(
                kw.arg, f"unknown twin option (recognized options: {', '.join(TWIN_OPTION_NAMES)})"
            )
        if isinstance(kw.value, ast.Constant) and isinstance(kw.value.value, str):
            values[kw.arg] = kw.value.value
        elif kw.arg == "error_type":
            values[kw.arg] = _segment(source, kw.value)
        else:
            raise MalformedRequest(kw.arg, "expected a string literal")
    return TwinOptions(**values)


def _split_decorators(source: str, decorator_list: list[ast.expr]) -> tuple[list[str], TwinOptions]:
    kept: list[str] = []
    options = TwinOptions()
    seen_marker = False
    for decorator in decorator_list:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        if not _is_twin_marker(target):
            kept.append(_segment(source, decorator))
            continue
        if seen_marker:
            raise MalformedRequest("decorators", "the twin annotation is given more than once")
        seen_marker = True
        if isinstance(decorator, ast.Call):
            options = _twin_options(source, decorator)
    return kept, options


def parse_function(source: str, *, filename: str = "<string>") -> TwinInvocation:
    """
    Parse a single function definition into a primary request and its twin options.

    The mode is inferred from `def` vs `async def` and the kind is always
    `Kind.NAMED_FUNCTION`. A `@twin` / `@<module>.twin(...)` decorator, if present, is
    consumed: its keyword options become the returned `TwinOptions` and it is not
    re-emitted. Any other decorators are kept verbatim.

    Args:
        source: Source text of exactly one function definition (may be indented)
        filename: Used in error messages only

    Returns:
        TwinInvocation with the primary request and the parsed options

    Raises:
        MalformedRequest: If the source is not exactly one well-formed function definition
    """
    source = dedent_source(source)
    try:
        module = ast.parse(source, filename=filename)
    except SyntaxError as exc:
        raise MalformedRequest("source", f"{filename}:{exc.lineno}: {exc.msg}") from None

    if len(module.body) != 1 or not isinstance(module.body[0], (ast.FunctionDef, ast.AsyncFunctionDef)):
        raise MalformedRequest("source", f"{filename}: expected exactly one function definition")
    node = module.body[0]
    if getattr(node, "type_params", None):
        raise MalformedRequest("source", f"{filename}: generic type parameters on {node.name!r} are not supported")

    decorators, options = _split_decorators(source, node.decorator_list)
    builder = (
        RequestBuilder()
        .mode(Mode.ASYNC if isinstance(node, ast.AsyncFunctionDef) else Mode.SYNC)
        .kind(Kind.NAMED_FUNCTION)
        .name(node.name)
        .parameters(_parameters_from_ast(source, node.args))
        .returns(_segment(source, node.returns))
        .body(_body_source(source, node))
    )
    for decorator in decorators:
        builder.decorator(decorator)
    request = builder.build()

    logger.debug("Parsed %s function %r from %s with %s", request.mode.value, request.name, filename, options)
    return TwinInvocation(request, options)


def parse_construct(
    mode: Union[Mode, str],
    kind: Union[Kind, str],
    name: Optional[str],
    parameters: Union[str, Sequence[ParameterSpec], None],
    return_type: Union[TypeRef, str, None],
    body: Optional[str],
    *,
    error_type: Union[TypeRef, str, None] = None,
    decorators: Sequence[str] = (),
) -> SynthesisRequest:
    """
    Build a request from an explicit construct description.

    Args:
        mode: "sync" or "async" (or a `Mode`)
        kind: "function", "closure" or "block" (or a `Kind`)
        name: Binding name; must be None exactly when kind is a block
        parameters: A parameter-list source string, or a sequence of
            (name, type) / (name, type, default) entries or `Parameter`s
        return_type: Return annotation source text, or None to leave it unannotated
        body: Body source text, re-emitted as-is
        error_type: Optional error component for a result-bearing return type
        decorators: Decorator expressions, without the leading `@`

    Returns:
        A validated SynthesisRequest

    Raises:
        MalformedRequest: Naming the offending field
    """
    builder = RequestBuilder().mode(mode).kind(kind).name(name)

    if isinstance(parameters, str):
        builder.parameters(parse_parameters(parameters))
    else:
        for i, entry in enumerate(parameters or ()):
            if isinstance(entry, Parameter):
                builder.parameters([entry])
            elif isinstance(entry, (tuple, list)) and len(entry) in (2, 3):
                builder.parameter(*entry)
            else:
                raise MalformedRequest(f"parameters[{i}]", f"expected an (identifier, type) pair, got {entry!r}")

    builder.returns(return_type).error_type(error_type)
    if body is not None:
        builder.body(body)
    for decorator in decorators:
        builder.decorator(decorator)

    request = builder.build()
    logger.debug("Parsed %s %s request %r", request.mode.value, request.kind.value, request.name)
    return request


def parse_tuple(invocation: Sequence[typing.Any], *, kind: Union[Kind, str, None] = None) -> SynthesisRequest:
    """
    Parse a positional invocation tuple.

    Accepts either the six-tuple `(mode, kind, name, parameters, return_type, body)` or
    the five-tuple `(mode, name, parameters, return_type, body)`. The five-tuple describes
    a named function unless `kind` is passed explicitly; a missing name is only accepted
    when the caller asks for a block.
    """
    if not isinstance(invocation, (tuple, list)):
        raise MalformedRequest("invocation", f"expected a tuple, got {type(invocation).__name__}")
    if len(invocation) == 6:
        if kind is not None:
            raise MalformedRequest("kind", "given both in the invocation and as an argument")
        return parse_construct(*invocation)
    if len(invocation) == 5:
        mode, name, parameters, return_type, body = invocation
        return parse_construct(
            mode, kind if kind is not None else Kind.NAMED_FUNCTION, name, parameters, return_type, body
        )
    raise MalformedRequest(
        "invocation",
        f"expected (mode, kind, name, parameters, return_type, body) "
        f"or (mode, name, parameters, return_type, body), got {len(invocation)} fields",
    )
