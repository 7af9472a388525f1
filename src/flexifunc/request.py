"""Data model shared by the request parser, the variant synthesizer and the twin deriver.

A `SynthesisRequest` is the canonical description of one construct to generate.
Every invocation surface (source text, explicit tuples, the builder, the `Module`
registry) ends up constructing one of these before any code is generated, and
the request checks its own invariants on construction so that a malformed
request never reaches the synthesizer.
"""

from __future__ import annotations

import ast
import dataclasses
import enum
import inspect
import io
import keyword
import logging
import os
import tokenize
import typing
from typing import Iterable, Optional, Union

import typing_extensions

from .exceptions import MalformedRequest

logger = logging.getLogger(__name__)

POSITIONAL_ONLY = inspect.Parameter.POSITIONAL_ONLY
POSITIONAL_OR_KEYWORD = inspect.Parameter.POSITIONAL_OR_KEYWORD
VAR_POSITIONAL = inspect.Parameter.VAR_POSITIONAL
KEYWORD_ONLY = inspect.Parameter.KEYWORD_ONLY
VAR_KEYWORD = inspect.Parameter.VAR_KEYWORD

# parameters that may go without an annotation when they come first
_IMPLICIT_RECEIVERS = ("self", "cls")


class Mode(enum.Enum):
    """Execution model of a construct."""

    SYNC = "sync"
    ASYNC = "async"

    @classmethod
    def parse(cls, value: Union["Mode", str]) -> "Mode":
        if isinstance(value, Mode):
            return value
        if isinstance(value, str) and value.strip().lower() in cls._value2member_map_:
            return cls(value.strip().lower())
        raise MalformedRequest("mode", f"expected 'sync' or 'async', got {value!r}")

    @property
    def opposite(self) -> "Mode":
        return Mode.ASYNC if self is Mode.SYNC else Mode.SYNC


class Kind(enum.Enum):
    """Structural shape of a construct."""

    NAMED_FUNCTION = "named_function"
    CLOSURE = "closure"
    IMMEDIATE_BLOCK = "immediate_block"

    @classmethod
    def parse(cls, value: Union["Kind", str]) -> "Kind":
        if isinstance(value, Kind):
            return value
        if isinstance(value, str) and value.strip().lower() in _KIND_ALIASES:
            return _KIND_ALIASES[value.strip().lower()]
        raise MalformedRequest(
            "kind", f"expected one of {', '.join(repr(alias) for alias in _KIND_ALIASES)}, got {value!r}"
        )


_KIND_ALIASES = {
    "function": Kind.NAMED_FUNCTION,
    "named_function": Kind.NAMED_FUNCTION,
    "closure": Kind.CLOSURE,
    "block": Kind.IMMEDIATE_BLOCK,
    "immediate_block": Kind.IMMEDIATE_BLOCK,
}


def _parse_expression(text: str, field: str, what: str) -> ast.expr:
    try:
        return ast.parse(text, mode="eval").body
    except SyntaxError as exc:
        raise MalformedRequest(field, f"{text!r} is not a valid {what} expression ({exc.msg})") from None


@dataclasses.dataclass(frozen=True)
class TypeRef:
    """An opaque type descriptor, kept as annotation source text.

    The only structure ever looked at is whether the type is result-bearing,
    i.e. has the shape `Result[Ok, Err]` (or `some.module.Result[Ok, Err]`),
    so that the error component can be substituted.
    """

    text: str

    @classmethod
    def parse(cls, value: Union["TypeRef", str], field: str) -> "TypeRef":
        if isinstance(value, TypeRef):
            return value
        if not isinstance(value, str) or not value.strip():
            raise MalformedRequest(field, f"expected a type, got {value!r}")
        text = value.strip()
        _parse_expression(text, field, "type")
        return cls(text)

    def _result_components(self) -> Optional[tuple[str, str, str]]:
        try:
            node = ast.parse(self.text, mode="eval").body
        except SyntaxError:
            return None
        if not isinstance(node, ast.Subscript):
            return None
        head = node.value
        if isinstance(head, ast.Name):
            head_name = head.id
        elif isinstance(head, ast.Attribute):
            head_name = head.attr
        else:
            return None
        if head_name != "Result":
            return None
        if not isinstance(node.slice, ast.Tuple) or len(node.slice.elts) != 2:
            return None
        ok, err = (ast.get_source_segment(self.text, elt) for elt in node.slice.elts)
        return ast.get_source_segment(self.text, head), ok, err

    @property
    def is_result(self) -> bool:
        return self._result_components() is not None

    @property
    def success(self) -> Optional[str]:
        components = self._result_components()
        return components[1] if components else None

    @property
    def error(self) -> Optional[str]:
        components = self._result_components()
        return components[2] if components else None

    def with_error(self, error: Union["TypeRef", str]) -> "TypeRef":
        """Return a copy with the error component replaced.

        The head and the success component are carried over byte for byte.
        """
        components = self._result_components()
        if components is None:
            raise MalformedRequest("return_type", f"{self.text!r} is not result-bearing (expected Result[Ok, Err])")
        head, ok, _ = components
        error_text = error.text if isinstance(error, TypeRef) else error
        return TypeRef(f"{head}[{ok}, {error_text}]")

    def __str__(self) -> str:
        return self.text


@dataclasses.dataclass(frozen=True)
class Parameter:
    name: str
    annotation: Optional[TypeRef] = None
    default: Optional[str] = None
    kind: inspect._ParameterKind = POSITIONAL_OR_KEYWORD

    def render(self) -> str:
        if self.kind == VAR_POSITIONAL:
            rendered = f"*{self.name}"
        elif self.kind == VAR_KEYWORD:
            rendered = f"**{self.name}"
        else:
            rendered = self.name
        if self.annotation is not None:
            rendered += f": {self.annotation.text}"
        if self.default is not None:
            rendered += f" = {self.default}" if self.annotation is not None else f"={self.default}"
        return rendered


_NESTED_STRING_STARTS = frozenset(
    getattr(tokenize, name) for name in ("FSTRING_START", "TSTRING_START") if hasattr(tokenize, name)
)
_NESTED_STRING_ENDS = frozenset(
    getattr(tokenize, name) for name in ("FSTRING_END", "TSTRING_END") if hasattr(tokenize, name)
)


def string_continuation_lines(source: str) -> frozenset[int]:
    """Indexes of the lines of `source` that start inside a multi-line string literal.

    Such lines are part of the literal's value, so they must never be re-indented.
    Source that cannot be tokenized is reported as having none.
    """
    rows: set[int] = set()
    starts: list[int] = []
    try:
        for tok in tokenize.generate_tokens(io.StringIO(source).readline):
            if tok.type in _NESTED_STRING_STARTS:
                starts.append(tok.start[0])
            elif tok.type in _NESTED_STRING_ENDS:
                rows.update(range(starts.pop() + 1, tok.end[0] + 1))
            elif tok.type == tokenize.STRING:
                rows.update(range(tok.start[0] + 1, tok.end[0] + 1))
    except (tokenize.TokenError, SyntaxError) as exc:
        logger.debug("Could not tokenize source, indenting every line: %s", exc)
        return frozenset()
    return frozenset(row - 1 for row in rows)


def _margin(line: str) -> str:
    return line[: len(line) - len(line.lstrip(" \t"))]


def dedent_source(source: str) -> str:
    """`textwrap.dedent` that leaves the inside of multi-line string literals alone."""
    lines = source.split("\n")
    literal = string_continuation_lines(source)
    margins = [_margin(line) for i, line in enumerate(lines) if i not in literal and line.strip()]
    margin = os.path.commonprefix(margins) if margins else ""
    return "\n".join(
        line if i in literal else line[len(margin) :] if line.strip() else "" for i, line in enumerate(lines)
    )


def indent_source(source: str, prefix: str) -> str:
    """`textwrap.indent` that leaves the inside of multi-line string literals alone."""
    literal = string_continuation_lines(source)
    return "\n".join(
        prefix + line if i not in literal and line.strip() else line for i, line in enumerate(source.split("\n"))
    )


def normalize_body(body: str) -> str:
    """Dedent a body and drop surrounding blank lines.

    This is the only normalization a body ever gets; its contents are never parsed.
    """
    lines = dedent_source(body).split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines)


def _check_identifier(value: typing.Any, field: str) -> None:
    if not isinstance(value, str) or not value.isidentifier() or keyword.iskeyword(value):
        raise MalformedRequest(field, f"expected an identifier, got {value!r}")


def _check_parameters(parameters: tuple[Parameter, ...], kind: Kind) -> None:
    if parameters and kind is Kind.IMMEDIATE_BLOCK:
        raise MalformedRequest("parameters", "an immediate block takes no parameters")

    seen: set[str] = set()
    last_kind = POSITIONAL_ONLY
    seen_default = False
    for i, param in enumerate(parameters):
        field = f"parameters[{i}]"
        if not isinstance(param, Parameter):
            raise MalformedRequest(field, f"expected an (identifier, type) pair, got {param!r}")
        _check_identifier(param.name, field)
        if param.name in seen:
            raise MalformedRequest(field, f"duplicate parameter name {param.name!r}")
        seen.add(param.name)

        if param.annotation is None and not (i == 0 and param.name in _IMPLICIT_RECEIVERS):
            raise MalformedRequest(field, f"parameter {param.name!r} has no type")
        if param.default is not None:
            if param.kind in (VAR_POSITIONAL, VAR_KEYWORD):
                raise MalformedRequest(field, f"variadic parameter {param.name!r} cannot have a default")
            _parse_expression(param.default, field, "default value")

        if param.kind < last_kind or (param.kind == last_kind and param.kind in (VAR_POSITIONAL, VAR_KEYWORD)):
            raise MalformedRequest(field, f"{param.kind.description} parameter {param.name!r} is out of order")
        last_kind = param.kind

        if param.kind in (POSITIONAL_ONLY, POSITIONAL_OR_KEYWORD):
            if param.default is not None:
                seen_default = True
            elif seen_default:
                raise MalformedRequest(field, f"non-default parameter {param.name!r} follows a default parameter")


@dataclasses.dataclass(frozen=True)
class SynthesisRequest:
    """Canonical description of one construct to synthesize.

    Invariants (checked on construction, including through `dataclasses.replace`):
        - `name` is present iff `kind` is not `Kind.IMMEDIATE_BLOCK`
        - `error_type`, if present, is paired with a result-bearing `return_type`
    """

    mode: Mode
    kind: Kind
    name: Optional[str]
    parameters: tuple[Parameter, ...] = ()
    return_type: Optional[TypeRef] = None
    error_type: Optional[TypeRef] = None
    body: str = ""
    decorators: tuple[str, ...] = ()

    def __post_init__(self):
        if not isinstance(self.mode, Mode):
            raise MalformedRequest("mode", f"expected a Mode, got {self.mode!r}")
        if not isinstance(self.kind, Kind):
            raise MalformedRequest("kind", f"expected a Kind, got {self.kind!r}")

        if self.kind is Kind.IMMEDIATE_BLOCK:
            if self.name is not None:
                raise MalformedRequest("name", "an immediate block cannot be named")
        elif self.name is None:
            raise MalformedRequest("name", f"a name is required for kind {self.kind.value!r}")
        else:
            _check_identifier(self.name, "name")

        _check_parameters(self.parameters, self.kind)

        if self.error_type is not None:
            if self.return_type is None or not self.return_type.is_result:
                shown = self.return_type.text if self.return_type is not None else None
                raise MalformedRequest(
                    "error_type",
                    f"error type {self.error_type.text!r} requires a result-bearing return type "
                    f"(Result[Ok, Err]), got {shown!r}",
                )

        if not isinstance(self.body, str):
            raise MalformedRequest("body", f"expected source text, got {type(self.body).__name__}")

        for i, decorator in enumerate(self.decorators):
            _parse_expression(decorator, f"decorators[{i}]", "decorator")

    @property
    def effective_return_type(self) -> Optional[TypeRef]:
        """Return type with the configured error type substituted in, if any."""
        if self.error_type is not None and self.return_type is not None:
            return self.return_type.with_error(self.error_type)
        return self.return_type


@dataclasses.dataclass(frozen=True)
class GeneratedArtifact:
    """One synthesized construct, ready for the surrounding program to place.

    `definition` holds the statements to place and `expression` is what yields the
    artifact's value at the placement site: the bound name for functions and
    closures, the invocation for immediate blocks.
    """

    mode: Mode
    kind: Kind
    name: Optional[str]
    definition: str
    expression: str
    body: str
    result_annotation: Optional[str] = None

    @property
    def source(self) -> str:
        if self.kind is Kind.IMMEDIATE_BLOCK:
            return f"{self.definition}\n\n{self.expression}\n"
        return f"{self.definition}\n"

    def __str__(self) -> str:
        return self.source


class RequestBuilder:
    """Fluent builder for `SynthesisRequest`.

    Example:
        ```python
        request = (
            RequestBuilder()
            .mode("async")
            .kind("function")
            .name("fetch")
            .parameter("url", "str")
            .returns("bytes")
            .body("return await download(url)")
            .build()
        )
        ```
    """

    def __init__(self):
        self._mode: Optional[Mode] = None
        self._kind: Optional[Kind] = None
        self._name: Optional[str] = None
        self._parameters: list[Parameter] = []
        self._return_type: Optional[TypeRef] = None
        self._error_type: Optional[TypeRef] = None
        self._body: Optional[str] = None
        self._decorators: list[str] = []

    def mode(self, mode: Union[Mode, str]) -> typing_extensions.Self:
        self._mode = Mode.parse(mode)
        return self

    def kind(self, kind: Union[Kind, str]) -> typing_extensions.Self:
        self._kind = Kind.parse(kind)
        return self

    def name(self, name: Optional[str]) -> typing_extensions.Self:
        self._name = name
        return self

    def parameter(
        self,
        name: str,
        annotation: Union[TypeRef, str, None] = None,
        default: Optional[str] = None,
        kind: inspect._ParameterKind = POSITIONAL_OR_KEYWORD,
    ) -> typing_extensions.Self:
        field = f"parameters[{len(self._parameters)}]"
        type_ref = TypeRef.parse(annotation, field) if annotation is not None else None
        self._parameters.append(Parameter(name, type_ref, default, kind))
        return self

    def parameters(self, parameters: Iterable[Parameter]) -> typing_extensions.Self:
        self._parameters.extend(parameters)
        return self

    def returns(self, return_type: Union[TypeRef, str, None]) -> typing_extensions.Self:
        self._return_type = TypeRef.parse(return_type, "return_type") if return_type is not None else None
        return self

    def error_type(self, error_type: Union[TypeRef, str, None]) -> typing_extensions.Self:
        self._error_type = TypeRef.parse(error_type, "error_type") if error_type is not None else None
        return self

    def body(self, body: str) -> typing_extensions.Self:
        if not isinstance(body, str):
            raise MalformedRequest("body", f"expected source text, got {type(body).__name__}")
        self._body = normalize_body(body)
        return self

    def decorator(self, decorator: str) -> typing_extensions.Self:
        self._decorators.append(decorator.strip().lstrip("@").strip())
        return self

    def build(self) -> SynthesisRequest:
        if self._mode is None:
            raise MalformedRequest("mode", "a mode is required ('sync' or 'async')")
        if self._kind is None:
            raise MalformedRequest("kind", "a kind is required ('function', 'closure' or 'block')")
        if self._body is None:
            raise MalformedRequest("body", "a body is required")
        return SynthesisRequest(
            mode=self._mode,
            kind=self._kind,
            name=self._name,
            parameters=tuple(self._parameters),
            return_type=self._return_type,
            error_type=self._error_type,
            body=self._body,
            decorators=tuple(self._decorators),
        )


@dataclasses.dataclass(frozen=True)
class TwinOptions:
    """Configuration recognized by twin derivation.

    Attributes:
        error_type: Replaces the error component of the twin's return type. Unset keeps
            the primary's error type.
        async_name: Name for the twin. Unset derives `<name>_async`.
    """

    error_type: Optional[TypeRef] = None
    async_name: Optional[str] = None

    def __post_init__(self):
        if self.error_type is not None and not isinstance(self.error_type, TypeRef):
            object.__setattr__(self, "error_type", TypeRef.parse(self.error_type, "error_type"))
        if self.async_name is not None:
            _check_identifier(self.async_name, "async_name")

    def merge(self, other: "TwinOptions") -> "TwinOptions":
        """Combine two option sets; whatever `other` sets wins."""
        return TwinOptions(
            error_type=other.error_type if other.error_type is not None else self.error_type,
            async_name=other.async_name if other.async_name is not None else self.async_name,
        )
