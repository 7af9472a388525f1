"""Utilities for formatting function signatures from request parameters."""

from typing import Optional, Sequence

from ..request import KEYWORD_ONLY, POSITIONAL_ONLY, POSITIONAL_OR_KEYWORD, VAR_POSITIONAL, Parameter


def format_parameters(parameters: Sequence[Parameter]) -> str:
    """
    Format a parameter list, inserting the `/` and `*` markers where the kinds require them.

    Args:
        parameters: Parameters in declaration order

    Returns:
        Comma-separated parameter list without surrounding parentheses
    """
    rendered = []
    has_positional_only = any(p.kind == POSITIONAL_ONLY for p in parameters)
    seen_positional_only_end = not has_positional_only
    seen_var_positional = False

    for param in parameters:
        # Close the positional-only section before the first parameter of another kind
        if not seen_positional_only_end and param.kind != POSITIONAL_ONLY:
            rendered.append("/")
            seen_positional_only_end = True

        if param.kind == VAR_POSITIONAL:
            seen_var_positional = True
        elif param.kind == KEYWORD_ONLY and not seen_var_positional:
            rendered.append("*")
            seen_var_positional = True

        rendered.append(param.render())

    if not seen_positional_only_end:
        rendered.append("/")

    return ", ".join(rendered)


def format_callable_type(parameters: Sequence[Parameter], result: Optional[str]) -> str:
    """
    Format a `typing.Callable[...]` annotation for a closure with the given parameters.

    Only plain positional parameters without defaults can be spelled out as an argument
    list; any other shape falls back to `typing.Callable[..., R]`.

    Args:
        parameters: The closure's parameters
        result: The declared result annotation, or None for an unannotated result

    Returns:
        Callable annotation string
    """
    result_str = result if result is not None else "typing.Any"
    simple = all(
        p.kind in (POSITIONAL_ONLY, POSITIONAL_OR_KEYWORD) and p.default is None and p.annotation is not None
        for p in parameters
    )
    if not simple:
        return f"typing.Callable[..., {result_str}]"
    arg_types = ", ".join(p.annotation.text for p in parameters)
    return f"typing.Callable[[{arg_types}], {result_str}]"
