"""Registered functions that rely on module internals and on options given outside the source."""

from flexifunc import Module, Result

__all__ = ["banner", "doubled", "parse", "parse_strict", "wrapper_module"]

wrapper_module = Module("private_generated")
twin_with_custom_error = wrapper_module.twin(error_type="AsyncParseError")

_SCALE = 2


class ParseError(Exception):
    pass


class AsyncParseError(Exception):
    pass


def _double(x: int) -> int:
    return x * _SCALE


@wrapper_module.twin
def doubled(x: int) -> int:
    return _double(x)


@wrapper_module.twin
def banner(title: str) -> str:
    underline = "=" * len(title)
    return f"""{title}
{underline}
done"""


def parse(text: str) -> Result[int, ParseError]:
    if not text.isdigit():
        return ParseError(text)
    return int(text)


wrapper_module.twin(parse, error_type=AsyncParseError, async_name="parse_later")


@twin_with_custom_error
def parse_strict(text: str) -> Result[int, ParseError]:
    return int(text) if text.isdigit() else ParseError(text)
