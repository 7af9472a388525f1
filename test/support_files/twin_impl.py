"""Synchronous functions registered for twin generation."""

from flexifunc import Module, Result

wrapper_module = Module("twin_generated")


class ParseError(Exception):
    pass


class AsyncParseError(Exception):
    pass


@wrapper_module.twin
def add(a: int, b: int) -> int:
    """Add two numbers."""
    return a + b


@wrapper_module.twin(error_type="AsyncParseError", async_name="parse_number_aio")
def parse_number(text: str) -> Result[int, ParseError]:
    # errors are returned, not raised
    if not text.isdigit():
        return ParseError(text)
    return int(text)


def not_registered(x: int) -> int:
    return x
