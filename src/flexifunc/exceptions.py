class FlexifuncError(Exception):
    """Base class for errors raised by flexifunc."""


class MalformedRequest(FlexifuncError, ValueError):
    """Raised when an invocation does not match a recognized request shape.

    Always raised at parse time, before any code is generated, so that an
    artifact with an unintended shape is never produced.
    """

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")
