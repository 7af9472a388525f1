"""Module class for build-time registration of functions to twin.

The Module class provides a lightweight way to mark synchronous functions that
should get an async twin generated. It has zero runtime overhead - it simply
tracks what should be compiled during the build step.
"""

import types
import typing
from typing import Callable, Optional, Union

from .request import TwinOptions

F = typing.TypeVar("F", bound=types.FunctionType)


class Registration(typing.NamedTuple):
    target_module: str
    name: str
    options: TwinOptions


class Module:
    """Lightweight build-time registration for twin generation.

    Example:
        ```python
        from flexifunc import Module

        wrapper_module = Module("my_lib.io")

        @wrapper_module.twin
        def read_config(path: str) -> dict:
            ...

        @wrapper_module.twin(error_type="ConfigError")
        def parse_config(text: str) -> Result[dict, ValueError]:
            ...
        ```

    Running `flexifunc -m my_lib._io` then writes `my_lib/io.py` containing each
    function together with its `_async` twin.

    Note:
        The registry is class-level so it persists across module reloads. The options
        passed to `twin(...)` are stored with the registration and take precedence over
        anything read back from the function's source.
    """

    # Class-level registry that persists across module reloads
    _global_registered_functions: dict[types.FunctionType, Registration] = {}

    _target_module: str

    def __init__(self, target_module: Optional[str]):
        if not target_module:
            raise ValueError("Module needs the name of the module to generate")

        self._target_module: str = target_module

    @property
    def target_module(self) -> str:
        """Get the target module name for code generation."""
        return self._target_module

    def module_items(self) -> dict[types.FunctionType, Registration]:
        """Get all registered functions with their registration.

        If multiple functions (from different reload cycles) map to the same name,
        only the most recent one is returned.
        """
        by_name: dict[str, tuple[types.FunctionType, Registration]] = {}
        for f, registration in self._global_registered_functions.items():
            if registration.target_module == self._target_module:
                # Later registrations overwrite earlier ones (desired for reloads)
                by_name[registration.name] = (f, registration)

        return dict(by_name.values())

    def twin(
        self,
        f: Optional[F] = None,
        *,
        error_type: Union[str, type, None] = None,
        async_name: Optional[str] = None,
    ) -> Union[F, Callable[[F], F]]:
        """Decorator to mark a synchronous function for twin generation.

        Can be used bare (`@module.twin`), with options
        (`@module.twin(error_type="MyError", async_name="fetch")`) or as a plain call
        (`module.twin(fetch, async_name="fetch_later")`). Returns the function unchanged.

        Raises:
            MalformedRequest: If an option is not usable in generated code
        """
        if isinstance(error_type, type):
            error_type = error_type.__qualname__
        options = TwinOptions(error_type=error_type, async_name=async_name)

        def register(f: F) -> F:
            self._global_registered_functions[f] = Registration(self._target_module, f.__name__, options)
            return f

        register._flexifunc_module = self  # type: ignore[attr-defined]

        if f is not None:
            return register(f)
        return register


def is_registering_decorator(obj: typing.Any) -> bool:
    """Whether `obj` is `Module.twin` or a decorator returned by `Module.twin(...)`."""
    if getattr(obj, "__func__", None) is Module.twin:
        return True
    return isinstance(getattr(obj, "_flexifunc_module", None), Module)
