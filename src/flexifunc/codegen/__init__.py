"""Code generation package for flexifunc."""

from .compile import compile_module, compile_modules, synthesize, synthesize_all
from .parser import TwinInvocation, parse_construct, parse_function, parse_parameters, parse_tuple
from .twin import ASYNC_SUFFIX, TwinArtifacts, derive_twin, synthesize_twin, twin_from_source

__all__ = [
    # Request parser
    "TwinInvocation",
    "parse_construct",
    "parse_function",
    "parse_parameters",
    "parse_tuple",
    # Variant synthesizer
    "synthesize",
    "synthesize_all",
    "compile_module",
    "compile_modules",
    # Twin deriver
    "ASYNC_SUFFIX",
    "TwinArtifacts",
    "derive_twin",
    "synthesize_twin",
    "twin_from_source",
]
