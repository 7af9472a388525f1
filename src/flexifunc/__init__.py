from .exceptions import FlexifuncError, MalformedRequest
from .module import Module
from .request import GeneratedArtifact, Kind, Mode, Parameter, RequestBuilder, SynthesisRequest, TwinOptions, TypeRef
from .runtime import Result, materialize

__all__ = [
    "FlexifuncError",
    "GeneratedArtifact",
    "Kind",
    "MalformedRequest",
    "Mode",
    "Module",
    "Parameter",
    "RequestBuilder",
    "Result",
    "SynthesisRequest",
    "TwinOptions",
    "TypeRef",
    "materialize",
]
