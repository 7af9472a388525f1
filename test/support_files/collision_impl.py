"""Two registered functions whose generated names collide."""

from flexifunc import Module

wrapper_module = Module("collision_generated")


@wrapper_module.twin
def fetch(url: str) -> str:
    return url


@wrapper_module.twin
def fetch_async(url: str) -> str:
    return url.upper()
