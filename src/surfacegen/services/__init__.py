"""Service composition helpers."""

from .container import EngineContainer, build_container

__all__ = ["EngineContainer", "build_container"]
