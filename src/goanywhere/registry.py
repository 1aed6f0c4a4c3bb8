"""Process-wide plugin registry.

Built-in plugins register when the package is imported and the table is not
changed afterwards. A single RLock serializes every read and write.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from .errors import PluginNotFoundError, RegistryError
from .plugin import Plugin

PluginFactory = Callable[[bool], Plugin]

_LOCK = threading.RLock()
_REGISTRY: dict[str, PluginFactory] = {}


def register(name: str, factory: PluginFactory | None) -> None:
    """Add a plugin factory. Misconfiguration is a programming error and raises RegistryError."""
    with _LOCK:
        if factory is None:
            raise RegistryError("register: factory is nil")
        if name in _REGISTRY:
            raise RegistryError(f"register called twice for plugin {name}")
        _REGISTRY[name] = factory


def get(name: str, verbose: bool = False) -> Plugin:
    with _LOCK:
        factory = _REGISTRY.get(name)
    if factory is None:
        raise PluginNotFoundError(name, list_plugins())
    return factory(verbose)


def list_plugins() -> list[str]:
    with _LOCK:
        return sorted(_REGISTRY)


def has(name: str) -> bool:
    with _LOCK:
        return name in _REGISTRY
