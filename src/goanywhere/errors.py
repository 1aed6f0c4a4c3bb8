"""Domain-specific errors for goanywhere."""

from __future__ import annotations


class GoAnywhereError(Exception):
    """Base error for goanywhere."""


class ParseError(GoAnywhereError):
    """Raised when a Go package cannot be read or contains invalid syntax."""


class UnsupportedTypeError(GoAnywhereError):
    """Raised when a type cannot be carried across the C boundary."""

    def __init__(self, type: str, reason: str):
        super().__init__(f"unsupported type {type}: {reason}")
        self.type = type
        self.reason = reason


class UnsupportedSignatureError(GoAnywhereError):
    """Raised when a function or method signature cannot be exported as a whole."""


class IRDecodeError(GoAnywhereError):
    """Raised when an IR snapshot cannot be decoded from MessagePack."""


class BuildError(GoAnywhereError):
    """Raised when compiling or packaging generated code fails."""


class PluginNotFoundError(GoAnywhereError):
    """Raised when a plugin name is not registered."""

    def __init__(self, name: str, available: list[str]):
        super().__init__(f"unknown plugin: {name} (available: {', '.join(available) or 'none'})")
        self.name = name
        self.available = list(available)


class RegistryError(GoAnywhereError):
    """Raised on plugin registry misconfiguration (nil or duplicate factory)."""
