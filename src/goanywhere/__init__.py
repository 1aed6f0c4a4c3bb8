"""goanywhere: generate C-ABI and Python ctypes bindings for Go packages."""

from __future__ import annotations

import importlib.metadata

from . import errors, registry
from .ircodec import decode_package, encode_package
from .model import ParsedPackage
from .parser import Parser, parse_package
from .plugin import BuildOptions, Plugin
from .plugins.cgo import plugin as _cgo  # noqa: F401  (registers "cgo")
from .plugins.python import plugin as _python  # noqa: F401  (registers "python")

try:
    __version__ = importlib.metadata.version("goanywhere")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "BuildOptions",
    "ParsedPackage",
    "Parser",
    "Plugin",
    "decode_package",
    "encode_package",
    "errors",
    "parse_package",
    "registry",
]
