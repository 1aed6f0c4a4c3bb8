from __future__ import annotations

import os
import sys


def shared_lib_extension() -> str:
    """Shared library suffix for the host (override with ``GOANYWHERE_GOOS``)."""
    goos = os.environ.get("GOANYWHERE_GOOS")
    if goos is None:
        if sys.platform.startswith("win"):
            goos = "windows"
        elif sys.platform == "darwin":
            goos = "darwin"
        else:
            goos = "linux"
    if goos == "windows":
        return ".dll"
    if goos == "darwin":
        return ".dylib"
    return ".so"
