from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .model import ParsedPackage


@dataclass(frozen=True)
class BuildOptions:
    output_dir: Path
    # Overrides the default library name (lib<package>).
    library_name: str = ""
    # Python packaging backend: setuptools, hatch, poetry or uv.
    build_system: str = "setuptools"
    verbose: bool = False


class Plugin(Protocol):
    """A code emitter for one target language."""

    def name(self) -> str:
        ...

    def generate(self, pkg: ParsedPackage) -> bytes:
        """Produce the glue source for ``pkg``."""
        ...

    def build(self, pkg: ParsedPackage, input_path: Path, opts: BuildOptions) -> Path:
        """Generate, compile and package; return the output directory."""
        ...
