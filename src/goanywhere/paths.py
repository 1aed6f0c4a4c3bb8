from __future__ import annotations

from pathlib import Path

from .errors import BuildError


def find_module_root(start: str | Path) -> Path:
    """Return the nearest directory at or above ``start`` containing go.mod."""
    p = Path(start).resolve()
    while True:
        if (p / "go.mod").exists():
            return p
        if p.parent == p:
            break
        p = p.parent
    raise BuildError(f"go.mod not found in {start} or any parent directory")


def read_module_path(module_dir: Path) -> str:
    go_mod = module_dir / "go.mod"
    if not go_mod.exists():
        raise BuildError(f"go.mod not found in {module_dir}")
    for line in go_mod.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line.startswith("module "):
            return line.split()[1].strip('"')
    raise BuildError("failed to parse module path from go.mod")


def infer_import_path(directory: str | Path) -> str:
    """Derive a package's import path from the enclosing module's go.mod.

    ``<module>/<dir relative to the module root>``; the module path alone
    when ``directory`` is the module root.
    """
    path = Path(directory).resolve()
    root = find_module_root(path)
    module = read_module_path(root)
    rel = path.relative_to(root).as_posix()
    if rel in ("", "."):
        return module
    return f"{module}/{rel}"
