from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path

from ..errors import BuildError
from ..paths import find_module_root, read_module_path

logger = logging.getLogger(__name__)

GO_ENV = "GOANYWHERE_GO"

_GO_TRANSIENT_NET_RE = re.compile(
    r"("
    r"proxy\.golang\.org"
    r"|sum\.golang\.org"
    r"|connection (?:attempt failed|reset)"
    r"|i/o timeout"
    r"|tls handshake timeout"
    r"|no such host"
    r")",
    re.IGNORECASE,
)


def go_executable() -> str:
    return os.environ.get(GO_ENV) or "go"


def _go_network_hint(out: str) -> str | None:
    if not _GO_TRANSIENT_NET_RE.search(out):
        return None
    return (
        "\n\nHint: Go module download failed due to a network/proxy error. "
        "Try re-running the command, or set `GOPROXY=direct` if the proxy is unreachable."
    )


def _run(cmd: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> str:
    prog = cmd[0] if cmd else "<unknown>"
    logger.debug("running %s in %s", " ".join(cmd), cwd)
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=False,
            check=False,
        )
    except FileNotFoundError as e:
        if prog == go_executable():
            raise BuildError(
                f"Go toolchain not found (`{prog}` is missing from PATH). "
                f"Install Go, or point {GO_ENV} at the go executable."
            ) from e
        raise BuildError(f"command not found: {prog}") from e

    stdout = (proc.stdout or b"").decode("utf-8", errors="replace")
    stderr = (proc.stderr or b"").decode("utf-8", errors="replace")
    if proc.returncode == 0:
        return stdout

    out = "\n".join([s for s in [stdout.strip("\n"), stderr.strip("\n")] if s]) + "\n"
    hint = _go_network_hint(out)
    if hint:
        out = out.rstrip("\n") + hint + "\n"
    raise BuildError(f"command failed: {' '.join(cmd)}\n{out}")


def _bridge_go_mod(*, bridge_dir: Path, module_path: str, module_dir: Path) -> None:
    lines = [
        "module goanywhere.bridge",
        "",
        "go 1.21",
        "",
        f"require {module_path} v0.0.0",
        "",
        f"replace {module_path} => {module_dir.as_posix()}",
        "",
    ]
    (bridge_dir / "go.mod").write_text("\n".join(lines), encoding="utf-8")


def build_shared_library(
    *,
    bridge_dir: Path,
    module_dir: Path,
    import_path: str,
    output: Path,
) -> Path:
    """Compile the glue in ``bridge_dir`` into a C shared library at ``output``.

    The bridge gets its own go.mod that requires the package's module and
    replaces it with the local checkout, so unpublished code builds too.
    """
    module_root = find_module_root(module_dir)
    module_path = read_module_path(module_root)
    if import_path and import_path != module_path and not import_path.startswith(module_path + "/"):
        raise BuildError(f"import path {import_path} is not inside module {module_path} ({module_root})")

    bridge_dir = Path(bridge_dir)
    output = Path(output).resolve()
    output.parent.mkdir(parents=True, exist_ok=True)
    _bridge_go_mod(bridge_dir=bridge_dir, module_path=module_path, module_dir=module_root)

    env = dict(os.environ)
    env["CGO_ENABLED"] = "1"
    go = go_executable()
    _run([go, "mod", "tidy"], cwd=bridge_dir, env=env)
    _run([go, "build", "-buildmode=c-shared", "-o", str(output), "."], cwd=bridge_dir, env=env)
    logger.info("Wrote %s", output)
    return output
