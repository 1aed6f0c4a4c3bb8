from __future__ import annotations

import argparse
import importlib.metadata
import logging
import sys
from dataclasses import replace
from pathlib import Path

from . import registry
from .errors import GoAnywhereError
from .ircodec import decode_package, encode_package
from .model import ParsedPackage
from .parser import parse_package
from .paths import infer_import_path
from .plugin import BuildOptions
from .plugins.python.packaging import BUILD_SYSTEMS

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    plugins = ", ".join(registry.list_plugins())
    parser = argparse.ArgumentParser(prog="goanywhere", description="Go bindings generator.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version", help="Print goanywhere version.")
    sub.add_parser("plugins", help="List registered plugins.")

    p_gen = sub.add_parser("generate", help="Generate plugin code for a Go package.")
    p_gen.add_argument("input", help="Go package directory, or an IR snapshot written by `inspect`.")
    p_gen.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output file path (default: <input>/<plugin>_plugin/main.go).",
    )
    p_gen.add_argument("-i", "--import-path", default=None, help="Import path of the package (default: from go.mod).")
    p_gen.add_argument("-p", "--plugin", default="cgo", help=f"Plugin to generate with ({plugins}).")
    p_gen.add_argument("-v", "--verbose", action="store_true", help="Report skipped declarations.")

    p_build = sub.add_parser("build", help="Generate and build plugin code for a Go package.")
    p_build.add_argument("input", help="Go package directory.")
    p_build.add_argument("-o", "--output", default=None, help="Output directory (default: <input>/<plugin>_build).")
    p_build.add_argument("-i", "--import-path", default=None, help="Import path of the package (default: from go.mod).")
    p_build.add_argument("-p", "--plugin", default="cgo", help=f"Plugin to build with ({plugins}).")
    p_build.add_argument(
        "--build-system",
        default="setuptools",
        help=f"Python packaging backend ({', '.join(BUILD_SYSTEMS)}).",
    )
    p_build.add_argument("--lib-name", default="", help="Shared library name (default: lib<package>).")
    p_build.add_argument("-v", "--verbose", action="store_true", help="Verbose output.")

    p_inspect = sub.add_parser("inspect", help="Write the parsed package IR as a MessagePack snapshot.")
    p_inspect.add_argument("input", help="Go package directory.")
    p_inspect.add_argument("--out", default=None, help="Snapshot path (default: print a summary only).")
    p_inspect.add_argument("-i", "--import-path", default=None, help="Import path of the package (default: from go.mod).")
    p_inspect.add_argument("-v", "--verbose", action="store_true", help="Report skipped declarations.")

    args = parser.parse_args(argv)
    verbose = bool(getattr(args, "verbose", False))
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING, format="%(message)s")

    try:
        _dispatch(args, verbose)
    except GoAnywhereError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1) from e


def _dispatch(args: argparse.Namespace, verbose: bool) -> None:
    if args.cmd == "version":
        try:
            print(importlib.metadata.version("goanywhere"))
        except importlib.metadata.PackageNotFoundError:
            print("0.0.0")
        return

    if args.cmd == "plugins":
        for name in registry.list_plugins():
            print(name)
        return

    if args.cmd == "generate":
        plugin = registry.get(args.plugin, verbose)
        input_path = Path(args.input).resolve()
        pkg = _load_package(input_path, args.import_path, verbose)
        code = plugin.generate(pkg)

        if args.output:
            out = Path(args.output)
        else:
            base = input_path if input_path.is_dir() else input_path.parent
            file_name = f"{pkg.name}.py" if plugin.name() == "python" else "main.go"
            out = base / f"{plugin.name()}_plugin" / file_name
        out = out.resolve()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(code)

        print(f"Generated {plugin.name()} plugin: {out}")
        if plugin.name() == "cgo":
            print("\nTo build as shared library:")
            print(f"  CGO_ENABLED=1 go build -buildmode=c-shared -o lib{pkg.name}.so {out}")
        return

    if args.cmd == "build":
        plugin = registry.get(args.plugin, verbose)
        input_path = Path(args.input).resolve()
        if not input_path.is_dir():
            raise GoAnywhereError(f"input path is not a directory: {input_path}")
        pkg = _load_package(input_path, args.import_path, verbose)
        out_dir = Path(args.output) if args.output else input_path / f"{plugin.name()}_build"
        opts = BuildOptions(
            output_dir=out_dir.resolve(),
            library_name=args.lib_name,
            build_system=args.build_system,
            verbose=verbose,
        )
        result = plugin.build(pkg, input_path, opts)
        print(f"Built {plugin.name()} plugin: {result}")
        return

    if args.cmd == "inspect":
        input_path = Path(args.input).resolve()
        pkg = _load_package(input_path, args.import_path, verbose, require_import_path=False)
        print(f"Package: {pkg.name}")
        print(f"Import path: {pkg.import_path or '<unknown>'}")
        for fn in pkg.functions:
            print(f"  - Function: {fn.name}")
        for st in pkg.structs:
            print(f"  - Struct: {st.name} ({len(st.methods)} methods)")
        if args.out:
            out = Path(args.out)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(encode_package(pkg))
            print(f"Wrote IR snapshot: {out}")
        return


def _load_package(
    input_path: Path,
    import_path: str | None,
    verbose: bool,
    *,
    require_import_path: bool = True,
) -> ParsedPackage:
    if input_path.is_file():
        pkg = decode_package(input_path.read_bytes())
    elif input_path.is_dir():
        logger.info("Parsing package at: %s", input_path)
        pkg = parse_package(input_path, verbose=verbose)
    else:
        raise GoAnywhereError(f"cannot access input: {input_path}")

    if import_path:
        pkg = replace(pkg, import_path=import_path)
    elif not pkg.import_path:
        source_dir = Path(pkg.dir) if pkg.dir else input_path
        try:
            pkg = replace(pkg, import_path=infer_import_path(source_dir))
        except GoAnywhereError as e:
            if require_import_path:
                raise GoAnywhereError("could not determine import path: use --import-path flag") from e

    logger.info("Package: %s", pkg.name)
    logger.info("Import path: %s", pkg.import_path)
    logger.info("Functions: %d", len(pkg.functions))
    logger.info("Structs: %d", len(pkg.structs))
    return pkg
