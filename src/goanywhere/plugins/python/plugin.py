"""Python emitter: a ctypes module that drives the cgo shared library."""

from __future__ import annotations

import logging
import re
import tempfile
from pathlib import Path

from ... import registry
from ...builder.build import build_shared_library
from ...builder.platform import shared_lib_extension
from ...callconv import (
    AccessorExport,
    FunctionExport,
    MethodExport,
    Signature,
    Slot,
    StructExport,
    plan_exports,
)
from ...model import ParsedPackage
from ...naming import py_identifier, to_snake_case
from ...plugin import BuildOptions
from .mapper import CTYPES_NAMES, HANDLE_CTYPE, RESERVED_NAMES, PyType, TypeMapper, py_class_name
from .packaging import generate_pyproject_toml

logger = logging.getLogger(__name__)

GENERATED_HEADER = "# Code generated by goanywhere. DO NOT EDIT."

_CTYPE_TOKEN = re.compile(r"\bc_[a-z0-9_]+\b")
_ALWAYS_IMPORTED = ("CDLL", "POINTER", "byref", "c_size_t", "c_void_p", "cast", "string_at")

_PRELUDE = '''\
_lib: CDLL | None = None


class GoError(Exception):
    """Error returned by a Go function."""


def load_library(path: str | os.PathLike[str] | None = None) -> CDLL:
    """Load and configure the shared library.

    Without ``path`` the library is taken from ``GOANYWHERE_LIBRARY`` or
    searched next to this module as ``.so``, ``.dylib`` or ``.dll``.
    """
    global _lib
    if path is None and _lib is not None:
        return _lib
    if path is None:
        path = os.environ.get("GOANYWHERE_LIBRARY") or _find_library()
    lib = CDLL(str(path))
    _configure(lib)
    _lib = lib
    return lib


def _find_library() -> str:
    here = Path(__file__).resolve().parent
    for ext in (".so", ".dylib", ".dll"):
        candidate = here / f"{_LIBRARY_NAME}{ext}"
        if candidate.exists():
            return str(candidate)
    raise OSError(
        f"cannot find {_LIBRARY_NAME}.so, .dylib or .dll in {here}; "
        "set GOANYWHERE_LIBRARY or call load_library(path)"
    )


def _get_lib() -> CDLL:
    if _lib is None:
        return load_library()
    return _lib


def _encode_string(s: str) -> bytes:
    return s.encode("utf-8")


def _decode_string(ptr: int | None) -> str:
    if not ptr:
        return ""
    try:
        return string_at(ptr).decode("utf-8")
    finally:
        _get_lib().Free_String(ptr)


def _check_error(err: c_void_p) -> None:
    if err.value:
        raise GoError(_decode_string(err.value))


def _take_bytes(ptr: int | None, n: int) -> bytes:
    if not ptr:
        return b""
    try:
        return string_at(ptr, n)
    finally:
        _get_lib().Free_Bytes(ptr)


def _take_array(ptr, n: int, convert) -> list:
    if not ptr:
        return []
    try:
        return [convert(ptr[i]) for i in range(n)]
    finally:
        _get_lib().Free_Bytes(cast(ptr, c_void_p))


def _take_pointer(ptr, convert):
    if not ptr:
        return None
    try:
        return convert(ptr[0])
    finally:
        _get_lib().Free_Bytes(cast(ptr, c_void_p))


def _wrap(cls, handle: int | None):
    if not handle:
        return None
    return cls._from_handle(handle)


class GoObject:
    """Opaque reference to a Go value that has no Python class."""

    def __init__(self, handle: int):
        self._handle = handle

    @classmethod
    def _from_handle(cls, handle: int) -> GoObject:
        return cls(handle)

    def _release(self) -> None:
        handle, self._handle = getattr(self, "_handle", 0), 0
        if handle and _lib is not None:
            _lib.Free_Handle(handle)

    def __del__(self) -> None:
        self._release()
'''


class PythonPlugin:
    def __init__(self, verbose: bool = False, library_name: str = ""):
        self.verbose = verbose
        self.library_name = library_name

    def name(self) -> str:
        return "python"

    def generate(self, pkg: ParsedPackage) -> bytes:
        lib_name = self.library_name or f"lib{pkg.name}"
        return _Emitter(pkg, lib_name, verbose=self.verbose).emit().encode("utf-8")

    def build(self, pkg: ParsedPackage, input_path: Path, opts: BuildOptions) -> Path:
        out_dir = Path(opts.output_dir)
        lib_name = opts.library_name or self.library_name or f"lib{pkg.name}"
        lib_file = f"{lib_name}{shared_lib_extension()}"
        pkg_dir = out_dir / pkg.name
        pkg_dir.mkdir(parents=True, exist_ok=True)

        glue = registry.get("cgo", self.verbose).generate(pkg)
        with tempfile.TemporaryDirectory(prefix="goanywhere-") as tmp:
            bridge_dir = Path(tmp)
            (bridge_dir / "main.go").write_bytes(glue)
            build_shared_library(
                bridge_dir=bridge_dir,
                module_dir=Path(input_path),
                import_path=pkg.import_path,
                output=pkg_dir / lib_file,
            )

        source = _Emitter(pkg, lib_name, verbose=self.verbose).emit()
        (pkg_dir / "__init__.py").write_text(source, encoding="utf-8")
        (out_dir / "pyproject.toml").write_text(
            generate_pyproject_toml(pkg.name, opts.build_system, lib_file),
            encoding="utf-8",
        )
        if self.verbose or opts.verbose:
            logger.info("Built Python package %s in %s", pkg.name, out_dir)
        return out_dir


class _Emitter:
    def __init__(self, pkg: ParsedPackage, library_name: str, *, verbose: bool):
        self.pkg = pkg
        self.library_name = library_name
        self.mapper = TypeMapper(pkg.struct_names())
        self.plan = plan_exports(pkg, self.mapper.map_type, verbose=verbose)

    def emit(self) -> str:
        configure = [
            "def _configure(lib: CDLL) -> None:",
            "    lib.Free_String.argtypes = [c_void_p]",
            "    lib.Free_String.restype = None",
            "    lib.Free_Bytes.argtypes = [c_void_p]",
            "    lib.Free_Bytes.restype = None",
            f"    lib.Free_Handle.argtypes = [{HANDLE_CTYPE}]",
            "    lib.Free_Handle.restype = None",
        ]
        body: list[str] = []

        for fx in self.plan.functions:
            configure.extend(_prototype(fx.symbol, fx.sig))
            body.extend(["", "", *self._function(fx)])

        for sx in self.plan.structs:
            configure.extend(
                [
                    f"    lib.{sx.new_symbol}.argtypes = []",
                    f"    lib.{sx.new_symbol}.restype = {HANDLE_CTYPE}",
                    f"    lib.{sx.free_symbol}.argtypes = [{HANDLE_CTYPE}]",
                    f"    lib.{sx.free_symbol}.restype = None",
                ]
            )
            for ax in sx.accessors:
                configure.extend(_prototype(ax.getter, ax.getter_sig, receiver=True))
                configure.extend(_prototype(ax.setter, ax.setter_sig, receiver=True))
            for mx in sx.methods:
                configure.extend(_prototype(mx.symbol, mx.sig, receiver=True))
            body.extend(["", "", *self._struct(sx)])

        rest = "\n".join([_PRELUDE, "", *configure, *body, ""])
        names = sorted(set(_ALWAYS_IMPORTED) | (set(_CTYPE_TOKEN.findall(rest)) & CTYPES_NAMES), key=str.lower)

        where = f" ({self.pkg.import_path})" if self.pkg.import_path else ""
        head = [
            GENERATED_HEADER,
            f'"""Python bindings for the Go package {self.pkg.name}{where}."""',
            "",
            "from __future__ import annotations",
            "",
            "import os",
            "from ctypes import (",
            *(f"    {n}," for n in names),
            ")",
            "from pathlib import Path",
            "",
            f"_LIBRARY_NAME = {self.library_name!r}",
        ]
        return "\n".join(head) + "\n" + rest

    # Functions and methods

    def _function(self, fx: FunctionExport[PyType]) -> list[str]:
        name = to_snake_case(fx.func.name)
        if name in RESERVED_NAMES:
            name += "_"
        return self._callable(py_identifier(name), fx.symbol, fx.sig, fx.func.doc, indent="")

    def _callable(
        self,
        py_name: str,
        symbol: str,
        sig: Signature[PyType],
        doc: str,
        *,
        indent: str,
        receiver: bool = False,
        decorator: str = "",
    ) -> list[str]:
        params = ["self"] if receiver else []
        params.extend(f"{_arg_name(s.name)}: {s.desc.py_type}" for s in sig.inputs)
        returns = [s.desc.py_type for s in sig.outputs]
        if sig.ret is not None:
            returns = [sig.ret.desc.py_type]
        if not returns:
            hint = "None"
        elif len(returns) == 1:
            hint = returns[0]
        else:
            hint = f"tuple[{', '.join(returns)}]"

        inner = indent + "    "
        lines: list[str] = []
        if decorator:
            lines.append(indent + decorator)
        lines.append(f"{indent}def {py_name}({', '.join(params)}) -> {hint}:")
        lines.extend(_docstring(doc, inner))

        call_args = ["self._handle"] if receiver else []
        for slot in sig.inputs:
            prelude, args = _lower_arg(slot)
            lines.extend(inner + ln for ln in prelude)
            call_args.extend(args)
        for slot in sig.outputs:
            var = "_" + slot.name
            lines.append(f"{inner}{var} = {slot.desc.ctypes_return_type}()")
            call_args.append(f"byref({var})")
            if slot.desc.has_length:
                lines.append(f"{inner}{var}_len = c_size_t()")
                call_args.append(f"byref({var}_len)")
        if sig.has_error:
            lines.append(f"{inner}_err = c_void_p()")
            call_args.append("byref(_err)")

        call = f"_get_lib().{symbol}({', '.join(call_args)})"
        if sig.ret is not None:
            lines.append(f"{inner}_ret = {call}")
        else:
            lines.append(inner + call)
        if sig.has_error:
            lines.append(f"{inner}_check_error(_err)")

        if sig.ret is not None:
            lines.append(f"{inner}return {_convert_ret(sig.ret)}")
        elif sig.outputs:
            values = [_convert_out(s) for s in sig.outputs]
            if len(values) == 1:
                lines.append(f"{inner}return {values[0]}")
            else:
                lines.append(f"{inner}return ({', '.join(values)})")
        return lines

    # Structs

    def _struct(self, sx: StructExport[PyType]) -> list[str]:
        st = sx.struct
        cls = py_class_name(st.name)
        lines = [f"class {cls}:"]
        if st.doc.strip():
            lines.extend([*_docstring(st.doc, "    "), ""])
        lines.extend(
            [
                "    def __init__(self) -> None:",
                f"        self._handle = _get_lib().{sx.new_symbol}()",
                "",
                "    @classmethod",
                f"    def _from_handle(cls, handle: int) -> {cls}:",
                "        obj = cls.__new__(cls)",
                "        obj._handle = handle",
                "        return obj",
                "",
                "    def _release(self) -> None:",
                '        handle, self._handle = getattr(self, "_handle", 0), 0',
                "        if handle and _lib is not None:",
                f"            _lib.{sx.free_symbol}(handle)",
                "",
                "    def __del__(self) -> None:",
                "        self._release()",
            ]
        )
        if sx.methods:
            lines.extend(
                [
                    "",
                    f"    def __enter__(self) -> {cls}:",
                    "        return self",
                    "",
                    "    def __exit__(self, *exc: object) -> None:",
                    "        self._release()",
                ]
            )
        for ax in sx.accessors:
            lines.append("")
            lines.extend(self._accessor(ax))
        for mx in sx.methods:
            lines.append("")
            lines.extend(self._method(mx))
        return lines

    def _accessor(self, ax: AccessorExport[PyType]) -> list[str]:
        prop = _member_name(ax.field.name)
        getter = self._callable(
            prop, ax.getter, ax.getter_sig, "", indent="    ", receiver=True, decorator="@property"
        )
        setter = self._callable(
            prop, ax.setter, ax.setter_sig, "", indent="    ", receiver=True, decorator=f"@{prop}.setter"
        )
        return [*getter, "", *setter]

    def _method(self, mx: MethodExport[PyType]) -> list[str]:
        m = mx.method
        return self._callable(
            _member_name(m.name),
            mx.symbol,
            mx.sig,
            m.doc,
            indent="    ",
            receiver=True,
        )


def _prototype(symbol: str, sig: Signature[PyType], *, receiver: bool = False) -> list[str]:
    argtypes = [HANDLE_CTYPE] if receiver else []
    for slot in sig.inputs:
        argtypes.append(slot.desc.ctypes_type)
        if slot.desc.has_length:
            argtypes.append("c_size_t")
    for slot in sig.outputs:
        argtypes.append(f"POINTER({slot.desc.ctypes_return_type})")
        if slot.desc.has_length:
            argtypes.append("POINTER(c_size_t)")
    if sig.has_error:
        argtypes.append("POINTER(c_void_p)")
    restype = sig.ret.desc.ctypes_return_type if sig.ret is not None else "None"
    return [
        f"    lib.{symbol}.argtypes = [{', '.join(argtypes)}]",
        f"    lib.{symbol}.restype = {restype}",
    ]


def _arg_name(name: str) -> str:
    if name == "self" or name in RESERVED_NAMES:
        return name + "_"
    return py_identifier(name)


def _member_name(name: str) -> str:
    # Class bodies use @property; a member of that name would rebind it.
    name = py_identifier(to_snake_case(name))
    if name == "property":
        return name + "_"
    return name


def _to_c(expr: str, desc: PyType) -> str:
    """Python value to the ctypes argument for one scalar."""
    if desc.is_string:
        return f"_encode_string({expr})"
    if desc.is_handle:
        if desc.is_nullable:
            return f"({expr}._handle if {expr} is not None else 0)"
        return f"{expr}._handle"
    return expr


def _from_c(desc: PyType) -> str:
    """Callable turning one raw element back into a Python value."""
    if desc.is_string:
        return "_decode_string"
    if desc.is_handle:
        if desc.is_nullable:
            return f"lambda h: _wrap({desc.handle_class}, h)"
        return f"{desc.handle_class}._from_handle"
    return "lambda v: v"


def _lower_arg(slot: Slot[PyType]) -> tuple[list[str], list[str]]:
    """Return (prelude, ctypes call arguments) for one input."""
    name = _arg_name(slot.name)
    desc = slot.desc
    if desc.is_bytes:
        return [], [name, f"len({name})"]
    if desc.elem is not None and (desc.has_length or desc.size):
        elem = desc.elem
        var = "_c_" + name
        conv = _to_c("_v", elem)
        if desc.has_length:
            return (
                [f"{var} = ({elem.ctypes_type} * len({name}))(*[{conv} for _v in {name}])"],
                [var, f"len({name})"],
            )
        return (
            [f"{var} = ({elem.ctypes_type} * {desc.size})(*[{conv} for _v in {name}[:{desc.size}]])"],
            [var],
        )
    if desc.elem is not None:
        var = "_c_" + name
        return (
            [f"{var} = None if {name} is None else {desc.elem.ctypes_type}({name})"],
            [f"byref({var}) if {var} is not None else None"],
        )
    return [], [_to_c(name, desc)]


def _convert_value(raw: str, desc: PyType) -> str:
    if desc.is_string:
        return f"_decode_string({raw})"
    if desc.is_handle:
        if desc.is_nullable:
            return f"_wrap({desc.handle_class}, {raw})"
        return f"{desc.handle_class}._from_handle({raw})"
    return raw


def _convert_out(slot: Slot[PyType]) -> str:
    var, desc = "_" + slot.name, slot.desc
    if desc.is_bytes:
        return f"_take_bytes({var}.value, {var}_len.value)"
    if desc.elem is not None:
        conv = _from_c(desc.elem)
        if desc.has_length:
            return f"_take_array({var}, {var}_len.value, {conv})"
        if desc.size:
            return f"_take_array({var}, {desc.size}, {conv})"
        return f"_take_pointer({var}, {conv})"
    return _convert_value(f"{var}.value", desc)


def _convert_ret(slot: Slot[PyType]) -> str:
    desc = slot.desc
    if desc.elem is not None:
        conv = _from_c(desc.elem)
        if desc.size:
            return f"_take_array(_ret, {desc.size}, {conv})"
        return f"_take_pointer(_ret, {conv})"
    return _convert_value("_ret", desc)


def _docstring(doc: str, indent: str) -> list[str]:
    doc = doc.strip()
    if not doc:
        return []
    doc = doc.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    lines = doc.splitlines()
    if len(lines) == 1:
        return [f'{indent}"""{lines[0]}"""']
    out = [f'{indent}"""{lines[0]}']
    out.extend(f"{indent}{ln}".rstrip() for ln in lines[1:])
    out.append(f'{indent}"""')
    return out


registry.register("python", PythonPlugin)
