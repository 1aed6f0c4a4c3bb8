"""Go to Python/ctypes type mapping.

Shapes mirror the cgo mapper one for one; only the tokens differ, so a
ctypes prototype built from these descriptors matches the C entry point.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ...errors import UnsupportedTypeError
from ...model import ParsedType, TypeKind

_PRIMITIVES: dict[str, tuple[str, str]] = {
    "int": ("c_longlong", "int"),
    "int8": ("c_int8", "int"),
    "int16": ("c_int16", "int"),
    "int32": ("c_int32", "int"),
    "int64": ("c_int64", "int"),
    "uint": ("c_ulonglong", "int"),
    "uint8": ("c_uint8", "int"),
    "byte": ("c_uint8", "int"),
    "uint16": ("c_uint16", "int"),
    "uint32": ("c_uint32", "int"),
    "uint64": ("c_uint64", "int"),
    "float32": ("c_float", "float"),
    "float64": ("c_double", "float"),
    "bool": ("c_bool", "bool"),
    "rune": ("c_int32", "int"),
    "uintptr": ("c_size_t", "int"),
}

HANDLE_CTYPE = "c_size_t"

# Every ctypes name a generated module may need to import.
CTYPES_NAMES = frozenset({t for t, _ in _PRIMITIVES.values()} | {"c_char_p", "c_void_p", HANDLE_CTYPE})
OBJECT_CLASS = "GoObject"

# Module-level names a generated module binds itself (imports and helpers).
RESERVED_NAMES = CTYPES_NAMES | frozenset(
    {
        "CDLL",
        "POINTER",
        "byref",
        "cast",
        "string_at",
        "os",
        "Path",
        "annotations",
        "GoError",
        OBJECT_CLASS,
        "load_library",
    }
)


def py_class_name(name: str) -> str:
    """Class name for a Go struct; names the module already binds get a trailing ``_``."""
    if name in RESERVED_NAMES:
        return name + "_"
    return name


@dataclass(frozen=True)
class PyType:
    ctypes_type: str  # argtypes token
    ctypes_return_type: str  # restype / out-parameter token
    py_type: str  # type hint in generated code
    needs_free: bool = False
    is_handle: bool = False
    is_error: bool = False
    is_string: bool = False
    is_nullable: bool = False
    is_bytes: bool = False
    has_length: bool = False
    size: int = 0
    elem: PyType | None = None
    handle_class: str = ""  # wrapper class for handles


class TypeMapper:
    """Maps IR types to ctypes tokens and Python type hints."""

    def __init__(self, structs: Iterable[str]):
        self.struct_registry = set(structs)

    def map_type(self, pt: ParsedType) -> PyType:
        kind = pt.kind

        if kind is TypeKind.PRIMITIVE:
            return self.map_primitive(pt.name)

        if kind is TypeKind.STRING:
            # Returned strings stay c_void_p so the pointer can be handed back to Free_String.
            return PyType(
                ctypes_type="c_char_p",
                ctypes_return_type="c_void_p",
                py_type="str",
                needs_free=True,
                is_string=True,
            )

        if kind is TypeKind.ERROR:
            return PyType(
                ctypes_type="POINTER(c_void_p)",
                ctypes_return_type="c_void_p",
                py_type="str",
                needs_free=True,
                is_error=True,
            )

        if kind is TypeKind.POINTER:
            if pt.elem is None:
                raise ValueError("pointer type missing element type")
            if pt.elem.kind is TypeKind.STRUCT and pt.elem.name in self.struct_registry:
                return self._handle(py_class_name(pt.elem.name), nullable=True)
            elem = self.map_type(pt.elem)
            return PyType(
                ctypes_type=f"POINTER({elem.ctypes_type})",
                ctypes_return_type=f"POINTER({elem.ctypes_return_type})",
                py_type=f"{elem.py_type} | None",
                needs_free=True,
                is_nullable=True,
                elem=elem,
            )

        if kind is TypeKind.STRUCT:
            if pt.name in self.struct_registry:
                return self._handle(py_class_name(pt.name))
            return self._handle(OBJECT_CLASS)

        if kind is TypeKind.SLICE:
            if pt.elem is None:
                raise ValueError("slice type missing element type")
            if pt.is_byte_slice():
                return PyType(
                    ctypes_type="c_char_p",
                    ctypes_return_type="c_void_p",
                    py_type="bytes",
                    needs_free=True,
                    is_bytes=True,
                    has_length=True,
                )
            elem = self.map_type(pt.elem)
            return PyType(
                ctypes_type=f"POINTER({elem.ctypes_type})",
                ctypes_return_type=f"POINTER({elem.ctypes_return_type})",
                py_type=f"list[{elem.py_type}]",
                needs_free=True,
                has_length=True,
                elem=elem,
            )

        if kind is TypeKind.ARRAY:
            if pt.elem is None:
                raise ValueError("array type missing element type")
            elem = self.map_type(pt.elem)
            return PyType(
                ctypes_type=f"POINTER({elem.ctypes_type})",
                ctypes_return_type=f"POINTER({elem.ctypes_return_type})",
                py_type=f"list[{elem.py_type}]",
                needs_free=True,
                size=pt.size,
                elem=elem,
            )

        if kind in (TypeKind.MAP, TypeKind.INTERFACE):
            return self._handle(OBJECT_CLASS, nullable=kind is TypeKind.INTERFACE)

        if kind is TypeKind.CHAN:
            raise UnsupportedTypeError("chan", "channels cannot be exposed to Python")

        if kind is TypeKind.FUNC:
            raise UnsupportedTypeError("func", "function types cannot be exposed to Python")

        raise ValueError(f"unknown type kind: {kind!r}")

    def map_primitive(self, name: str) -> PyType:
        ctype, hint = _PRIMITIVES.get(name, ("c_longlong", "int"))
        return PyType(ctypes_type=ctype, ctypes_return_type=ctype, py_type=hint)

    def _handle(self, cls: str, *, nullable: bool = False) -> PyType:
        return PyType(
            ctypes_type=HANDLE_CTYPE,
            ctypes_return_type=HANDLE_CTYPE,
            py_type=f"{cls} | None" if nullable else cls,
            is_handle=True,
            is_nullable=nullable,
            handle_class=cls,
        )
