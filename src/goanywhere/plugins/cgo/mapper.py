"""Go to C (cgo) type mapping."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ...errors import UnsupportedTypeError
from ...model import ParsedType, TypeKind

_PRIMITIVES: dict[str, str] = {
    "int": "C.longlong",
    "int8": "C.int8_t",
    "int16": "C.int16_t",
    "int32": "C.int32_t",
    "int64": "C.int64_t",
    "uint": "C.ulonglong",
    "uint8": "C.uint8_t",
    "byte": "C.uint8_t",
    "uint16": "C.uint16_t",
    "uint32": "C.uint32_t",
    "uint64": "C.uint64_t",
    "float32": "C.float",
    "float64": "C.double",
    "bool": "C.bool",
    "rune": "C.int32_t",
    "uintptr": "C.uintptr_t",
}

HANDLE_CTYPE = "C.uintptr_t"


@dataclass(frozen=True)
class CType:
    c_type: str  # cgo spelling, e.g. "C.int64_t", "*C.char"
    go_type: str  # original Go type
    needs_alloc: bool = False  # allocated by the glue on return
    needs_free: bool = False  # caller must release through a Free_* routine
    is_handle: bool = False  # opaque handle into the handle table
    is_out_param: bool = False  # only travels as an out-parameter (errors)
    is_nullable: bool = False
    is_bytes: bool = False
    has_length: bool = False  # slices carry a separate length slot
    size: int = 0  # fixed array length
    elem: CType | None = None


class TypeMapper:
    """Maps IR types to cgo types, knowing which structs the package declares."""

    def __init__(self, structs: Iterable[str]):
        self.struct_registry = set(structs)

    def map_type(self, pt: ParsedType) -> CType:
        kind = pt.kind

        if kind is TypeKind.PRIMITIVE:
            return self.map_primitive(pt.name)

        if kind is TypeKind.STRING:
            return CType(c_type="*C.char", go_type="string", needs_alloc=True, needs_free=True)

        if kind is TypeKind.ERROR:
            return CType(
                c_type="**C.char",
                go_type="error",
                needs_alloc=True,
                needs_free=True,
                is_out_param=True,
            )

        if kind is TypeKind.POINTER:
            if pt.elem is None:
                raise ValueError("pointer type missing element type")
            if pt.elem.kind is TypeKind.STRUCT and pt.elem.name in self.struct_registry:
                return CType(
                    c_type=HANDLE_CTYPE,
                    go_type="*" + pt.elem.name,
                    is_handle=True,
                    is_nullable=True,
                )
            elem = self.map_type(pt.elem)
            return CType(
                c_type="*" + elem.c_type,
                go_type="*" + pt.elem.name,
                needs_alloc=True,
                needs_free=True,
                is_nullable=True,
                elem=elem,
            )

        if kind is TypeKind.STRUCT:
            # Unknown names (including imported types) still become handles.
            return CType(c_type=HANDLE_CTYPE, go_type=pt.name, is_handle=True)

        if kind is TypeKind.SLICE:
            if pt.elem is None:
                raise ValueError("slice type missing element type")
            if pt.is_byte_slice():
                return CType(
                    c_type="unsafe.Pointer",
                    go_type="[]byte",
                    needs_alloc=True,
                    needs_free=True,
                    is_bytes=True,
                    has_length=True,
                )
            elem = self.map_type(pt.elem)
            return CType(
                c_type="*" + elem.c_type,
                go_type=pt.name,
                needs_alloc=True,
                needs_free=True,
                has_length=True,
                elem=elem,
            )

        if kind is TypeKind.ARRAY:
            if pt.elem is None:
                raise ValueError("array type missing element type")
            elem = self.map_type(pt.elem)
            return CType(
                c_type="*" + elem.c_type,
                go_type=pt.name,
                needs_alloc=True,
                needs_free=True,
                size=pt.size,
                elem=elem,
            )

        if kind is TypeKind.MAP:
            return CType(c_type=HANDLE_CTYPE, go_type=pt.name, is_handle=True)

        if kind is TypeKind.INTERFACE:
            return CType(c_type=HANDLE_CTYPE, go_type="interface{}", is_handle=True, is_nullable=True)

        if kind is TypeKind.CHAN:
            raise UnsupportedTypeError("chan", "channels cannot be exposed via CGO")

        if kind is TypeKind.FUNC:
            raise UnsupportedTypeError("func", "function types cannot be exposed via CGO")

        raise ValueError(f"unknown type kind: {kind!r}")

    def map_primitive(self, name: str) -> CType:
        return CType(c_type=_PRIMITIVES.get(name, "C.longlong"), go_type=name)
