"""Intermediate representation of a Go package's exported surface."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class TypeKind(IntEnum):
    PRIMITIVE = 0
    STRING = 1
    STRUCT = 2
    SLICE = 3
    ARRAY = 4
    MAP = 5
    POINTER = 6
    INTERFACE = 7
    FUNC = 8
    CHAN = 9
    ERROR = 10


@dataclass(frozen=True)
class ParsedType:
    kind: TypeKind
    name: str  # display name, e.g. "int", "*Point", "map[string]int"
    package_path: str = ""  # qualifier of `pkg.Name` references
    elem: ParsedType | None = None  # pointer/slice/array element, map value
    key: ParsedType | None = None  # map key
    size: int = 0  # fixed array length
    is_pointer: bool = False

    def is_byte_slice(self) -> bool:
        return (
            self.kind is TypeKind.SLICE
            and self.elem is not None
            and self.elem.kind is TypeKind.PRIMITIVE
            and self.elem.name in {"byte", "uint8"}
        )


@dataclass(frozen=True)
class ParsedParam:
    name: str
    type: ParsedType


@dataclass(frozen=True)
class ParsedResult:
    name: str  # empty for unnamed results
    type: ParsedType


@dataclass(frozen=True)
class ParsedFunc:
    name: str
    doc: str = ""
    params: tuple[ParsedParam, ...] = ()
    results: tuple[ParsedResult, ...] = ()
    is_variadic: bool = False


@dataclass(frozen=True)
class ParsedMethod:
    name: str
    receiver_name: str
    receiver_type: str  # struct name, no leading '*'
    receiver_is_ptr: bool
    doc: str = ""
    params: tuple[ParsedParam, ...] = ()
    results: tuple[ParsedResult, ...] = ()
    is_variadic: bool = False


@dataclass(frozen=True)
class ParsedField:
    name: str
    type: ParsedType
    tag: str = ""  # raw tag literal including quotes
    exported: bool = False


@dataclass(frozen=True)
class ParsedStruct:
    name: str
    doc: str = ""
    fields: tuple[ParsedField, ...] = ()
    methods: tuple[ParsedMethod, ...] = ()

    def exported_fields(self) -> list[ParsedField]:
        return [f for f in self.fields if f.exported]


@dataclass(frozen=True)
class ParsedPackage:
    name: str
    import_path: str
    dir: str
    functions: tuple[ParsedFunc, ...] = ()
    structs: tuple[ParsedStruct, ...] = ()

    def struct_names(self) -> set[str]:
        return {s.name for s in self.structs}


def is_exported(name: str) -> bool:
    """Go's visibility rule: exported iff the first character is upper-case."""
    if not name:
        return False
    return name[0].isupper()
