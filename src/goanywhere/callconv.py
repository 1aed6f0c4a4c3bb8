"""Calling convention shared by the C-ABI and Python emitters.

Both emitters lower a Go signature through :func:`lower_signature` so the
order of arguments in a generated C entry point and in its ctypes
prototype always agree:

    [receiver handle] inputs... outputs... [outError]

A slice input or output contributes a second ``size_t`` slot for its
length, placed right after the data slot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from .errors import UnsupportedSignatureError, UnsupportedTypeError
from .model import (
    ParsedField,
    ParsedFunc,
    ParsedMethod,
    ParsedPackage,
    ParsedParam,
    ParsedResult,
    ParsedStruct,
    ParsedType,
    TypeKind,
)

logger = logging.getLogger(__name__)


class Descriptor(Protocol):
    has_length: bool


D = TypeVar("D", bound=Descriptor)


@dataclass(frozen=True)
class Slot(Generic[D]):
    name: str
    type: ParsedType
    desc: D


@dataclass(frozen=True)
class Signature(Generic[D]):
    inputs: tuple[Slot[D], ...]
    outputs: tuple[Slot[D], ...]
    ret: Slot[D] | None
    has_error: bool
    # Positions in the Go call's result tuple; None marks the error result.
    result_order: tuple[int | None, ...]


def param_name(index: int, name: str) -> str:
    if not name or name == "_":
        return f"arg{index}"
    return name


def length_name(name: str) -> str:
    return name + "Len"


def is_handle_kind(pt: ParsedType, structs: set[str]) -> bool:
    if pt.kind in (TypeKind.STRUCT, TypeKind.MAP, TypeKind.INTERFACE):
        return True
    return (
        pt.kind is TypeKind.POINTER
        and pt.elem is not None
        and pt.elem.kind is TypeKind.STRUCT
        and pt.elem.name in structs
    )


def _is_scalar(pt: ParsedType, structs: set[str]) -> bool:
    return pt.kind in (TypeKind.PRIMITIVE, TypeKind.STRING) or is_handle_kind(pt, structs)


def _foreign(pt: ParsedType | None) -> bool:
    while pt is not None:
        if pt.kind is TypeKind.STRUCT and pt.package_path:
            return True
        if pt.key is not None and _foreign(pt.key):
            return True
        pt = pt.elem
    return False


def check_transferable(pt: ParsedType, structs: set[str]) -> None:
    """Raise UnsupportedTypeError unless both emitters can carry ``pt``."""
    if _foreign(pt):
        raise UnsupportedTypeError(pt.name, "types from other packages cannot be exposed")
    if pt.kind in (TypeKind.CHAN, TypeKind.FUNC):
        raise UnsupportedTypeError(pt.name or pt.kind.name.lower(), "cannot be exposed via CGO")
    if _is_scalar(pt, structs) or pt.is_byte_slice():
        return
    if pt.kind in (TypeKind.SLICE, TypeKind.ARRAY):
        if pt.elem is None:
            raise ValueError(f"{pt.kind.name.lower()} type missing element type")
        if pt.kind is TypeKind.ARRAY and pt.size <= 0:
            raise UnsupportedTypeError(pt.name, "array length must be a positive integer literal")
        if _is_scalar(pt.elem, structs):
            return
        raise UnsupportedTypeError(pt.name, "only primitive, string and handle elements can cross the boundary")
    if pt.kind is TypeKind.POINTER:
        if pt.elem is None:
            raise ValueError("pointer type missing element type")
        if pt.elem.kind is TypeKind.PRIMITIVE:
            return
        raise UnsupportedTypeError(pt.name, "only pointers to primitives or known structs are supported")
    if pt.kind is TypeKind.ERROR:
        raise UnsupportedTypeError("error", "error values are only supported as results")
    raise UnsupportedTypeError(pt.name, "cannot be exposed via CGO")


def lower_signature(
    params: Sequence[ParsedParam],
    results: Sequence[ParsedResult],
    map_type: Callable[[ParsedType], D],
    structs: Iterable[str],
) -> Signature[D]:
    known = set(structs)
    inputs: list[Slot[D]] = []
    for i, p in enumerate(params):
        check_transferable(p.type, known)
        inputs.append(Slot(name=param_name(i, p.name), type=p.type, desc=map_type(p.type)))

    values: list[ParsedResult] = []
    order: list[int | None] = []
    errors = 0
    for r in results:
        if r.type.kind is TypeKind.ERROR:
            errors += 1
            order.append(None)
            continue
        check_transferable(r.type, known)
        order.append(len(values))
        values.append(r)
    if errors > 1:
        raise UnsupportedSignatureError("at most one error result is supported")
    has_error = errors == 1

    if not has_error and len(values) == 1:
        desc = map_type(values[0].type)
        if not desc.has_length:
            return Signature(
                inputs=tuple(inputs),
                outputs=(),
                ret=Slot(name="ret", type=values[0].type, desc=desc),
                has_error=False,
                result_order=tuple(order),
            )

    outputs = tuple(
        Slot(name=f"out{i}", type=r.type, desc=map_type(r.type)) for i, r in enumerate(values)
    )
    return Signature(
        inputs=tuple(inputs),
        outputs=outputs,
        ret=None,
        has_error=has_error,
        result_order=tuple(order),
    )


# Export plan


RESERVED_SYMBOLS = frozenset({"Free_String", "Free_Bytes", "Free_Handle"})


@dataclass(frozen=True)
class FunctionExport(Generic[D]):
    symbol: str
    func: ParsedFunc
    sig: Signature[D]


@dataclass(frozen=True)
class AccessorExport(Generic[D]):
    field: ParsedField
    getter: str
    setter: str
    getter_sig: Signature[D]
    setter_sig: Signature[D]


@dataclass(frozen=True)
class MethodExport(Generic[D]):
    symbol: str
    method: ParsedMethod
    sig: Signature[D]


@dataclass(frozen=True)
class StructExport(Generic[D]):
    struct: ParsedStruct
    new_symbol: str
    free_symbol: str
    accessors: tuple[AccessorExport[D], ...]
    methods: tuple[MethodExport[D], ...]


@dataclass(frozen=True)
class ExportPlan(Generic[D]):
    functions: tuple[FunctionExport[D], ...]
    structs: tuple[StructExport[D], ...]


def plan_exports(
    pkg: ParsedPackage,
    map_type: Callable[[ParsedType], D],
    *,
    verbose: bool = False,
) -> ExportPlan[D]:
    """Decide which symbols get an entry point and lower their signatures.

    Variadic declarations, unsupported types and clashing symbol names are
    dropped (and logged when ``verbose``); nothing here is fatal.
    """
    structs = pkg.struct_names()
    taken: set[str] = set(RESERVED_SYMBOLS)

    def skip(what: str, name: str, reason: object) -> None:
        if verbose:
            logger.info("Skipping %s %s: %s", what, name, reason)

    def claim(symbol: str, what: str, name: str) -> bool:
        if symbol in taken:
            skip(what, name, f"symbol {symbol} is already generated")
            return False
        taken.add(symbol)
        return True

    functions: list[FunctionExport[D]] = []
    for fn in pkg.functions:
        if fn.is_variadic:
            skip("function", fn.name, "variadic functions are not supported")
            continue
        try:
            sig = lower_signature(fn.params, fn.results, map_type, structs)
        except (UnsupportedTypeError, UnsupportedSignatureError) as e:
            skip("function", fn.name, e)
            continue
        symbol = f"{pkg.name}_{fn.name}"
        if claim(symbol, "function", fn.name):
            functions.append(FunctionExport(symbol=symbol, func=fn, sig=sig))

    out_structs: list[StructExport[D]] = []
    for st in pkg.structs:
        new_symbol, free_symbol = f"{st.name}_New", f"{st.name}_Free"
        if not (claim(new_symbol, "struct", st.name) and claim(free_symbol, "struct", st.name)):
            continue

        # Methods claim their symbols before the synthesized accessors.
        methods: list[MethodExport[D]] = []
        for m in st.methods:
            label = f"{st.name}.{m.name}"
            if m.is_variadic:
                skip("method", label, "variadic methods are not supported")
                continue
            try:
                sig = lower_signature(m.params, m.results, map_type, structs)
            except (UnsupportedTypeError, UnsupportedSignatureError) as e:
                skip("method", label, e)
                continue
            symbol = f"{st.name}_{m.name}"
            if claim(symbol, "method", label):
                methods.append(MethodExport(symbol=symbol, method=m, sig=sig))

        accessors: list[AccessorExport[D]] = []
        for field in st.exported_fields():
            label = f"{st.name}.{field.name}"
            try:
                if field.type.kind is TypeKind.ERROR:
                    raise UnsupportedTypeError("error", "error-typed fields are not exported")
                getter_sig = lower_signature((), (ParsedResult(name="", type=field.type),), map_type, structs)
                setter_sig = lower_signature((ParsedParam(name="value", type=field.type),), (), map_type, structs)
            except (UnsupportedTypeError, UnsupportedSignatureError) as e:
                skip("field", label, e)
                continue
            getter, setter = f"{st.name}_Get{field.name}", f"{st.name}_Set{field.name}"
            if getter in taken or setter in taken:
                skip("field", label, f"accessor {getter}/{setter} is already generated")
                continue
            taken.update((getter, setter))
            accessors.append(
                AccessorExport(
                    field=field,
                    getter=getter,
                    setter=setter,
                    getter_sig=getter_sig,
                    setter_sig=setter_sig,
                )
            )

        out_structs.append(
            StructExport(
                struct=st,
                new_symbol=new_symbol,
                free_symbol=free_symbol,
                accessors=tuple(accessors),
                methods=tuple(methods),
            )
        )

    return ExportPlan(functions=tuple(functions), structs=tuple(out_structs))
