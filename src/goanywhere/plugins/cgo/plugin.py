"""C-ABI emitter: one cgo ``package main`` exporting every bindable symbol."""

from __future__ import annotations

import logging
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
    length_name,
    plan_exports,
)
from ...model import ParsedPackage, ParsedType, TypeKind
from ...plugin import BuildOptions
from .mapper import HANDLE_CTYPE, CType, TypeMapper

logger = logging.getLogger(__name__)

GENERATED_HEADER = "// Code generated by goanywhere. DO NOT EDIT."

# The bound package is imported under this name so Go parameters cannot shadow it.
PKG_ALIAS = "_pkg"

_RUNTIME = """\
var (
	handleMu   sync.RWMutex
	handleMap  = make(map[uintptr]interface{})
	nextHandle uintptr = 1
)

func registerHandle(v interface{}) uintptr {
	handleMu.Lock()
	defer handleMu.Unlock()
	h := nextHandle
	nextHandle++
	handleMap[h] = v
	return h
}

func getHandle(h uintptr) interface{} {
	handleMu.RLock()
	defer handleMu.RUnlock()
	return handleMap[h]
}

func freeHandle(h uintptr) {
	handleMu.Lock()
	defer handleMu.Unlock()
	delete(handleMap, h)
}

func lookupHandle[T any](h uintptr) T {
	v, _ := getHandle(h).(T)
	return v
}

func lookupValue[T any](h uintptr) T {
	var zero T
	if p, ok := getHandle(h).(*T); ok && p != nil {
		return *p
	}
	if v, ok := getHandle(h).(T); ok {
		return v
	}
	return zero
}

func newHandle[T any](v T) uintptr {
	return registerHandle(&v)
}

func ptrHandle[T any](p *T) uintptr {
	if p == nil {
		return 0
	}
	return registerHandle(p)
}

func anyHandle(v interface{}) uintptr {
	if v == nil {
		return 0
	}
	return registerHandle(v)
}

//export Free_String
func Free_String(s *C.char) {
	C.free(unsafe.Pointer(s))
}

//export Free_Bytes
func Free_Bytes(p unsafe.Pointer) {
	C.free(p)
}

//export Free_Handle
func Free_Handle(h C.uintptr_t) {
	freeHandle(uintptr(h))
}
"""


class CgoPlugin:
    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def name(self) -> str:
        return "cgo"

    def generate(self, pkg: ParsedPackage) -> bytes:
        return _Emitter(pkg, verbose=self.verbose).emit().encode("utf-8")

    def build(self, pkg: ParsedPackage, input_path: Path, opts: BuildOptions) -> Path:
        out_dir = Path(opts.output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / "main.go").write_bytes(self.generate(pkg))

        lib_name = opts.library_name or f"lib{pkg.name}"
        lib_path = out_dir / f"{lib_name}{shared_lib_extension()}"
        build_shared_library(
            bridge_dir=out_dir,
            module_dir=Path(input_path),
            import_path=pkg.import_path,
            output=lib_path,
        )
        if self.verbose or opts.verbose:
            logger.info("Built %s", lib_path)
        return out_dir


class _Emitter:
    def __init__(self, pkg: ParsedPackage, *, verbose: bool):
        self.pkg = pkg
        self.mapper = TypeMapper(pkg.struct_names())
        self.plan = plan_exports(pkg, self.mapper.map_type, verbose=verbose)
        self.uses_pkg = False

    def emit(self) -> str:
        body: list[str] = []
        for fn in self.plan.functions:
            body.extend(self._function(fn))
        for st in self.plan.structs:
            body.extend(self._struct(st))

        imports = ['\t"sync"', '\t"unsafe"']
        if self.uses_pkg:
            imports.extend(["", f'\t{PKG_ALIAS} "{self.pkg.import_path or self.pkg.name}"'])

        lines = [
            GENERATED_HEADER,
            "",
            "package main",
            "",
            "/*",
            "#include <stdlib.h>",
            "#include <stdint.h>",
            "#include <stdbool.h>",
            "*/",
            'import "C"',
            "",
            "import (",
            *imports,
            ")",
            "",
            _RUNTIME,
            *body,
            "func main() {}",
            "",
        ]
        return "\n".join(lines)

    # Go-side spellings

    def _go_type(self, pt: ParsedType) -> str:
        kind = pt.kind
        if kind in (TypeKind.PRIMITIVE, TypeKind.STRING, TypeKind.ERROR):
            return pt.name
        if kind is TypeKind.STRUCT:
            self.uses_pkg = True
            return f"{PKG_ALIAS}.{pt.name}"
        if kind is TypeKind.POINTER:
            return "*" + self._go_type(pt.elem)
        if kind is TypeKind.SLICE:
            return "[]" + self._go_type(pt.elem)
        if kind is TypeKind.ARRAY:
            return f"[{pt.size}]" + self._go_type(pt.elem)
        if kind is TypeKind.MAP:
            return f"map[{self._go_type(pt.key)}]{self._go_type(pt.elem)}"
        if kind is TypeKind.INTERFACE:
            return "interface{}"
        raise ValueError(f"no Go spelling for {pt.name}")

    def _to_go(self, expr: str, pt: ParsedType) -> str:
        """Convert a scalar C value to its Go counterpart."""
        if pt.kind is TypeKind.PRIMITIVE:
            return f"{pt.name}({expr})"
        if pt.kind is TypeKind.STRING:
            return f"C.GoString({expr})"
        if pt.kind is TypeKind.STRUCT:
            return f"lookupValue[{self._go_type(pt)}](uintptr({expr}))"
        return f"lookupHandle[{self._go_type(pt)}](uintptr({expr}))"

    def _to_c(self, expr: str, pt: ParsedType, desc: CType) -> str:
        """Convert a scalar Go value to its C counterpart."""
        if pt.kind is TypeKind.PRIMITIVE:
            return f"{desc.c_type}({expr})"
        if pt.kind is TypeKind.STRING:
            return f"C.CString({expr})"
        if pt.kind is TypeKind.STRUCT:
            return f"{HANDLE_CTYPE}(newHandle({expr}))"
        if pt.kind is TypeKind.POINTER:
            return f"{HANDLE_CTYPE}(ptrHandle({expr}))"
        return f"{HANDLE_CTYPE}(anyHandle({expr}))"

    # Inputs

    def _lower_input(self, slot: Slot[CType]) -> tuple[list[str], list[str], str, list[str]]:
        """Return (C params, prelude, Go argument, write-back) for one input."""
        name, pt, desc = slot.name, slot.type, slot.desc
        local = "_" + name

        if desc.is_bytes:
            n = length_name(name)
            return (
                [f"{name} unsafe.Pointer", f"{n} C.size_t"],
                [],
                f"C.GoBytes({name}, C.int({n}))",
                [],
            )

        if pt.kind is TypeKind.SLICE:
            n = length_name(name)
            prelude = [
                f"{local} := make({self._go_type(pt)}, int({n}))",
                f"if {name} != nil && {n} > 0 {{",
                f"\tfor _i, _x := range unsafe.Slice({name}, int({n})) {{",
                f"\t\t{local}[_i] = {self._to_go('_x', pt.elem)}",
                "\t}",
                "}",
            ]
            return [f"{name} {desc.c_type}", f"{n} C.size_t"], prelude, local, []

        if pt.kind is TypeKind.ARRAY:
            prelude = [
                f"var {local} {self._go_type(pt)}",
                f"if {name} != nil {{",
                f"\tfor _i, _x := range unsafe.Slice({name}, {pt.size}) {{",
                f"\t\t{local}[_i] = {self._to_go('_x', pt.elem)}",
                "\t}",
                "}",
            ]
            return [f"{name} {desc.c_type}"], prelude, local, []

        if pt.kind is TypeKind.POINTER and not desc.is_handle:
            prelude = [
                f"var {local} {self._go_type(pt)}",
                f"if {name} != nil {{",
                f"\t_v := {self._to_go('*' + name, pt.elem)}",
                f"\t{local} = &_v",
                "}",
            ]
            writeback = [
                f"if {name} != nil && {local} != nil {{",
                f"\t*{name} = {self._to_c('*' + local, pt.elem, desc.elem)}",
                "}",
            ]
            return [f"{name} {desc.c_type}"], prelude, local, writeback

        return [f"{name} {desc.c_type}"], [], self._to_go(name, pt), []

    # Outputs

    def _store(self, target: str, len_target: str, src: str, pt: ParsedType, desc: CType) -> list[str]:
        """Write Go value ``src`` into the C lvalue ``target``."""
        if desc.is_bytes:
            return [
                f"{target} = C.CBytes({src})",
                f"{len_target} = C.size_t(len({src}))",
            ]

        if pt.kind in (TypeKind.SLICE, TypeKind.ARRAY):
            elem = desc.elem
            lines = [
                f"{target} = nil",
                f"if len({src}) > 0 {{",
                f"\t_buf := ({desc.c_type})(C.malloc(C.size_t(len({src})) * C.size_t(unsafe.Sizeof(*new({elem.c_type})))))",
                f"\t_dst := unsafe.Slice(_buf, len({src}))",
                f"\tfor _i := range {src} {{",
                f"\t\t_e := {src}[_i]",
                f"\t\t_dst[_i] = {self._to_c('_e', pt.elem, elem)}",
                "\t}",
                f"\t{target} = _buf",
                "}",
            ]
            if pt.kind is TypeKind.SLICE:
                lines.append(f"{len_target} = C.size_t(len({src}))")
            return lines

        if pt.kind is TypeKind.POINTER and not desc.is_handle:
            elem = desc.elem
            return [
                f"{target} = nil",
                f"if {src} != nil {{",
                f"\t_buf := ({desc.c_type})(C.malloc(C.size_t(unsafe.Sizeof(*new({elem.c_type})))))",
                f"\t*_buf = {self._to_c('*' + src, pt.elem, elem)}",
                f"\t{target} = _buf",
                "}",
            ]

        return [f"{target} = {self._to_c(src, pt, desc)}"]

    # Entry points

    def _entry(
        self,
        symbol: str,
        sig: Signature[CType],
        call: str,
        *,
        receiver: str = "",
        receiver_is_ptr: bool = True,
        statement: bool = False,
    ) -> list[str]:
        """Emit one exported wrapper.

        ``call`` is a format string with ``{recv}`` and ``{args}`` fields.
        ``receiver`` is the Go struct name for methods and accessors.
        ``statement`` marks calls that produce no value (field stores).
        """
        params: list[str] = []
        body: list[str] = []
        writeback: list[str] = []
        args: list[str] = []

        if receiver:
            params.append(f"_h {HANDLE_CTYPE}")
        for slot in sig.inputs:
            c_params, prelude, arg, back = self._lower_input(slot)
            params.extend(c_params)
            body.extend(prelude)
            args.append(arg)
            writeback.extend(back)
        for slot in sig.outputs:
            params.append(f"{slot.name} *{slot.desc.c_type}")
            if slot.desc.has_length:
                params.append(f"{length_name(slot.name)} *C.size_t")
        if sig.has_error:
            params.append("outError **C.char")

        ret = f" {sig.ret.desc.c_type}" if sig.ret is not None else ""
        head: list[str] = []
        if sig.has_error:
            head.extend(["if outError != nil {", "\t*outError = nil", "}"])

        recv = ""
        if receiver:
            go_recv = f"{PKG_ALIAS}.{receiver}"
            self.uses_pkg = True
            head.append(f"_obj := lookupHandle[*{go_recv}](uintptr(_h))")
            head.append("if _obj == nil {")
            if sig.has_error:
                head.extend(
                    [
                        "\tif outError != nil {",
                        f'\t\t*outError = C.CString("invalid {receiver} handle")',
                        "\t}",
                    ]
                )
            head.append("\treturn" + (f" {_zero(sig.ret.desc)}" if sig.ret is not None else ""))
            head.append("}")
            if receiver_is_ptr:
                recv = "_obj"
            else:
                head.append("_recv := *_obj")
                recv = "_recv"

        expr = call.format(recv=recv, args=", ".join(args))
        names = [f"_r{i}" if pos is not None else "_err" for i, pos in enumerate(sig.result_order)]
        if statement or not names:
            body.append(expr)
        else:
            body.append(f"{', '.join(names)} := {expr}")
        body.extend(writeback)

        if sig.has_error:
            body.extend(
                [
                    "if _err != nil {",
                    "\tif outError != nil {",
                    "\t\t*outError = C.CString(_err.Error())",
                    "\t}",
                    "\treturn",
                    "}",
                ]
            )

        value_names = [n for n in names if n != "_err"]
        for slot, src in zip(sig.outputs, value_names):
            cond = f"{slot.name} != nil"
            if slot.desc.has_length:
                cond += f" && {length_name(slot.name)} != nil"
            body.append(f"if {cond} {{")
            body.extend(
                "\t" + ln
                for ln in self._store(
                    f"*{slot.name}",
                    f"*{length_name(slot.name)}",
                    src,
                    slot.type,
                    slot.desc,
                )
            )
            body.append("}")

        if sig.ret is not None:
            desc = sig.ret.desc
            if desc.elem is not None:
                body.append(f"var _ret {desc.c_type}")
                body.extend(self._store("_ret", "", value_names[0], sig.ret.type, desc))
                body.append("return _ret")
            else:
                body.append(f"return {self._to_c(value_names[0], sig.ret.type, desc)}")

        return [
            f"//export {symbol}",
            f"func {symbol}({', '.join(params)}){ret} {{",
            *("\t" + ln for ln in head + body),
            "}",
            "",
        ]

    def _function(self, fx: FunctionExport[CType]) -> list[str]:
        self.uses_pkg = True
        return self._entry(fx.symbol, fx.sig, f"{PKG_ALIAS}.{fx.func.name}({{args}})")

    def _struct(self, sx: StructExport[CType]) -> list[str]:
        st = sx.struct
        self.uses_pkg = True
        go_name = f"{PKG_ALIAS}.{st.name}"
        lines = [
            f"//export {sx.new_symbol}",
            f"func {sx.new_symbol}() {HANDLE_CTYPE} {{",
            f"\treturn {HANDLE_CTYPE}(registerHandle(&{go_name}{{}}))",
            "}",
            "",
            f"//export {sx.free_symbol}",
            f"func {sx.free_symbol}(_h {HANDLE_CTYPE}) {{",
            "\tfreeHandle(uintptr(_h))",
            "}",
            "",
        ]
        for ax in sx.accessors:
            lines.extend(self._accessor(st.name, ax))
        for mx in sx.methods:
            lines.extend(self._method(st.name, mx))
        return lines

    def _accessor(self, struct: str, ax: AccessorExport[CType]) -> list[str]:
        field = ax.field.name
        return [
            *self._entry(ax.getter, ax.getter_sig, f"{{recv}}.{field}", receiver=struct),
            *self._entry(
                ax.setter,
                ax.setter_sig,
                f"{{recv}}.{field} = {{args}}",
                receiver=struct,
                statement=True,
            ),
        ]

    def _method(self, struct: str, mx: MethodExport[CType]) -> list[str]:
        m = mx.method
        return self._entry(
            mx.symbol,
            mx.sig,
            f"{{recv}}.{m.name}({{args}})",
            receiver=struct,
            receiver_is_ptr=m.receiver_is_ptr,
        )


def _zero(desc: CType) -> str:
    if desc.c_type.startswith("*") or desc.c_type == "unsafe.Pointer":
        return "nil"
    if desc.c_type == "C.bool":
        return "false"
    return "0"


registry.register("cgo", CgoPlugin)
