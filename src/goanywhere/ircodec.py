"""MessagePack snapshots of the package IR (format v0)."""

from __future__ import annotations

from typing import Any

import msgpack

from .errors import IRDecodeError
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

IR_FORMAT_VERSION = 0


def encode_package(pkg: ParsedPackage) -> bytes:
    payload = {
        "ir": IR_FORMAT_VERSION,
        "package": {
            "name": pkg.name,
            "import_path": pkg.import_path,
            "dir": pkg.dir,
            "functions": [_func_to_obj(fn) for fn in pkg.functions],
            "structs": [_struct_to_obj(st) for st in pkg.structs],
        },
    }
    return msgpack.packb(payload, use_bin_type=True)


def decode_package(payload: bytes) -> ParsedPackage:
    try:
        obj = msgpack.unpackb(payload, raw=False)
    except Exception as e:  # noqa: BLE001 - boundary decoding error
        raise IRDecodeError(str(e)) from e

    if not isinstance(obj, dict) or "package" not in obj:
        raise IRDecodeError("invalid IR envelope")
    if obj.get("ir") != IR_FORMAT_VERSION:
        raise IRDecodeError(f"unsupported IR format version: {obj.get('ir')!r}")

    p = obj["package"]
    if not isinstance(p, dict):
        raise IRDecodeError("invalid package object")
    try:
        return ParsedPackage(
            name=str(p["name"]),
            import_path=str(p.get("import_path", "")),
            dir=str(p.get("dir", "")),
            functions=tuple(_func_from_obj(f) for f in p.get("functions", [])),
            structs=tuple(_struct_from_obj(s) for s in p.get("structs", [])),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise IRDecodeError(f"malformed IR: {e}") from e


def _type_to_obj(pt: ParsedType) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": int(pt.kind), "name": pt.name}
    if pt.package_path:
        out["pkg"] = pt.package_path
    if pt.elem is not None:
        out["elem"] = _type_to_obj(pt.elem)
    if pt.key is not None:
        out["key"] = _type_to_obj(pt.key)
    if pt.size:
        out["size"] = pt.size
    if pt.is_pointer:
        out["ptr"] = True
    return out


def _type_from_obj(obj: dict[str, Any]) -> ParsedType:
    return ParsedType(
        kind=TypeKind(obj["kind"]),
        name=str(obj["name"]),
        package_path=str(obj.get("pkg", "")),
        elem=_type_from_obj(obj["elem"]) if "elem" in obj else None,
        key=_type_from_obj(obj["key"]) if "key" in obj else None,
        size=int(obj.get("size", 0)),
        is_pointer=bool(obj.get("ptr", False)),
    )


def _params_to_obj(items) -> list[dict[str, Any]]:  # noqa: ANN001
    return [{"name": it.name, "type": _type_to_obj(it.type)} for it in items]


def _func_to_obj(fn: ParsedFunc) -> dict[str, Any]:
    return {
        "name": fn.name,
        "doc": fn.doc,
        "params": _params_to_obj(fn.params),
        "results": _params_to_obj(fn.results),
        "variadic": fn.is_variadic,
    }


def _func_from_obj(obj: dict[str, Any]) -> ParsedFunc:
    return ParsedFunc(
        name=str(obj["name"]),
        doc=str(obj.get("doc", "")),
        params=tuple(ParsedParam(name=p["name"], type=_type_from_obj(p["type"])) for p in obj.get("params", [])),
        results=tuple(ParsedResult(name=r["name"], type=_type_from_obj(r["type"])) for r in obj.get("results", [])),
        is_variadic=bool(obj.get("variadic", False)),
    )


def _method_to_obj(m: ParsedMethod) -> dict[str, Any]:
    return {
        "name": m.name,
        "doc": m.doc,
        "recv_name": m.receiver_name,
        "recv_type": m.receiver_type,
        "recv_ptr": m.receiver_is_ptr,
        "params": _params_to_obj(m.params),
        "results": _params_to_obj(m.results),
        "variadic": m.is_variadic,
    }


def _method_from_obj(obj: dict[str, Any]) -> ParsedMethod:
    return ParsedMethod(
        name=str(obj["name"]),
        receiver_name=str(obj.get("recv_name", "")),
        receiver_type=str(obj["recv_type"]),
        receiver_is_ptr=bool(obj.get("recv_ptr", False)),
        doc=str(obj.get("doc", "")),
        params=tuple(ParsedParam(name=p["name"], type=_type_from_obj(p["type"])) for p in obj.get("params", [])),
        results=tuple(ParsedResult(name=r["name"], type=_type_from_obj(r["type"])) for r in obj.get("results", [])),
        is_variadic=bool(obj.get("variadic", False)),
    )


def _struct_to_obj(st: ParsedStruct) -> dict[str, Any]:
    return {
        "name": st.name,
        "doc": st.doc,
        "fields": [
            {"name": f.name, "type": _type_to_obj(f.type), "tag": f.tag, "exported": f.exported}
            for f in st.fields
        ],
        "methods": [_method_to_obj(m) for m in st.methods],
    }


def _struct_from_obj(obj: dict[str, Any]) -> ParsedStruct:
    return ParsedStruct(
        name=str(obj["name"]),
        doc=str(obj.get("doc", "")),
        fields=tuple(
            ParsedField(
                name=str(f["name"]),
                type=_type_from_obj(f["type"]),
                tag=str(f.get("tag", "")),
                exported=bool(f.get("exported", False)),
            )
            for f in obj.get("fields", [])
        ),
        methods=tuple(_method_from_obj(m) for m in obj.get("methods", [])),
    )
