from __future__ import annotations

import pytest

from goanywhere.errors import UnsupportedTypeError
from goanywhere.model import ParsedType, TypeKind
from goanywhere.plugins.cgo.mapper import HANDLE_CTYPE, TypeMapper


def _prim(name: str) -> ParsedType:
    return ParsedType(kind=TypeKind.PRIMITIVE, name=name)


@pytest.mark.parametrize(
    ("go", "c"),
    [
        ("int", "C.longlong"),
        ("int32", "C.int32_t"),
        ("uint", "C.ulonglong"),
        ("byte", "C.uint8_t"),
        ("float32", "C.float"),
        ("float64", "C.double"),
        ("bool", "C.bool"),
        ("rune", "C.int32_t"),
        ("uintptr", "C.uintptr_t"),
    ],
)
def test_map_primitive(go: str, c: str):
    assert TypeMapper([]).map_type(_prim(go)).c_type == c


def test_map_string_and_error():
    m = TypeMapper([])

    s = m.map_type(ParsedType(kind=TypeKind.STRING, name="string"))
    assert s.c_type == "*C.char"
    assert s.needs_alloc and s.needs_free

    e = m.map_type(ParsedType(kind=TypeKind.ERROR, name="error"))
    assert e.c_type == "**C.char"
    assert e.is_out_param is True


def test_map_handles():
    m = TypeMapper(["Point"])
    point = ParsedType(kind=TypeKind.STRUCT, name="Point")

    ptr = m.map_type(ParsedType(kind=TypeKind.POINTER, name="*Point", elem=point, is_pointer=True))
    assert (ptr.c_type, ptr.is_handle, ptr.is_nullable) == (HANDLE_CTYPE, True, True)

    value = m.map_type(point)
    assert (value.c_type, value.is_handle, value.is_nullable) == (HANDLE_CTYPE, True, False)

    mp = m.map_type(
        ParsedType(kind=TypeKind.MAP, name="map[string]int", key=_prim("int"), elem=_prim("int"))
    )
    assert mp.is_handle is True

    iface = m.map_type(ParsedType(kind=TypeKind.INTERFACE, name="interface{}"))
    assert iface.is_handle and iface.is_nullable


def test_map_pointer_to_primitive():
    desc = TypeMapper([]).map_type(
        ParsedType(kind=TypeKind.POINTER, name="*int", elem=_prim("int"), is_pointer=True)
    )

    assert desc.c_type == "*C.longlong"
    assert desc.is_handle is False
    assert desc.elem.c_type == "C.longlong"


def test_map_slices_and_arrays():
    m = TypeMapper([])

    raw = m.map_type(ParsedType(kind=TypeKind.SLICE, name="[]byte", elem=_prim("byte")))
    assert (raw.c_type, raw.is_bytes, raw.has_length) == ("unsafe.Pointer", True, True)

    strs = m.map_type(
        ParsedType(kind=TypeKind.SLICE, name="[]string", elem=ParsedType(kind=TypeKind.STRING, name="string"))
    )
    assert strs.c_type == "**C.char"
    assert strs.has_length is True

    arr = m.map_type(ParsedType(kind=TypeKind.ARRAY, name="[4]float64", elem=_prim("float64"), size=4))
    assert arr.c_type == "*C.double"
    assert arr.size == 4
    assert arr.has_length is False


def test_map_rejects_chan_and_func():
    m = TypeMapper([])

    with pytest.raises(UnsupportedTypeError):
        m.map_type(ParsedType(kind=TypeKind.CHAN, name="chan int"))
    with pytest.raises(UnsupportedTypeError):
        m.map_type(ParsedType(kind=TypeKind.FUNC, name="func()"))
