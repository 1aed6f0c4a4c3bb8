from __future__ import annotations

import logging

import pytest

from goanywhere.callconv import check_transferable, lower_signature, plan_exports
from goanywhere.errors import UnsupportedSignatureError, UnsupportedTypeError
from goanywhere.model import (
    ParsedFunc,
    ParsedPackage,
    ParsedParam,
    ParsedResult,
    ParsedStruct,
    ParsedType,
    TypeKind,
)
from goanywhere.plugins.cgo.mapper import TypeMapper

INT = ParsedType(kind=TypeKind.PRIMITIVE, name="int")
STRING = ParsedType(kind=TypeKind.STRING, name="string")
ERROR = ParsedType(kind=TypeKind.ERROR, name="error")
INTS = ParsedType(kind=TypeKind.SLICE, name="[]int", elem=INT)


def _lower(params=(), results=(), structs=()):  # noqa: ANN001
    mapper = TypeMapper(structs)
    return lower_signature(params, results, mapper.map_type, structs)


def test_single_value_returns_directly():
    sig = _lower([ParsedParam("a", INT)], [ParsedResult("", INT)])

    assert [s.name for s in sig.inputs] == ["a"]
    assert sig.outputs == ()
    assert sig.ret is not None
    assert sig.ret.desc.c_type == "C.longlong"
    assert sig.has_error is False
    assert sig.result_order == (0,)


def test_error_result_moves_value_to_out_param():
    sig = _lower([ParsedParam("a", INT)], [ParsedResult("", INT), ParsedResult("", ERROR)])

    assert sig.ret is None
    assert [s.name for s in sig.outputs] == ["out0"]
    assert sig.has_error is True
    assert sig.result_order == (0, None)


def test_slice_result_needs_length_slot():
    sig = _lower([], [ParsedResult("", INTS)])

    assert sig.ret is None
    assert [s.name for s in sig.outputs] == ["out0"]
    assert sig.outputs[0].desc.has_length is True


def test_multiple_results_are_numbered_in_order():
    sig = _lower([], [ParsedResult("min", INT), ParsedResult("", STRING), ParsedResult("", ERROR)])

    assert [s.name for s in sig.outputs] == ["out0", "out1"]
    assert [s.type.kind for s in sig.outputs] == [TypeKind.PRIMITIVE, TypeKind.STRING]
    assert sig.result_order == (0, 1, None)


def test_error_in_the_middle_keeps_result_positions():
    sig = _lower([], [ParsedResult("", INT), ParsedResult("", ERROR), ParsedResult("", STRING)])

    assert sig.result_order == (0, None, 1)
    assert [s.name for s in sig.outputs] == ["out0", "out1"]


def test_unnamed_params_get_positional_names():
    sig = _lower([ParsedParam("", INT), ParsedParam("_", INT), ParsedParam("x", INT)])

    assert [s.name for s in sig.inputs] == ["arg0", "arg1", "x"]


def test_two_error_results_are_rejected():
    with pytest.raises(UnsupportedSignatureError, match="at most one error"):
        _lower([], [ParsedResult("", ERROR), ParsedResult("", ERROR)])


def test_error_param_is_rejected():
    with pytest.raises(UnsupportedTypeError, match="only supported as results"):
        _lower([ParsedParam("e", ERROR)])


def test_check_transferable_rules():
    structs = {"Point"}
    point_ptr = ParsedType(
        kind=TypeKind.POINTER,
        name="*Point",
        elem=ParsedType(kind=TypeKind.STRUCT, name="Point"),
        is_pointer=True,
    )
    check_transferable(point_ptr, structs)
    check_transferable(ParsedType(kind=TypeKind.POINTER, name="*int", elem=INT, is_pointer=True), structs)
    check_transferable(ParsedType(kind=TypeKind.ARRAY, name="[3]int", elem=INT, size=3), structs)

    nested = ParsedType(kind=TypeKind.SLICE, name="[][]int", elem=INTS)
    with pytest.raises(UnsupportedTypeError, match="elements"):
        check_transferable(nested, structs)

    ptr_to_slice = ParsedType(kind=TypeKind.POINTER, name="*[]int", elem=INTS, is_pointer=True)
    with pytest.raises(UnsupportedTypeError, match="pointers"):
        check_transferable(ptr_to_slice, structs)


def test_foreign_types_are_rejected():
    duration = ParsedType(kind=TypeKind.STRUCT, name="Duration", package_path="time")
    with pytest.raises(UnsupportedTypeError, match="other packages"):
        check_transferable(duration, set())

    nested = ParsedType(kind=TypeKind.MAP, name="map[string]Duration", key=STRING, elem=duration)
    with pytest.raises(UnsupportedTypeError, match="other packages"):
        check_transferable(nested, set())


def test_arrays_need_a_literal_length():
    unsized = ParsedType(kind=TypeKind.ARRAY, name="[0]int", elem=INT, size=0)

    with pytest.raises(UnsupportedTypeError, match="positive integer literal"):
        check_transferable(unsized, set())


def test_plan_exports_simple(simple_pkg):
    mapper = TypeMapper(simple_pkg.struct_names())
    plan = plan_exports(simple_pkg, mapper.map_type)

    # Sum is variadic.
    assert [f.symbol for f in plan.functions] == [
        "simple_Add",
        "simple_Greet",
        "simple_Divide",
        "simple_NewPoint",
    ]
    (point,) = plan.structs
    assert (point.new_symbol, point.free_symbol) == ("Point_New", "Point_Free")
    assert [(a.getter, a.setter) for a in point.accessors] == [
        ("Point_GetX", "Point_SetX"),
        ("Point_GetY", "Point_SetY"),
    ]
    assert [m.symbol for m in point.methods] == ["Point_Distance", "Point_Scale", "Point_Moved"]


def test_plan_exports_methods_win_over_accessors(complex_pkg):
    mapper = TypeMapper(complex_pkg.struct_names())
    plan = plan_exports(complex_pkg, mapper.map_type)

    (config,) = plan.structs
    assert [m.symbol for m in config.methods] == ["Config_GetName", "Config_SetValues"]
    # Name clashes with GetName, Values with SetValues.
    assert [a.field.name for a in config.accessors] == ["Data", "Options"]


def test_plan_exports_symbol_collisions(caplog):
    # Package "Point" with function New generates Point_New before the struct does.
    pkg = ParsedPackage(
        name="Point",
        import_path="example.com/point",
        dir="",
        functions=(ParsedFunc(name="New", results=(ParsedResult("", INT),)),),
        structs=(ParsedStruct(name="Point"), ParsedStruct(name="Line")),
    )
    mapper = TypeMapper(pkg.struct_names())

    with caplog.at_level(logging.INFO, logger="goanywhere"):
        plan = plan_exports(pkg, mapper.map_type, verbose=True)

    assert [f.symbol for f in plan.functions] == ["Point_New"]
    assert [s.new_symbol for s in plan.structs] == ["Line_New"]
    assert "Skipping struct Point: symbol Point_New is already generated" in caplog.text


def test_plan_exports_reserved_and_duplicate_symbols(caplog):
    pkg = ParsedPackage(
        name="Free",
        import_path="example.com/free",
        dir="",
        functions=(
            ParsedFunc(name="String", params=(ParsedParam("s", STRING),)),
            ParsedFunc(name="Total", params=(ParsedParam("xs", INTS),), is_variadic=True),
        ),
        structs=(ParsedStruct(name="Thing", fields=()),),
    )
    mapper = TypeMapper(pkg.struct_names())

    with caplog.at_level(logging.INFO, logger="goanywhere"):
        plan = plan_exports(pkg, mapper.map_type, verbose=True)

    assert plan.functions == ()
    assert "symbol Free_String is already generated" in caplog.text
    assert "variadic functions are not supported" in caplog.text
    assert [s.struct.name for s in plan.structs] == ["Thing"]


def test_plan_exports_skips_error_fields(fixtures_dir):
    from goanywhere.parser import parse_package

    pkg = parse_package(fixtures_dir / "unsupported")
    mapper = TypeMapper(pkg.struct_names())
    plan = plan_exports(pkg, mapper.map_type)

    (holder,) = plan.structs
    assert [a.field.name for a in holder.accessors] == ["Name"]
    # Wait uses time.Duration; Join is variadic.
    assert [f.func.name for f in plan.functions] == ["Ok"]
