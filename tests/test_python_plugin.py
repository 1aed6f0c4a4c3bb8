from __future__ import annotations

import importlib.util
import subprocess
import sys
from pathlib import Path

import pytest

from goanywhere.model import (
    ParsedFunc,
    ParsedPackage,
    ParsedParam,
    ParsedResult,
    ParsedStruct,
    ParsedType,
    TypeKind,
)
from goanywhere.plugin import BuildOptions
from goanywhere.plugins.python.plugin import PythonPlugin

INT = ParsedType(kind=TypeKind.PRIMITIVE, name="int")


def _import_from_path(path: Path, module_name: str):
    spec = importlib.util.spec_from_file_location(module_name, path)
    assert spec is not None and spec.loader is not None
    mod = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = mod
    spec.loader.exec_module(mod)  # type: ignore[union-attr]
    return mod


def _generate(pkg: ParsedPackage, **kwargs) -> str:  # noqa: ANN003
    return PythonPlugin(**kwargs).generate(pkg).decode("utf-8")


def test_generate_module_header(simple_pkg):
    code = _generate(simple_pkg)

    assert code.startswith("# Code generated by goanywhere. DO NOT EDIT.\n")
    assert '"""Python bindings for the Go package simple (example.com/fixtures/simple)."""' in code
    assert "from ctypes import (" in code
    assert "_LIBRARY_NAME = 'libsimple'" in code
    for ext in (".so", ".dylib", ".dll"):
        assert ext in code
    assert "def load_library(" in code


def test_generate_functions(simple_pkg):
    code = _generate(simple_pkg)

    assert "def add(a: int, b: int) -> int:\n" in code
    assert '    """Add adds two integers"""\n' in code
    assert "    _ret = _get_lib().simple_Add(a, b)\n" in code
    assert "def greet(name: str) -> str:" in code
    assert "_get_lib().simple_Greet(_encode_string(name))" in code
    assert "return _decode_string(_ret)" in code
    assert "def divide(a: float, b: float) -> float:" in code
    assert "_get_lib().simple_Divide(a, b, byref(_out0), byref(_err))\n    _check_error(_err)" in code
    assert "def new_point(x: int, y: int) -> Point | None:" in code
    assert "return _wrap(Point, _ret)" in code
    assert "def sum(" not in code


def test_generate_prototypes(simple_pkg):
    code = _generate(simple_pkg)

    assert "    lib.simple_Add.argtypes = [c_longlong, c_longlong]\n" in code
    assert "    lib.simple_Add.restype = c_longlong\n" in code
    assert "    lib.simple_Greet.restype = c_void_p\n" in code
    assert "    lib.simple_Divide.argtypes = [c_double, c_double, POINTER(c_double), POINTER(c_void_p)]\n" in code
    assert "    lib.Point_Scale.argtypes = [c_size_t, c_longlong]\n" in code


def test_generate_struct_class(simple_pkg):
    code = _generate(simple_pkg)

    assert "class Point:\n" in code
    assert "        self._handle = _get_lib().Point_New()\n" in code
    assert "            _lib.Point_Free(handle)\n" in code
    assert "    @property\n    def x(self) -> int:\n" in code
    assert "    @x.setter\n    def x(self, value: int) -> None:\n" in code
    assert "    def scale(self, factor: int) -> None:\n" in code
    assert "    def moved(self, dx: int) -> Point:\n" in code
    assert "def __enter__(self) -> Point:" in code


def test_generate_context_manager_only_with_methods():
    pkg = ParsedPackage(
        name="bare",
        import_path="example.com/bare",
        dir="",
        structs=(ParsedStruct(name="Plain"),),
    )
    code = _generate(pkg)

    assert "class Plain:" in code
    assert "__enter__" not in code


def test_generate_containers(complex_pkg):
    code = _generate(complex_pkg)

    assert "def process_array(data: list[int]) -> list[int]:" in code
    assert "_c_data = (c_longlong * 10)(*[_v for _v in data[:10]])" in code
    assert "return _take_array(_ret, 10, lambda v: v)" in code
    assert "def process_slice(data: list[str]) -> list[str]:" in code
    assert "_c_data = (c_char_p * len(data))(*[_encode_string(_v) for _v in data])" in code
    assert "return _take_array(_out0, _out0_len.value, _decode_string)" in code
    assert "def process_bytes(data: bytes) -> bytes:" in code
    assert "_get_lib().complex_ProcessBytes(data, len(data), byref(_out0), byref(_out0_len))" in code
    assert "def process_map(data: GoObject) -> GoObject:" in code
    assert "def increment(n: int | None) -> None:" in code
    assert "byref(_c_n) if _c_n is not None else None" in code
    assert "def min_max(values: list[int]) -> tuple[int, int]:" in code
    assert "return (_out0.value, _out1.value)" in code


def test_generate_methods_win_over_accessors(complex_pkg):
    code = _generate(complex_pkg)

    assert "    def get_name(self) -> str:" in code
    assert "    def set_values(self, values: list[int]) -> None:" in code
    assert "def name(self)" not in code
    assert "    @property\n    def data(self) -> list[int]:" in code


def test_generate_renames_reserved_and_keyword_names():
    pkg = ParsedPackage(
        name="odd",
        import_path="example.com/odd",
        dir="",
        functions=(
            ParsedFunc(name="LoadLibrary", params=(ParsedParam("lambda", INT),)),
            ParsedFunc(name="Pass", results=(ParsedResult("", INT),)),
        ),
    )
    code = _generate(pkg)

    assert "def load_library_(lambda_: int) -> None:" in code
    assert "_get_lib().odd_LoadLibrary(lambda_)" in code
    assert "def pass_() -> int:" in code


def test_generate_custom_library_name(simple_pkg):
    assert "_LIBRARY_NAME = 'libgeometry'" in _generate(simple_pkg, library_name="libgeometry")


@pytest.mark.parametrize("fixture", ["simple", "complex", "unsupported", "user"])
def test_generated_module_compiles(fixtures_dir, fixture):
    from dataclasses import replace

    from goanywhere.parser import parse_package

    pkg = replace(parse_package(fixtures_dir / fixture), import_path=f"example.com/fixtures/{fixture}")
    code = _generate(pkg)

    compile(code, f"{fixture}.py", "exec")


def test_generated_module_imports_without_library(simple_pkg, tmp_path, monkeypatch):
    path = tmp_path / "simple_bindings.py"
    path.write_bytes(PythonPlugin().generate(simple_pkg))

    mod = _import_from_path(path, "simple_bindings")

    assert mod._lib is None  # noqa: SLF001
    assert issubclass(mod.GoError, Exception)
    assert callable(mod.add)
    assert mod.add.__annotations__ == {"a": "int", "b": "int", "return": "int"}
    assert isinstance(mod.Point.__dict__["x"], property)

    monkeypatch.delenv("GOANYWHERE_LIBRARY", raising=False)
    with pytest.raises(OSError, match="libsimple"):
        mod.load_library()


def test_build_writes_package_layout(simple_pkg, fixtures_dir, tmp_path, monkeypatch):
    calls: list[list[str]] = []

    def fake_run(cmd, **kwargs):  # noqa: ANN001
        calls.append(list(cmd))
        return subprocess.CompletedProcess(cmd, 0, stdout=b"", stderr=b"")

    monkeypatch.setattr(subprocess, "run", fake_run)
    monkeypatch.delenv("GOANYWHERE_GO", raising=False)
    monkeypatch.setenv("GOANYWHERE_GOOS", "darwin")

    out = PythonPlugin().build(
        simple_pkg,
        fixtures_dir / "simple",
        BuildOptions(output_dir=tmp_path / "dist", build_system="hatch"),
    )

    assert out == tmp_path / "dist"
    assert (out / "simple" / "__init__.py").read_text(encoding="utf-8").startswith("# Code generated")
    assert 'build-backend = "hatchling.build"' in (out / "pyproject.toml").read_text(encoding="utf-8")
    assert [c[:2] for c in calls] == [["go", "mod"], ["go", "build"]]
    assert calls[1][4] == str((out / "simple" / "libsimple.dylib").resolve())


def test_unsupported_declarations_leave_no_trace(fixtures_dir):
    from dataclasses import replace

    from goanywhere.parser import parse_package

    pkg = replace(parse_package(fixtures_dir / "unsupported"), import_path="example.com/fixtures/unsupported")
    code = _generate(pkg)

    for name in ("listen", "apply", "describe", "watch", "join", "callback"):
        assert f"def {name}(" not in code
    for symbol in ("unsupported_Listen", "unsupported_Join", "Holder_GetCallback", "Holder_Watch", "Stack_New"):
        assert symbol not in code
    assert "class Stack" not in code
    assert "def ok(x: int) -> int:" in code
    assert "    def label(self) -> str:" in code


def _user_module(fixtures_dir, tmp_path: Path, module_name: str):  # noqa: ANN001
    from dataclasses import replace

    from goanywhere.parser import parse_package

    pkg = replace(parse_package(fixtures_dir / "user"), import_path="example.com/fixtures/user")
    path = tmp_path / f"{module_name}.py"
    path.write_bytes(PythonPlugin().generate(pkg))
    return _import_from_path(path, module_name)


def test_generated_names_do_not_shadow_module_helpers(fixtures_dir, tmp_path):
    import ctypes
    import pathlib

    mod = _user_module(fixtures_dir, tmp_path, "user_names")

    assert mod.cast is ctypes.cast
    assert mod.Path is pathlib.Path
    assert callable(mod.cast_)
    assert isinstance(mod.Path_.__dict__["parts"], property)
    assert mod.join.__annotations__["p"] == "Path_ | None"
    assert mod.items.__annotations__["return"] == "list[Item | None]"


def test_renamed_function_calls_through_library(fixtures_dir, tmp_path):
    from types import SimpleNamespace

    mod = _user_module(fixtures_dir, tmp_path, "user_calls")
    mod._lib = SimpleNamespace(user_Cast=lambda x: x * 2)  # noqa: SLF001

    assert mod.cast_(4) == 8


def test_array_helper_uses_ctypes_cast(fixtures_dir, tmp_path):
    from ctypes import POINTER, c_longlong, cast
    from types import SimpleNamespace

    mod = _user_module(fixtures_dir, tmp_path, "user_arrays")
    freed: list = []
    mod._lib = SimpleNamespace(Free_Bytes=freed.append)  # noqa: SLF001

    buf = (c_longlong * 3)(1, 2, 3)
    assert mod._take_array(cast(buf, POINTER(c_longlong)), 3, lambda v: v) == [1, 2, 3]  # noqa: SLF001
    assert len(freed) == 1


def test_library_lookup_survives_struct_named_path(fixtures_dir, tmp_path, monkeypatch):
    mod = _user_module(fixtures_dir, tmp_path, "user_lookup")
    monkeypatch.delenv("GOANYWHERE_LIBRARY", raising=False)

    with pytest.raises(OSError, match="libuser"):
        mod.load_library()


def test_reserved_parameter_and_member_names():
    from goanywhere.model import ParsedField, ParsedMethod

    pkg = ParsedPackage(
        name="odd",
        import_path="example.com/odd",
        dir="",
        functions=(ParsedFunc(name="Wrap", params=(ParsedParam("cast", INT), ParsedParam("os", INT))),),
        structs=(
            ParsedStruct(
                name="GoObject",
                fields=(ParsedField(name="Property", type=INT, exported=True),),
                methods=(ParsedMethod(name="Size", receiver_name="g", receiver_type="GoObject", receiver_is_ptr=True),),
            ),
        ),
    )
    code = _generate(pkg)

    assert "def wrap(cast_: int, os_: int) -> None:" in code
    assert "_get_lib().odd_Wrap(cast_, os_)" in code
    assert "class GoObject_:" in code
    assert "    @property\n    def property_(self) -> int:" in code
    assert "    @property_.setter\n" in code
    compile(code, "odd.py", "exec")
