import pytest

from goanywhere.naming import py_identifier, to_snake_case


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Add", "add"),
        ("NewPoint", "new_point"),
        ("ProcessArray", "process_array"),
        ("x", "x"),
        ("HTTPServer", "h_t_t_p_server"),
        ("", ""),
    ],
)
def test_to_snake_case(name: str, expected: str):
    assert to_snake_case(name) == expected


def test_py_identifier_escapes_keywords():
    assert py_identifier("lambda") == "lambda_"
    assert py_identifier("from") == "from_"
    assert py_identifier("value") == "value"
