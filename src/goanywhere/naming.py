from __future__ import annotations

import keyword


def to_snake_case(name: str) -> str:
    """Convert a Go identifier to snake_case.

    Every upper-case letter starts its own segment, so acronyms split per
    letter: ``HTTPServer`` becomes ``h_t_t_p_server``.
    """
    out: list[str] = []
    for i, ch in enumerate(name):
        if ch.isupper():
            if i > 0:
                out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def py_identifier(name: str) -> str:
    """Make ``name`` usable as a Python identifier (keywords get a trailing ``_``)."""
    if keyword.iskeyword(name):
        return name + "_"
    return name
