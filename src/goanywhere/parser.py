from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass, replace
from pathlib import Path

import tree_sitter_go
from tree_sitter import Language, Node, Parser as TSParser

from .errors import ParseError, UnsupportedTypeError
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
    is_exported,
)

logger = logging.getLogger(__name__)

GO_LANGUAGE = Language(tree_sitter_go.language())

PRIMITIVE_TYPES = frozenset(
    {
        "int", "int8", "int16", "int32", "int64",
        "uint", "uint8", "uint16", "uint32", "uint64",
        "float32", "float64",
        "bool", "byte", "rune", "uintptr",
    }
)

_DIRECTIVE_PREFIXES = ("go:", "line ", "export ", "extern ")


@dataclass(frozen=True)
class _SourceFile:
    path: Path
    src: bytes
    root: Node
    package: str


def _node_text(src: bytes, node: Node) -> str:
    return src[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _child_text(node: Node, field: str, src: bytes) -> str | None:
    child = node.child_by_field_name(field)
    if child is None:
        return None
    return _node_text(src, child)


def _named(node: Node) -> list[Node]:
    return [c for c in node.named_children if c.type != "comment"]


def _first_syntax_error(node: Node) -> Node | None:
    if node.type == "ERROR" or node.is_missing:
        return node
    if not node.has_error:
        return None
    for child in node.children:
        found = _first_syntax_error(child)
        if found is not None:
            return found
    return node


def _comment_text(raw: str) -> list[str]:
    if raw.startswith("//"):
        body = raw[2:]
        if body.startswith(_DIRECTIVE_PREFIXES):
            return []
        if body.startswith(" "):
            body = body[1:]
        return [body]
    body = raw[2:-2] if raw.endswith("*/") else raw[2:]
    return body.splitlines()


def _doc_text(comments: list[Node], src: bytes) -> str:
    """Render a comment group the way go/ast.CommentGroup.Text does."""
    lines: list[str] = []
    for c in comments:
        lines.extend(line.rstrip() for line in _comment_text(_node_text(src, c)))

    # Collapse runs of blank lines and trim leading/trailing blanks.
    out: list[str] = []
    for line in lines:
        if not line and (not out or not out[-1]):
            continue
        out.append(line)
    while out and not out[-1]:
        out.pop()
    if not out:
        return ""
    return "\n".join(out) + "\n"


def _with_docs(parent: Node) -> Iterator[tuple[Node, list[Node]]]:
    """Yield each non-comment named child with the comment group directly above it."""
    group: list[Node] = []
    prev_end_row = -1
    for child in parent.named_children:
        if child.type == "comment":
            row = child.start_point[0]
            if row == prev_end_row and not group:
                # Trailing comment on the previous declaration's line.
                prev_end_row = child.end_point[0]
                continue
            if group and row > group[-1].end_point[0] + 1:
                group = []
            group.append(child)
            prev_end_row = child.end_point[0]
            continue
        doc = group if group and child.start_point[0] == group[-1].end_point[0] + 1 else []
        yield child, doc
        group = []
        prev_end_row = child.end_point[0]


class Parser:
    """Extract the exported surface of a Go package into the IR.

    Unsupported types drop only the declaration they occur in; syntax
    errors abort the whole package.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self._ts = TSParser(GO_LANGUAGE)

    def parse_package(self, directory: str | Path) -> ParsedPackage:
        path = Path(directory).resolve()
        if not path.is_dir():
            raise ParseError(f"failed to parse directory: {path} is not a directory")

        files = self._read_files(path)
        if not files:
            raise ParseError(f"no Go packages found in {path}")

        by_package: dict[str, list[_SourceFile]] = {}
        for f in files:
            by_package.setdefault(f.package, []).append(f)

        pkg_name = next((name for name in by_package if not name.endswith("_test")), None)
        if pkg_name is None:
            raise ParseError(f"no non-test packages found in {path}")

        functions: list[ParsedFunc] = []
        structs: list[ParsedStruct] = []
        methods_by_receiver: dict[str, list[ParsedMethod]] = defaultdict(list)

        # Pass 1: index everything; methods may precede their struct or live in another file.
        for f in by_package[pkg_name]:
            for node, doc in _with_docs(f.root):
                if node.type == "function_declaration":
                    fn = self._parse_func(node, doc, f.src)
                    if fn is not None:
                        functions.append(fn)
                elif node.type == "method_declaration":
                    method = self._parse_method(node, doc, f.src)
                    if method is not None:
                        methods_by_receiver[method.receiver_type].append(method)
                elif node.type == "type_declaration":
                    structs.extend(self._parse_type_decl(node, doc, f.src))

        # Pass 2: attach methods to their structs.
        structs = [
            replace(st, methods=tuple(methods_by_receiver.get(st.name, ()))) for st in structs
        ]

        return ParsedPackage(
            name=pkg_name,
            import_path="",
            dir=str(path),
            functions=tuple(functions),
            structs=tuple(structs),
        )

    def _read_files(self, path: Path) -> list[_SourceFile]:
        out: list[_SourceFile] = []
        for file in sorted(path.glob("*.go")):
            if file.name.endswith("_test.go") or not file.is_file():
                continue
            src = file.read_bytes()
            tree = self._ts.parse(src)
            bad = _first_syntax_error(tree.root_node)
            if bad is not None:
                line = bad.start_point[0] + 1
                raise ParseError(f"{file}:{line}: syntax error near {_node_text(src, bad)[:40]!r}")
            clause = next((c for c in tree.root_node.named_children if c.type == "package_clause"), None)
            if clause is None:
                raise ParseError(f"{file}: missing package clause")
            ident = next((c for c in clause.named_children if c.type in {"package_identifier", "identifier"}), None)
            if ident is None:
                raise ParseError(f"{file}: missing package name")
            out.append(_SourceFile(path=file, src=src, root=tree.root_node, package=_node_text(src, ident)))
        return out

    def _skip(self, what: str, name: str, err: Exception) -> None:
        if self.verbose:
            logger.info("Skipping %s %s: %s", what, name, err)

    # Declarations

    def _parse_func(self, node: Node, doc: list[Node], src: bytes) -> ParsedFunc | None:
        name = _child_text(node, "name", src) or ""
        if not is_exported(name):
            return None
        try:
            if node.child_by_field_name("type_parameters") is not None:
                raise UnsupportedTypeError("generic", "type parameters cannot be exposed via CGO")
            params, variadic = self._parse_params(node.child_by_field_name("parameters"), src)
            results = self._parse_results(node.child_by_field_name("result"), src)
        except UnsupportedTypeError as e:
            self._skip("function", name, e)
            return None
        return ParsedFunc(
            name=name,
            doc=_doc_text(doc, src),
            params=tuple(params),
            results=tuple(results),
            is_variadic=variadic,
        )

    def _parse_method(self, node: Node, doc: list[Node], src: bytes) -> ParsedMethod | None:
        name = _child_text(node, "name", src) or ""
        if not is_exported(name):
            return None

        receiver_name = ""
        receiver_type = ""
        receiver_is_ptr = False
        recv_list = node.child_by_field_name("receiver")
        decls = _named(recv_list) if recv_list is not None else []
        if not decls:
            return None
        recv = decls[0]
        names = recv.children_by_field_name("name")
        if names:
            receiver_name = _node_text(src, names[0])
        rtype = recv.child_by_field_name("type")
        if rtype is not None and rtype.type == "pointer_type":
            receiver_is_ptr = True
            inner = _named(rtype)
            rtype = inner[0] if inner else None
        if rtype is not None and rtype.type == "type_identifier":
            receiver_type = _node_text(src, rtype)

        # Methods on unexported or generic receivers are skipped.
        if not is_exported(receiver_type):
            return None

        try:
            params, variadic = self._parse_params(node.child_by_field_name("parameters"), src)
            results = self._parse_results(node.child_by_field_name("result"), src)
        except UnsupportedTypeError as e:
            self._skip("method", f"{receiver_type}.{name}", e)
            return None
        return ParsedMethod(
            name=name,
            receiver_name=receiver_name,
            receiver_type=receiver_type,
            receiver_is_ptr=receiver_is_ptr,
            doc=_doc_text(doc, src),
            params=tuple(params),
            results=tuple(results),
            is_variadic=variadic,
        )

    def _parse_type_decl(self, node: Node, doc: list[Node], src: bytes) -> list[ParsedStruct]:
        out: list[ParsedStruct] = []
        for spec, spec_doc in _with_docs(node):
            if spec.type != "type_spec":
                continue
            body = spec.child_by_field_name("type")
            if body is None or body.type != "struct_type":
                continue
            name = _child_text(spec, "name", src) or ""
            if not is_exported(name):
                continue
            if spec.child_by_field_name("type_parameters") is not None:
                self._skip("struct", name, UnsupportedTypeError("generic", "type parameters cannot be exposed via CGO"))
                continue
            out.append(self._parse_struct(name, body, doc or spec_doc, src))
        return out

    def _parse_struct(self, name: str, body: Node, doc: list[Node], src: bytes) -> ParsedStruct:
        fields: list[ParsedField] = []
        field_list = next((c for c in body.named_children if c.type == "field_declaration_list"), None)
        for decl in _named(field_list) if field_list is not None else []:
            if decl.type != "field_declaration":
                continue
            type_node = decl.child_by_field_name("type")
            tag_node = decl.child_by_field_name("tag")
            tag = _node_text(src, tag_node) if tag_node is not None else ""
            try:
                pt = self.parse_type(type_node, src)
            except UnsupportedTypeError as e:
                self._skip("field in", name, e)
                continue

            names = decl.children_by_field_name("name")
            if not names:
                # Embedded field: named after its type.
                if any(c.type == "*" for c in decl.children):
                    pt = _pointer_to(pt)
                fields.append(ParsedField(name=pt.name, type=pt, tag=tag, exported=is_exported(pt.name)))
                continue
            for n in names:
                fname = _node_text(src, n)
                fields.append(ParsedField(name=fname, type=pt, tag=tag, exported=is_exported(fname)))
        return ParsedStruct(name=name, doc=_doc_text(doc, src), fields=tuple(fields))

    # Signatures

    def _parse_params(self, plist: Node | None, src: bytes) -> tuple[list[ParsedParam], bool]:
        params: list[ParsedParam] = []
        variadic = False
        for decl in _named(plist) if plist is not None else []:
            type_node = decl.child_by_field_name("type")
            if decl.type == "variadic_parameter_declaration":
                variadic = True
                elem = self.parse_type(type_node, src)
                pt = ParsedType(kind=TypeKind.SLICE, name="..." + elem.name, elem=elem)
            elif decl.type == "parameter_declaration":
                pt = self.parse_type(type_node, src)
            else:
                continue
            names = decl.children_by_field_name("name")
            if not names:
                params.append(ParsedParam(name="", type=pt))
            for n in names:
                params.append(ParsedParam(name=_node_text(src, n), type=pt))
        return params, variadic

    def _parse_results(self, result: Node | None, src: bytes) -> list[ParsedResult]:
        if result is None:
            return []
        if result.type != "parameter_list":
            return [ParsedResult(name="", type=self.parse_type(result, src))]
        results: list[ParsedResult] = []
        for decl in _named(result):
            if decl.type != "parameter_declaration":
                continue
            pt = self.parse_type(decl.child_by_field_name("type"), src)
            names = decl.children_by_field_name("name")
            if not names:
                results.append(ParsedResult(name="", type=pt))
            for n in names:
                results.append(ParsedResult(name=_node_text(src, n), type=pt))
        return results

    # Types

    def parse_type(self, node: Node | None, src: bytes) -> ParsedType:
        """Resolve a type expression by recursive descent."""
        if node is None:
            raise UnsupportedTypeError("<missing>", "type expression is missing")
        kind = node.type

        if kind == "type_identifier":
            return ident_to_type(_node_text(src, node))

        if kind == "parenthesized_type":
            inner = _named(node)
            return self.parse_type(inner[0] if inner else None, src)

        if kind == "qualified_type":
            pkg = _child_text(node, "package", src) or ""
            name = _child_text(node, "name", src) or ""
            # Imported types are not resolved; assume a struct.
            return ParsedType(kind=TypeKind.STRUCT, name=name, package_path=pkg)

        if kind == "pointer_type":
            inner = _named(node)
            return _pointer_to(self.parse_type(inner[0] if inner else None, src))

        if kind == "slice_type":
            elem = self.parse_type(node.child_by_field_name("element"), src)
            return ParsedType(kind=TypeKind.SLICE, name="[]" + elem.name, elem=elem)

        if kind == "array_type":
            elem = self.parse_type(node.child_by_field_name("element"), src)
            size = _array_len(node.child_by_field_name("length"), src)
            return ParsedType(kind=TypeKind.ARRAY, name=f"[{size}]{elem.name}", elem=elem, size=size)

        if kind == "map_type":
            key = self.parse_type(node.child_by_field_name("key"), src)
            val = self.parse_type(node.child_by_field_name("value"), src)
            return ParsedType(kind=TypeKind.MAP, name=f"map[{key.name}]{val.name}", key=key, elem=val)

        if kind == "channel_type":
            raise UnsupportedTypeError("chan", "channels cannot be exposed via CGO")

        if kind == "function_type":
            raise UnsupportedTypeError("func", "function types cannot be exposed via CGO")

        if kind == "interface_type":
            if not _named(node):
                return ParsedType(kind=TypeKind.INTERFACE, name="interface{}")
            raise UnsupportedTypeError("interface", "non-empty interfaces cannot be exposed via CGO")

        if kind == "generic_type":
            raise UnsupportedTypeError("generic", "generic type instantiations cannot be exposed via CGO")

        if kind == "struct_type":
            raise UnsupportedTypeError("struct", "anonymous struct types cannot be exposed via CGO")

        raise UnsupportedTypeError(kind, "unknown type expression")


def ident_to_type(name: str) -> ParsedType:
    if name in PRIMITIVE_TYPES:
        return ParsedType(kind=TypeKind.PRIMITIVE, name=name)
    if name == "string":
        return ParsedType(kind=TypeKind.STRING, name=name)
    if name == "error":
        return ParsedType(kind=TypeKind.ERROR, name=name)
    if name == "any":
        return ParsedType(kind=TypeKind.INTERFACE, name="interface{}")
    # Anything else is assumed to be a struct declared in this package.
    return ParsedType(kind=TypeKind.STRUCT, name=name)


def _pointer_to(elem: ParsedType) -> ParsedType:
    return ParsedType(kind=TypeKind.POINTER, name="*" + elem.name, elem=elem, is_pointer=True)


def _array_len(node: Node | None, src: bytes) -> int:
    if node is None or node.type != "int_literal":
        return 0
    text = _node_text(src, node).replace("_", "")
    try:
        return int(text, 0)
    except ValueError:
        pass
    # Legacy octal literal such as 010.
    try:
        return int(text, 8)
    except ValueError:
        return 0


def parse_package(directory: str | Path, *, verbose: bool = False) -> ParsedPackage:
    return Parser(verbose=verbose).parse_package(directory)
