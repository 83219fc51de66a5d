"""Parsing, traversal and text-edit serialization for JavaScript sources."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Iterator

from tree_sitter import Node, Parser, Tree
from tree_sitter_language_pack import get_parser


class TranspileSyntaxError(ValueError):
    """Raised when a sketch (or its rewritten form) fails to parse."""

    def __init__(self, detail: str, line: int | None = None, column: int | None = None) -> None:
        self.detail = detail
        self.line = line
        self.column = column
        location = f" (line {line}, column {column})" if line is not None else ""
        super().__init__(f"{detail}{location}")


@dataclass(frozen=True, slots=True)
class TextEdit:
    """Replace the UTF-8 byte range ``[start, end)`` with *text*."""

    start: int
    end: int
    text: str

    @classmethod
    def replace(cls, node: Node, text: str) -> "TextEdit":
        return cls(node.start_byte, node.end_byte, text)

    @classmethod
    def insert(cls, offset: int, text: str) -> "TextEdit":
        return cls(offset, offset, text)


@lru_cache(maxsize=1)
def _javascript_parser() -> Parser:
    return get_parser("javascript")


def parse(source: str) -> Tree:
    """Parse *source* as a standalone program, raising on any syntax error."""

    tree = _javascript_parser().parse(source.encode("utf-8"))
    error_node = first_error(tree.root_node)
    if error_node is not None:
        line, column = error_node.start_point
        raise TranspileSyntaxError(_describe_error(error_node), line + 1, column)
    return tree


def first_error(root: Node) -> Node | None:
    """Return the first ERROR or MISSING node in document order."""

    if not root.has_error:
        return None
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        stack.extend(reversed([child for child in node.children if child.has_error]))
    return root


def _describe_error(node: Node) -> str:
    if node.is_missing:
        return f"Missing {node.type!r}"
    snippet = node_text(node).strip().splitlines()
    if not snippet:
        return "Unexpected end of input"
    token = snippet[0]
    if len(token) > 24:
        token = token[:24] + "..."
    return f"Unexpected token {token!r}"


def iter_nodes(root: Node) -> Iterator[Node]:
    """Yield *root* and its descendants in pre-order."""

    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def node_text(node: Node) -> str:
    return node.text.decode("utf-8") if node.text is not None else ""


def same_node(a: Node | None, b: Node | None) -> bool:
    if a is None or b is None:
        return False
    return a.type == b.type and a.start_byte == b.start_byte and a.end_byte == b.end_byte


def is_field(parent: Node, field: str, node: Node) -> bool:
    """Return True if *node* is the child stored under *field* of *parent*."""

    return same_node(parent.child_by_field_name(field), node)


def apply_edits(source: str, edits: Iterable[TextEdit]) -> str:
    """Serialize *source* with *edits* applied; edits must not overlap."""

    data = source.encode("utf-8")
    ordered = sorted(edits, key=lambda edit: (edit.start, edit.end))
    pieces: list[bytes] = []
    cursor = 0
    for edit in ordered:
        if edit.start < cursor:
            raise ValueError(f"Overlapping rewrite at byte {edit.start}")
        pieces.append(data[cursor : edit.start])
        pieces.append(edit.text.encode("utf-8"))
        cursor = edit.end
    pieces.append(data[cursor:])
    return b"".join(pieces).decode("utf-8")
