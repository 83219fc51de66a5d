"""Prefix renaming of user bindings so they never collide with library globals.

The rename map is name based: every variable declared anywhere in the program
is collected before rewriting, and each occurrence of that name that is not a
property key receives the prefixed form.  Function and catch parameters are
left alone, but they and any block-local declaration shadow library names and
hoisted callbacks inside their scope.
"""

from __future__ import annotations

from typing import Iterable, Iterator

from tree_sitter import Node

from ..symbols import SymbolTable
from .syntax import TextEdit, is_field, iter_nodes, node_text

RenameMap = dict[str, str]
Span = tuple[int, int]

SHORTHAND_PROPERTY = "shorthand_property_identifier"
SHORTHAND_PATTERN = "shorthand_property_identifier_pattern"

NAMED_DEFINITIONS = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "class_declaration",
        "class",
    }
)
FUNCTION_SCOPES = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)
MODULE_SPECIFIERS = frozenset(
    {"import_specifier", "export_specifier", "namespace_import", "namespace_export", "import_clause"}
)


def span_of(node: Node) -> Span:
    return (node.start_byte, node.end_byte)


def pattern_bindings(node: Node) -> Iterator[Node]:
    """Yield the identifier nodes bound by a declaration target."""

    kind = node.type
    if kind in ("identifier", SHORTHAND_PATTERN):
        yield node
    elif kind in ("object_pattern", "array_pattern", "rest_pattern"):
        for child in node.named_children:
            yield from pattern_bindings(child)
    elif kind == "pair_pattern":
        value = node.child_by_field_name("value")
        if value is not None:
            yield from pattern_bindings(value)
    elif kind in ("assignment_pattern", "object_assignment_pattern"):
        left = node.child_by_field_name("left")
        if left is not None:
            yield from pattern_bindings(left)


def parameter_bindings(scope: Node) -> Iterator[Node]:
    params = scope.child_by_field_name("parameters") or scope.child_by_field_name("parameter")
    if params is None:
        return
    if params.type == "formal_parameters":
        for child in params.named_children:
            yield from pattern_bindings(child)
    else:
        yield from pattern_bindings(params)


def collect_bindings(
    root: Node,
    symbols: SymbolTable,
    *,
    prefix: str = "_",
    excluded: Iterable[Span] = (),
) -> RenameMap:
    """Build the rename map for every variable declared in *root*.

    Lifecycle hook names are never renamed, nor are bindings whose span is in
    *excluded* (declarations that get attached to the library instance).
    """

    skip = set(excluded)
    rename_map: RenameMap = {}
    for node in iter_nodes(root):
        if node.type == "variable_declarator":
            target = node.child_by_field_name("name")
        elif node.type == "for_in_statement" and node.child_by_field_name("kind") is not None:
            target = node.child_by_field_name("left")
        else:
            continue
        if target is None:
            continue
        for binding in pattern_bindings(target):
            if span_of(binding) in skip:
                continue
            name = node_text(binding)
            if symbols.is_lifecycle(name):
                continue
            rename_map.setdefault(name, name if name.startswith(prefix) else prefix + name)
    return rename_map


def is_key_position(node: Node) -> bool:
    """Return True for names that label something rather than reference it."""

    if node.type == "property_identifier":
        return True
    parent = node.parent
    if parent is not None and parent.type in MODULE_SPECIFIERS:
        return True
    while parent is not None:
        if parent.type == "import_statement":
            return True
        parent = parent.parent
    return False


def is_binding_position(node: Node) -> bool:
    """Return True if *node* is the identifier being declared at this site."""

    parent = node.parent
    if parent is None:
        return False
    kind = parent.type
    if kind == "variable_declarator" or kind in NAMED_DEFINITIONS:
        return is_field(parent, "name", node)
    if kind in ("formal_parameters", "array_pattern", "rest_pattern", "object_pattern"):
        return True
    if kind in ("assignment_pattern", "object_assignment_pattern"):
        return is_field(parent, "left", node)
    if kind == "pair_pattern":
        return is_field(parent, "value", node)
    if kind in ("arrow_function", "catch_clause"):
        return is_field(parent, "parameter", node)
    if kind == "for_in_statement":
        return parent.child_by_field_name("kind") is not None and is_field(parent, "left", node)
    return False


def _statement_bindings(statement: Node) -> Iterator[Node]:
    """Yield the names a statement declares in its enclosing block."""

    if statement.type in ("lexical_declaration", "variable_declaration"):
        for declarator in statement.named_children:
            target = declarator.child_by_field_name("name") if declarator.type == "variable_declarator" else None
            if target is not None:
                yield from pattern_bindings(target)
    elif statement.type in ("function_declaration", "generator_function_declaration", "class_declaration"):
        name = statement.child_by_field_name("name")
        if name is not None:
            yield name


def _scope_bindings(scope: Node) -> Iterator[Node]:
    kind = scope.type
    if kind in FUNCTION_SCOPES:
        yield from parameter_bindings(scope)
    elif kind == "catch_clause":
        param = scope.child_by_field_name("parameter")
        if param is not None:
            yield from pattern_bindings(param)
    elif kind == "statement_block":
        for statement in scope.named_children:
            yield from _statement_bindings(statement)
    elif kind == "for_statement":
        initializer = scope.child_by_field_name("initializer")
        if initializer is not None:
            yield from _statement_bindings(initializer)
    elif kind == "for_in_statement" and scope.child_by_field_name("kind") is not None:
        left = scope.child_by_field_name("left")
        if left is not None:
            yield from pattern_bindings(left)


def is_shadowed(node: Node, name: str) -> bool:
    """Return True if a local binding named *name* encloses *node*.

    Parameters, catch parameters and declarations inside an enclosing block or
    loop head all count; top-level declarations do not.
    """

    ancestor = node.parent
    while ancestor is not None:
        if any(node_text(binding) == name for binding in _scope_bindings(ancestor)):
            return True
        ancestor = ancestor.parent
    return False


class ScopeRenamer:
    """Apply a rename map to identifier and shorthand nodes."""

    def __init__(self, rename_map: RenameMap) -> None:
        self._map = dict(rename_map)

    @property
    def rename_map(self) -> RenameMap:
        return dict(self._map)

    def owns(self, name: str) -> bool:
        return name in self._map

    def rename_identifier(self, node: Node) -> TextEdit | None:
        name = node_text(node)
        renamed = self._map.get(name)
        if renamed is None or renamed == name:
            return None
        return TextEdit.replace(node, renamed)

    def expand_shorthand(self, node: Node) -> TextEdit | None:
        """Turn ``{ size }`` into ``{ size: _size }`` so the key is preserved."""

        name = node_text(node)
        renamed = self._map.get(name)
        if renamed is None or renamed == name:
            return None
        return TextEdit.replace(node, f"{name}: {renamed}")
