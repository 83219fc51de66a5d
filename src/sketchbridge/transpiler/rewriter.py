"""Qualification of library globals and hoisting of instance callbacks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Collection

from tree_sitter import Node

from ..symbols import SymbolTable
from .renamer import Span, is_shadowed, span_of
from .syntax import TextEdit, node_text

FUNCTION_VALUES = frozenset(
    {"arrow_function", "function_expression", "function", "generator_function"}
)
FUNCTION_DECLARATIONS = frozenset({"function_declaration", "generator_function_declaration"})
VARIABLE_DECLARATIONS = frozenset({"lexical_declaration", "variable_declaration"})


@dataclass(slots=True)
class Hoist:
    """Edits that move a top-level definition onto the library instance."""

    name: str
    consumed: Span
    edits: list[TextEdit] = field(default_factory=list)


class GlobalRewriter:
    def __init__(self, symbols: SymbolTable, namespace: str = "_p") -> None:
        self.symbols = symbols
        self.namespace = namespace

    def qualified(self, name: str) -> str:
        return f"{self.namespace}.{name}"

    def hoist(self, statement: Node) -> Hoist | None:
        """Return the hoisting edits for a top-level *statement*, if any.

        Function declarations and single function-valued variable declarations
        named after a lifecycle hook or library function become instance
        assignments.  A bare ``setup = function () {}`` assignment is handled
        for lifecycle hooks only.
        """

        if statement.type in FUNCTION_DECLARATIONS:
            return self._hoist_declaration(statement)
        if statement.type in VARIABLE_DECLARATIONS:
            return self._hoist_variable(statement)
        if statement.type == "expression_statement":
            return self._hoist_assignment(statement)
        return None

    def _hoist_declaration(self, statement: Node) -> Hoist | None:
        name_node = statement.child_by_field_name("name")
        if name_node is None:
            return None
        name = node_text(name_node)
        if not self.symbols.is_hoistable(name):
            return None
        hoist = Hoist(name=name, consumed=span_of(name_node))
        hoist.edits.append(TextEdit.insert(statement.start_byte, f"{self.qualified(name)} = "))
        hoist.edits.append(TextEdit.replace(name_node, ""))
        hoist.edits.extend(self._terminate(statement))
        return hoist

    def _hoist_variable(self, statement: Node) -> Hoist | None:
        declarators = [child for child in statement.named_children if child.type == "variable_declarator"]
        if len(declarators) != 1:
            return None
        declarator = declarators[0]
        name_node = declarator.child_by_field_name("name")
        value = declarator.child_by_field_name("value")
        if name_node is None or value is None or name_node.type != "identifier":
            return None
        if value.type not in FUNCTION_VALUES:
            return None
        name = node_text(name_node)
        if not self.symbols.is_hoistable(name):
            return None
        hoist = Hoist(name=name, consumed=span_of(name_node))
        hoist.edits.append(TextEdit(statement.start_byte, value.start_byte, f"{self.qualified(name)} = "))
        hoist.edits.extend(self._terminate(statement))
        return hoist

    def _hoist_assignment(self, statement: Node) -> Hoist | None:
        expression = statement.named_children[0] if statement.named_children else None
        if expression is None or expression.type != "assignment_expression":
            return None
        left = expression.child_by_field_name("left")
        right = expression.child_by_field_name("right")
        if left is None or right is None or left.type != "identifier":
            return None
        name = node_text(left)
        if not self.symbols.is_lifecycle(name) or right.type not in FUNCTION_VALUES:
            return None
        return Hoist(name=name, consumed=span_of(left), edits=[TextEdit.replace(left, self.qualified(name))])

    @staticmethod
    def _terminate(statement: Node) -> list[TextEdit]:
        if node_text(statement).rstrip().endswith(";"):
            return []
        return [TextEdit.insert(statement.end_byte, ";")]

    def qualify_call(self, node: Node) -> TextEdit | None:
        """Qualify *node* when it is the callee of a library function call."""

        parent = node.parent
        if parent is None or parent.type != "call_expression":
            return None
        callee = parent.child_by_field_name("function")
        if callee is None or callee.start_byte != node.start_byte or callee.end_byte != node.end_byte:
            return None
        name = node_text(node)
        if not self.symbols.is_function(name) or is_shadowed(node, name):
            return None
        return TextEdit.replace(node, self.qualified(name))

    def qualify_reference(self, node: Node, hoisted: Collection[str] = ()) -> TextEdit | None:
        """Qualify a read of a library constant or of a hoisted callback."""

        name = node_text(node)
        if not self._instance_name(name, hoisted) or is_shadowed(node, name):
            return None
        return TextEdit.replace(node, self.qualified(name))

    def qualify_shorthand(self, node: Node, hoisted: Collection[str] = ()) -> TextEdit | None:
        name = node_text(node)
        if not self._instance_name(name, hoisted) or is_shadowed(node, name):
            return None
        return TextEdit.replace(node, f"{name}: {self.qualified(name)}")

    def _instance_name(self, name: str, hoisted: Collection[str]) -> bool:
        return self.symbols.is_constant(name) or name in hoisted
