"""Global-mode to instance-mode sketch transpiler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tree_sitter import Node

from ..symbols import SymbolTable, load_symbols
from .renamer import (
    SHORTHAND_PATTERN,
    SHORTHAND_PROPERTY,
    ScopeRenamer,
    collect_bindings,
    is_binding_position,
    is_key_position,
    span_of,
)
from .rewriter import GlobalRewriter, Hoist
from .syntax import TextEdit, TranspileSyntaxError, apply_edits, iter_nodes, node_text, parse

logger = logging.getLogger(__name__)

INSTANCE_NAMESPACE = "_p"
RENAME_PREFIX = "_"


@dataclass(slots=True)
class TranspileOutcome:
    success: bool
    code: str | None
    error: TranspileSyntaxError | None = None
    rename_map: dict[str, str] = field(default_factory=dict)

    @property
    def reason(self) -> str | None:
        if self.success:
            return None
        return "SyntaxError"


class Transpiler:
    """Rewrite global-mode sketches so they run against a library instance."""

    def __init__(
        self,
        symbols: SymbolTable | None = None,
        *,
        namespace: str = INSTANCE_NAMESPACE,
        prefix: str = RENAME_PREFIX,
    ) -> None:
        if not namespace.isidentifier():
            raise ValueError(f"Instance namespace must be an identifier, got {namespace!r}")
        if not prefix:
            raise ValueError("Rename prefix must not be empty")
        self.symbols = symbols or load_symbols()
        self.namespace = namespace
        self.prefix = prefix
        self._rewriter = GlobalRewriter(self.symbols, namespace)

    def transpile(self, source: str) -> TranspileOutcome:
        try:
            code, rename_map = self._rewrite(source)
        except ValueError as exc:
            error = exc if isinstance(exc, TranspileSyntaxError) else TranspileSyntaxError(str(exc))
            logger.warning("transpile failure", exc_info=error)
            return TranspileOutcome(success=False, code=None, error=error)
        return TranspileOutcome(success=True, code=code, rename_map=rename_map)

    def _rewrite(self, source: str) -> tuple[str, dict[str, str]]:
        root = parse(source).root_node
        hoists: list[Hoist] = []
        for statement in root.named_children:
            hoist = self._rewriter.hoist(statement)
            if hoist is not None:
                hoists.append(hoist)
        consumed = {hoist.consumed for hoist in hoists}
        hoisted = frozenset(hoist.name for hoist in hoists)

        renamer = ScopeRenamer(
            collect_bindings(root, self.symbols, prefix=self.prefix, excluded=consumed)
        )
        edits = [edit for hoist in hoists for edit in hoist.edits]
        for node in iter_nodes(root):
            if node.type not in ("identifier", SHORTHAND_PROPERTY, SHORTHAND_PATTERN):
                continue
            if span_of(node) in consumed:
                continue
            edit = self._rewrite_name(node, renamer, hoisted)
            if edit is not None:
                edits.append(edit)

        code = apply_edits(source, edits)
        try:
            parse(code)
        except TranspileSyntaxError as exc:
            raise TranspileSyntaxError(
                f"Rewritten sketch failed to parse: {exc.detail}", exc.line, exc.column
            ) from exc
        return code, renamer.rename_map

    def _rewrite_name(
        self, node: Node, renamer: ScopeRenamer, hoisted: frozenset[str]
    ) -> TextEdit | None:
        name = node_text(node)
        if node.type == SHORTHAND_PATTERN:
            return renamer.expand_shorthand(node)
        if node.type == SHORTHAND_PROPERTY:
            if renamer.owns(name):
                return renamer.expand_shorthand(node)
            return self._rewriter.qualify_shorthand(node, hoisted)

        if is_key_position(node):
            return None
        edit = self._rewriter.qualify_call(node)
        if edit is not None:
            return edit
        if renamer.owns(name):
            return renamer.rename_identifier(node)
        if is_binding_position(node):
            return None
        return self._rewriter.qualify_reference(node, hoisted)


def transpile(source: str, symbols: SymbolTable | None = None) -> TranspileOutcome:
    return Transpiler(symbols).transpile(source)
