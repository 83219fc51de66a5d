"""Static table of the drawing library's global names."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml

SYMBOLS_PATH = Path(__file__).with_name("p5_globals.yaml")


@dataclass(frozen=True, slots=True)
class SymbolTable:
    """Recognized global function, constant and lifecycle hook names."""

    functions: frozenset[str]
    constants: frozenset[str]
    lifecycle: frozenset[str]

    def is_function(self, name: str) -> bool:
        return name in self.functions

    def is_constant(self, name: str) -> bool:
        return name in self.constants

    def is_lifecycle(self, name: str) -> bool:
        return name in self.lifecycle

    def is_hoistable(self, name: str) -> bool:
        """Return True if a top-level definition of *name* belongs on the instance."""

        return name in self.lifecycle or name in self.functions


def _names(data: dict, key: str) -> frozenset[str]:
    values = data.get(key) or []
    if not isinstance(values, list) or not all(isinstance(value, str) for value in values):
        raise ValueError(f"Symbol table entry '{key}' must be a list of names")
    return frozenset(values)


@lru_cache(maxsize=8)
def load_symbols(path: str | Path | None = None) -> SymbolTable:
    """Load the symbol table from YAML, defaulting to the bundled p5 table."""

    symbols_path = Path(path) if path else SYMBOLS_PATH
    with symbols_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Symbol table {symbols_path} must be a mapping")
    return SymbolTable(
        functions=_names(data, "functions"),
        constants=_names(data, "constants"),
        lifecycle=_names(data, "lifecycle"),
    )
