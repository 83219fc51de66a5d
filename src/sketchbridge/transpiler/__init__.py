"""Sketch transpiler package."""

from .core import INSTANCE_NAMESPACE, RENAME_PREFIX, TranspileOutcome, Transpiler, transpile
from .syntax import TranspileSyntaxError

__all__ = [
    "INSTANCE_NAMESPACE",
    "RENAME_PREFIX",
    "TranspileOutcome",
    "TranspileSyntaxError",
    "Transpiler",
    "transpile",
]
