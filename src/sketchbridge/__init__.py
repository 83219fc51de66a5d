"""Sketch execution bridge: transpile, message and map errors for global-mode sketches."""

from .controller import InjectionError, RunOutcome, RuntimeSketchError, SketchRunner, looks_like_sketch
from .linemap import ErrorLineMapper, extract_mapped_lines, map_error_line_numbers
from .messaging import MessageChannel, MessageEvent, MessageRejected, MessageType
from .transpiler import TranspileOutcome, TranspileSyntaxError, Transpiler, transpile

__all__ = [
    "ErrorLineMapper",
    "InjectionError",
    "MessageChannel",
    "MessageEvent",
    "MessageRejected",
    "MessageType",
    "RunOutcome",
    "RuntimeSketchError",
    "SketchRunner",
    "TranspileOutcome",
    "TranspileSyntaxError",
    "Transpiler",
    "extract_mapped_lines",
    "looks_like_sketch",
    "map_error_line_numbers",
    "transpile",
]
