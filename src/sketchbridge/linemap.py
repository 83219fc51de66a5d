"""Map line numbers in runtime errors back to the user's source.

The transpiler keeps the line structure of the sketch intact, so the only
drift between reported and authored line numbers is the fixed number of
scaffold lines injected above the user code.
"""

from __future__ import annotations

import re

LINE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"line\s+(\d+)", re.IGNORECASE),
    re.compile(r"\((\d+):\d+\)"),
    # a colon preceded by a digit belongs to a column, never a line
    re.compile(r"(?<!\d):\s*(\d+)\s*[),]"),
    re.compile(r"\[(\d+)\]"),
    re.compile(r":(\d+):\d+(?=\)|\s|$)", re.MULTILINE),
)


def _line_spans(text: str) -> list[tuple[int, int, int]]:
    """Return ``(start, end, line)`` for every line number found in *text*."""

    spans: dict[int, tuple[int, int]] = {}
    for pattern in LINE_PATTERNS:
        for match in pattern.finditer(text):
            value = int(match.group(1))
            if value > 0:
                spans.setdefault(match.start(1), (match.end(1), value))
    return [(start, end, value) for start, (end, value) in sorted(spans.items())]


class ErrorLineMapper:
    def __init__(self, source: str, transpiled: str = "", injected_lines: int = 0) -> None:
        if injected_lines < 0:
            raise ValueError("injected_lines must be >= 0")
        self.source_lines = source.split("\n")
        self.transpiled = transpiled
        self.injected_lines = injected_lines

    @staticmethod
    def count_lines(text: str) -> int:
        """Number of lines *text* occupies when joined before other code."""

        return len(text.split("\n"))

    def map_line(self, line: int) -> int:
        """Map a reported line to a 1-based source line, clamped to the source."""

        adjusted = line - self.injected_lines
        if adjusted < 1:
            return 1
        return min(adjusted, len(self.source_lines))

    def extract_line_numbers(self, text: str) -> list[int]:
        found: list[int] = []
        for pattern in LINE_PATTERNS:
            for match in pattern.finditer(text):
                value = int(match.group(1))
                if value > 0 and value not in found:
                    found.append(value)
        return found

    def map_error_message(self, text: str) -> str:
        """Rewrite every recognized line number in *text* exactly once."""

        spans = _line_spans(text)
        if not spans:
            return text
        pieces: list[str] = []
        cursor = 0
        for start, end, value in spans:
            pieces.append(text[cursor:start])
            pieces.append(str(self.map_line(value)))
            cursor = end
        pieces.append(text[cursor:])
        return "".join(pieces)

    def source_line(self, line: int) -> str:
        index = line - 1
        if index < 0 or index >= len(self.source_lines):
            return ""
        return self.source_lines[index]

    def format_with_context(self, text: str, context_lines: int = 2) -> str:
        """Return the mapped message followed by a marked source excerpt."""

        lines = self.extract_line_numbers(text)
        if not lines:
            return text
        focus = self.map_line(min(lines))
        first = max(1, focus - context_lines)
        last = min(len(self.source_lines), focus + context_lines)
        excerpt = []
        for number in range(first, last + 1):
            marker = "> " if number == focus else "  "
            excerpt.append(f"{marker}{number:>3} | {self.source_line(number)}")
        return f"{self.map_error_message(text)}\n\n" + "\n".join(excerpt)


def map_error_line_numbers(source: str, transpiled: str, text: str, injected_lines: int = 0) -> str:
    return ErrorLineMapper(source, transpiled, injected_lines).map_error_message(text)


def extract_mapped_lines(source: str, text: str, injected_lines: int = 0) -> list[int]:
    mapper = ErrorLineMapper(source, "", injected_lines)
    return [mapper.map_line(line) for line in mapper.extract_line_numbers(text)]
