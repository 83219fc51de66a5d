"""Tests for mapping reported error lines back to sketch source lines."""

from __future__ import annotations

from textwrap import dedent

from sketchbridge.linemap import ErrorLineMapper, extract_mapped_lines, map_error_line_numbers

SOURCE = "\n".join(f"line_{i}();" for i in range(1, 21))


def test_offset_is_subtracted():
    mapper = ErrorLineMapper(SOURCE, SOURCE, injected_lines=10)
    assert mapper.map_line(15) == 5


def test_out_of_range_lines_are_clamped():
    mapper = ErrorLineMapper(SOURCE, SOURCE, injected_lines=10)
    assert mapper.map_line(3) == 1
    assert mapper.map_line(0) == 1
    assert mapper.map_line(500) == 20


def test_message_without_line_numbers_is_unchanged():
    mapper = ErrorLineMapper(SOURCE, SOURCE, injected_lines=10)
    text = "ReferenceError: foo is not defined"
    assert mapper.map_error_message(text) == text


def test_extract_line_numbers_recognizes_formats():
    mapper = ErrorLineMapper(SOURCE)
    assert mapper.extract_line_numbers("Error at line 42") == [42]
    assert mapper.extract_line_numbers("SyntaxError: unexpected token (12:4)") == [12]
    assert mapper.extract_line_numbers("failed in frame [7]") == [7]
    assert mapper.extract_line_numbers("    at draw (blob:http://localhost/abc:33:9)") == [33]
    assert mapper.extract_line_numbers("line 0 is ignored") == []


def test_column_numbers_are_not_mapped():
    mapper = ErrorLineMapper(SOURCE, SOURCE, injected_lines=10)
    mapped = mapper.map_error_message("TypeError: x is undefined (15:12)")
    assert mapped == "TypeError: x is undefined (5:12)"


def test_each_number_is_rewritten_once():
    mapper = ErrorLineMapper(SOURCE, SOURCE, injected_lines=10)
    mapped = mapper.map_error_message("first at line 25, then at line 15")
    assert mapped == "first at line 15, then at line 5"


def test_stack_frames_are_mapped():
    mapper = ErrorLineMapper(SOURCE, SOURCE, injected_lines=30)
    stack = dedent(
        """\
        TypeError: c.fill is not a function
            at _p.draw (blob:http://localhost:5173/0f3a:42:7)
            at p5._main (p5.min.js:5:2)"""
    )
    mapped = mapper.map_error_message(stack)
    assert "blob:http://localhost:5173/0f3a:12:7" in mapped
    # scaffold frames clamp to the first line
    assert "p5.min.js:1:2" in mapped


def test_format_with_context_marks_error_line():
    source = "let a = 1;\nlet b = 2;\nlet c = d;\nlet e = 4;\nlet f = 5;\nlet g = 6;"
    mapper = ErrorLineMapper(source, source, injected_lines=5)
    formatted = mapper.format_with_context("ReferenceError: d is not defined at line 8", context_lines=1)
    message, excerpt = formatted.split("\n\n")
    assert message == "ReferenceError: d is not defined at line 3"
    assert excerpt.split("\n") == [
        "    2 | let b = 2;",
        ">   3 | let c = d;",
        "    4 | let e = 4;",
    ]


def test_format_with_context_without_lines_returns_message():
    mapper = ErrorLineMapper("let a = 1;")
    assert mapper.format_with_context("boom") == "boom"


def test_source_line_out_of_bounds_is_empty():
    mapper = ErrorLineMapper("a\nb")
    assert mapper.source_line(2) == "b"
    assert mapper.source_line(0) == ""
    assert mapper.source_line(3) == ""


def test_count_lines_matches_join_semantics():
    assert ErrorLineMapper.count_lines("a") == 1
    assert ErrorLineMapper.count_lines("a\nb\n") == 3


def test_module_helpers():
    assert map_error_line_numbers(SOURCE, SOURCE, "at line 12", 10) == "at line 2"
    assert extract_mapped_lines(SOURCE, "at line 12 and (14:1)", 10) == [2, 4]
