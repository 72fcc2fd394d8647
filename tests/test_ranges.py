from __future__ import annotations

from pathlib import Path

from lsprotocol.types import Position, Range

from lgtnav.ranges import (
    SourceLines,
    bare_name,
    call_site_ranges,
    locate,
    locate_entity,
    zero_width,
)


def _span(line: int, start: int, end: int) -> Range:
    return Range(start=Position(line=line, character=start), end=Position(line=line, character=end))


def test_bare_name_strips_indicator_and_qualifiers() -> None:
    assert bare_name("foo/2") == "foo"
    assert bare_name("phrase//2") == "phrase"
    assert bare_name("list::append/3") == "append"
    assert bare_name("^^init/0") == "init"
    assert bare_name("plain") == "plain"


def test_locate_spans_symbol_name(tmp_path: Path, write_source) -> None:
    source = write_source(tmp_path / "a.lgt", ":- object(a).", "", "    x :- foo(1, 2).")
    located = locate(source, 3, "foo/2")
    assert located.selection_range == _span(2, 9, 12)
    assert located.range == _span(2, 0, len("    x :- foo(1, 2)."))


def test_locate_degrades_to_zero_width(tmp_path: Path, write_source) -> None:
    source = write_source(tmp_path / "a.lgt", "bar.")
    assert locate(source, 1, "foo/0") == zero_width(0)
    assert locate(source, 40, "bar/0") == zero_width(39)
    assert locate(tmp_path / "missing.lgt", 2, "bar/0") == zero_width(1)


def test_locate_entity_inside_directive(tmp_path: Path, write_source) -> None:
    source = write_source(
        tmp_path / "shapes.lgt",
        ":- object(square(_Side),",
        "    extends(shape)).",
    )
    located = locate_entity(source, 1, "square(_)")
    assert located.selection_range == _span(0, 10, 16)


def test_locate_entity_falls_back_to_plain_search(tmp_path: Path, write_source) -> None:
    source = write_source(tmp_path / "p.lgt", "% monitoring protocol")
    assert locate_entity(source, 1, "monitoring").selection_range == _span(0, 2, 12)


def test_call_site_ranges_returns_every_occurrence(tmp_path: Path, write_source) -> None:
    source = write_source(tmp_path / "c.lgt", "run :- bar(X), baz, bar(X).")
    assert call_site_ranges(source, 1, "bar/1") == [_span(0, 7, 10), _span(0, 20, 23)]
    assert call_site_ranges(source, 1, "qux/0") == []
    assert call_site_ranges(source, 5, "bar/1") == []


def test_source_lines_reads_each_file_once(tmp_path: Path, write_source) -> None:
    source = write_source(tmp_path / "m.lgt", "a.", "b.")
    sources = SourceLines()
    assert sources.get(source) == ["a.", "b.", ""]
    source.write_text("changed\n")
    assert sources.get(source) == ["a.", "b.", ""]
