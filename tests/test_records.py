from __future__ import annotations

from lgtnav.artifacts import ArtifactKind
from lgtnav.records import (
    CallRecord,
    EntityRecord,
    FileStatusRecord,
    LocationRecord,
    MetricRecord,
    TestRecord,
    TestSummaryRecord,
    dedup_latest,
    filter_for_file,
    normalize_path,
    parse,
    paths_equal,
)


def test_parse_caller_record() -> None:
    records = list(parse("Name:bar/1;File:/x/y.lgt;Line:12\n", ArtifactKind.CALLERS))
    assert records == [CallRecord(name="bar/1", file="/x/y.lgt", line=12)]


def test_parse_accepts_bytes_and_crlf() -> None:
    data = b"Name:a/0;File:/p.lgt;Line:1\r\nName:b/2;File:/p.lgt;Line:7\r\n"
    records = list(parse(data, ArtifactKind.CALLEES))
    assert [record.name for record in records] == ["a/0", "b/2"]
    assert [record.line for record in records] == [1, 7]


def test_missing_tag_drops_only_that_line() -> None:
    text = "\n".join(
        [
            "Name:bar/1;File:/x/y.lgt",
            "garbage",
            "",
            "Name:baz/0;File:/x/y.lgt;Line:3",
        ]
    )
    records = list(parse(text, ArtifactKind.CALLERS))
    assert records == [CallRecord(name="baz/0", file="/x/y.lgt", line=3)]


def test_line_zero_is_rejected() -> None:
    assert list(parse("File:/x.lgt;Line:0", ArtifactKind.REFERENCES)) == []


def test_file_tag_is_case_insensitive_and_paths_normalized() -> None:
    records = list(parse("file://c/Work/a.lgt;Line:4", ArtifactKind.TYPE_DEFINITION))
    assert records == [LocationRecord(file="/c/Work/a.lgt", line=4)]


def test_other_tags_are_case_sensitive() -> None:
    assert list(parse("name:bar/1;File:/x/y.lgt;Line:12", ArtifactKind.CALLERS)) == []


def test_parse_entity_records() -> None:
    text = (
        "Type:protocol;Name:monitoring;File:/lib/monitoring.lgt;Line:21\n"
        "Type:object;Name:list(_);File:/lib/list.lgt;Line:5\n"
        "Type:module;Name:lists;File:/lib/lists.pl;Line:1\n"
    )
    records = list(parse(text, ArtifactKind.ANCESTORS))
    assert records == [
        EntityRecord(entity_type="protocol", name="monitoring", file="/lib/monitoring.lgt", line=21),
        EntityRecord(entity_type="object", name="list(_)", file="/lib/list.lgt", line=5),
    ]


def test_parse_test_result_variants() -> None:
    text = "\n".join(
        [
            "File:/t/tests.lgt;Line:10;Object:tests;Test:t1;Status:passed",
            "File:/t/tests.lgt;Line:14;Object:tests;Test:t2;Status:failed;Reason:expected 2",
            "File:/t/tests.lgt;Line:3;Object:tests;Status:2 tests: 0 skipped, 1 passed, 1 failed",
            "File:/t/tests.lgt;Line:1;Status:Tests results may be outdated",
        ]
    )
    records = list(parse(text, ArtifactKind.TESTS))
    assert records == [
        TestRecord(file="/t/tests.lgt", line=10, object="tests", test="t1", status="passed"),
        TestRecord(
            file="/t/tests.lgt",
            line=14,
            object="tests",
            test="t2",
            status="failed",
            reason="expected 2",
        ),
        TestSummaryRecord(
            file="/t/tests.lgt",
            line=3,
            object="tests",
            status="2 tests: 0 skipped, 1 passed, 1 failed",
        ),
        FileStatusRecord(file="/t/tests.lgt", line=1, status="Tests results may be outdated"),
    ]


def test_parse_metric_records_in_order() -> None:
    text = "File:/p/a.lgt;Line:5;Score:3\nFile:/p/a.lgt;Line:9;Score:1\n"
    records = list(parse(text, ArtifactKind.METRICS))
    assert records == [
        MetricRecord(file="/p/a.lgt", line=5, score=3),
        MetricRecord(file="/p/a.lgt", line=9, score=1),
    ]


def test_normalize_and_compare_paths() -> None:
    assert normalize_path("  //c//Users/a.lgt ") == "/c/Users/a.lgt"
    assert normalize_path("C:\\work\\a.lgt") == "C:/work/a.lgt"
    assert paths_equal("/C/Work/A.lgt", "//c/work/a.lgt")
    assert not paths_equal("/c/work/a.lgt", "/c/work/b.lgt")


def test_filter_for_file() -> None:
    records = [
        MetricRecord(file="/p/a.lgt", line=5, score=3),
        MetricRecord(file="/p/b.lgt", line=2, score=7),
        MetricRecord(file="/P/A.lgt", line=9, score=1),
    ]
    assert [record.line for record in filter_for_file(records, "/p/a.lgt")] == [5, 9]


def test_dedup_latest_keeps_first_position_latest_value() -> None:
    records = [
        TestRecord(file="/t.lgt", line=10, object="o", test="a", status="failed"),
        TestRecord(file="/t.lgt", line=12, object="o", test="b", status="passed"),
        TestRecord(file="/t.lgt", line=10, object="o", test="a", status="passed"),
    ]
    deduped = dedup_latest(records, key=lambda record: (record.object, record.test))
    assert [(record.test, record.status) for record in deduped] == [
        ("a", "passed"),
        ("b", "passed"),
    ]
