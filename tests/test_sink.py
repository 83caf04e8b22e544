import json

import pytest

from loris_scraper.crawler import CrawlRecord
from loris_scraper.instructor_scraper import Instructor
from loris_scraper.sink import DictSink, JsonFileSink, store_record

JANE = Instructor("Jane Doe", "jdoe@x.edu")


def test_upsert_and_read_nested_paths():
    sink = DictSink()
    sink.upsert("/courses/BU121/202309", ["10001"])
    assert sink.read("/courses/BU121/202309") == ["10001"]
    assert sink.read("/courses/BU121") == {"202309": ["10001"]}
    assert sink.read("/courses/CP100/202309") is None


def test_read_returns_a_copy():
    sink = DictSink()
    sink.upsert("/courses/BU121/202309", ["10001"])
    sink.read("/courses/BU121/202309").append("99999")
    assert sink.read("/courses/BU121/202309") == ["10001"]


def test_empty_path_rejected():
    with pytest.raises(ValueError):
        DictSink().upsert("/", 1)


def test_store_record_merges_crns_and_instructors():
    sink = DictSink()
    store_record(sink, CrawlRecord("202309", "BU121", "10001", [JANE]))
    store_record(sink, CrawlRecord("202309", "BU121", "10002", [JANE]))
    store_record(sink, CrawlRecord("202309", "BU121", "10002", [JANE]))
    store_record(sink, CrawlRecord("202401", "BU122", "20001", [JANE]))

    assert sink.read("/courses/BU121/202309") == ["10001", "10002"]
    assert sink.read("/instructors/Jane Doe") == {
        "email": "jdoe@x.edu",
        "202309": ["10001", "10002"],
        "202401": ["20001"],
    }


def test_store_record_without_instructors_still_records_crn():
    sink = DictSink()
    store_record(sink, CrawlRecord("202309", "BU121", "10002", []))
    assert sink.read("/courses/BU121/202309") == ["10002"]
    assert sink.read("/instructors") is None


def test_instructor_names_lose_unsafe_characters():
    sink = DictSink()
    store_record(sink, CrawlRecord("202309", "BU121", "10001", [Instructor("J. O'Neil [TA]", None)]))
    store_record(sink, CrawlRecord("202309", "BU121", "10001", [Instructor("...", None)]))
    assert sink.read("/instructors") == {"J O'Neil TA": {"email": None, "202309": ["10001"]}}


def test_json_file_sink_round_trip(tmp_path):
    path = tmp_path / "out" / "db.json"
    sink = JsonFileSink(path)
    store_record(sink, CrawlRecord("202309", "BU121", "10001", [JANE]))
    sink.save(metadata={"terms": ["202309"]})

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["courses"] == {"BU121": {"202309": ["10001"]}}
    assert saved["metadata"] == {"terms": ["202309"]}

    reopened = JsonFileSink(path)
    store_record(reopened, CrawlRecord("202309", "BU121", "10002", []))
    assert reopened.read("/courses/BU121/202309") == ["10001", "10002"]
