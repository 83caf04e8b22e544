import pytest

from fake_portal import catalog_entry, connection_reset, make_response, sticky_reset
from loris_scraper.listing_scraper import (
    COURSES_URL,
    fetch_page,
    fetch_total_count,
    iter_course_codes,
    page_offsets,
)
from loris_scraper.retry import RetryExhaustedError, TotalCountUnavailableError
from loris_scraper.session import RESET_URL


def fill_catalog(portal, count):
    portal.catalog = [catalog_entry(f"D{i // 100:02d}", f"{i % 100:03d}") for i in range(count)]
    return [f"{e['departmentCode']}{e['courseNumber']}" for e in portal.catalog]


def test_total_count_uses_small_probe(client, portal, policy):
    fill_catalog(portal, 42)
    assert fetch_total_count(client, "202309", policy) == 42
    _, form = portal.calls_to(COURSES_URL)[0]
    assert form["pageOffset"] == 0
    assert form["pageMaxSize"] == 10
    assert portal.violations == []


def test_total_count_missing_is_none(client, portal, policy):
    portal.fail(COURSES_URL, make_response(COURSES_URL, {"data": []}))
    assert fetch_total_count(client, "202309", policy) is None


def test_page_builds_course_codes_with_fixed_sort(client, portal, policy):
    portal.catalog = [catalog_entry("BU", "121"), catalog_entry("BU", "122"), catalog_entry("CP", "100")]
    assert fetch_page(client, "202309", 0, 500, policy) == ["BU121", "BU122", "CP100"]
    _, form = portal.calls_to(COURSES_URL)[0]
    assert form["txt_term"] == "202309"
    assert form["sortColumn"] == "subjectDescription"
    assert form["sortDirection"] == "asc"


def test_page_is_idempotent(client, portal, policy):
    expected = fill_catalog(portal, 30)
    first = fetch_page(client, "202309", 0, 500, policy)
    second = fetch_page(client, "202309", 0, 500, policy)
    assert first == second == expected
    assert len(portal.calls_to(RESET_URL)) == 2
    assert portal.violations == []


def test_page_malformed_payload_is_empty(client, portal, policy):
    portal.fail(COURSES_URL, make_response(COURSES_URL, {"totalCount": 3}))
    assert fetch_page(client, "202309", 0, 500, policy) == []


def test_page_skips_entries_without_code(client, portal, policy):
    portal.catalog = [catalog_entry("BU", "121"), {"departmentCode": "BU"}, "junk"]
    assert fetch_page(client, "202309", 0, 500, policy) == ["BU121"]


def test_page_retries_from_reset(client, portal, policy):
    portal.catalog = [catalog_entry("BU", "121")]
    portal.fail(COURSES_URL, connection_reset())
    assert fetch_page(client, "202309", 0, 500, policy) == ["BU121"]
    assert len(portal.calls_to(RESET_URL)) == 2
    assert portal.violations == []


def test_page_gives_up_after_retries(client, portal, policy):
    portal.fail(COURSES_URL, sticky_reset())
    with pytest.raises(RetryExhaustedError):
        fetch_page(client, "202309", 0, 500, policy)
    assert len(portal.calls_to(COURSES_URL)) == 3


@pytest.mark.parametrize("total, size, expected", [
    (0, 500, [0]),
    (3, 500, [0, 500]),
    (500, 500, [0, 500]),
    (501, 500, [0, 500, 1000]),
    (25, 10, [0, 10, 20, 30]),
])
def test_page_offsets_include_one_extra_page(total, size, expected):
    assert list(page_offsets(total, size)) == expected


def test_page_offsets_reject_bad_size():
    with pytest.raises(ValueError):
        page_offsets(10, 0)


@pytest.mark.parametrize("count, size", [(0, 7), (7, 7), (23, 7), (24, 5)])
def test_all_pages_cover_catalog(client, portal, policy, count, size):
    expected = fill_catalog(portal, count)
    seen = []
    for _, codes in iter_course_codes(client, "202309", size, policy):
        seen.extend(codes)
    assert seen == expected
    assert portal.violations == []


def test_missing_total_count_aborts_term(client, portal, policy):
    portal.fail(COURSES_URL, make_response(COURSES_URL, status=500))
    with pytest.raises(TotalCountUnavailableError):
        list(iter_course_codes(client, "202309", 500, policy))
