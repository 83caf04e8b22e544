"""Walks the paginated course catalog and yields every course code for a term."""

import logging
import math

from loris_scraper.retry import RetryPolicy, TotalCountUnavailableError
from loris_scraper.session import BASE_URL, query

logger = logging.getLogger(__name__)

COURSES_URL = f"{BASE_URL}/courseSearchResults/courseSearchResults/"
PAGE_MAX_SIZE = 500
PROBE_PAGE_SIZE = 10
SORT_COLUMN = "subjectDescription"
SORT_DIRECTION = "asc"


def catalog_payload(term, page_offset, page_max_size):
    # Sort order must stay the same on every page or entries shift between pages
    return {
        "txt_term": term,
        "pageOffset": page_offset,
        "pageMaxSize": page_max_size,
        "sortColumn": SORT_COLUMN,
        "sortDirection": SORT_DIRECTION,
    }


def fetch_total_count(client, term, policy=None, strict_reset=True):
    """Return the number of catalog entries for term, or None if it can't be read."""
    policy = policy or RetryPolicy()
    data = query(
        client, policy, COURSES_URL,
        catalog_payload(term, 0, PROBE_PAGE_SIZE),
        f"catalog size probe for {term}",
        strict_reset=strict_reset,
    )
    if not isinstance(data, dict):
        return None
    total = data.get("totalCount")
    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        logger.error("Catalog probe for %s returned no usable totalCount: %r", term, total)
        return None
    return total


def fetch_page(client, term, page_offset, page_max_size=PAGE_MAX_SIZE, policy=None, strict_reset=True):
    """Fetch one catalog page and return its course codes (e.g. "BU121")."""
    policy = policy or RetryPolicy()
    data = query(
        client, policy, COURSES_URL,
        catalog_payload(term, page_offset, page_max_size),
        f"catalog page {page_offset}+{page_max_size} for {term}",
        strict_reset=strict_reset,
    )
    return _parse_course_codes(data, term, page_offset)


def _parse_course_codes(data, term, page_offset):
    """Turn a catalog page payload into course codes, or [] if it has no data list."""
    entries = data.get("data") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        if data is not None:
            logger.error("Catalog page %d for %s has no data list", page_offset, term)
        return []

    codes = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        department = entry.get("departmentCode")
        number = entry.get("courseNumber")
        if not department or not number:
            logger.warning("Skipping catalog entry without department/number: %r", entry)
            continue
        codes.append(f"{department}{number}")
    return codes


def page_offsets(total_count, page_max_size=PAGE_MAX_SIZE):
    """Offsets of every page to request.

    The last offset is pages * page_max_size, one page past the end. That page
    is normally empty and costs one extra request.
    """
    if page_max_size <= 0:
        raise ValueError("page_max_size must be positive")
    pages = math.ceil(total_count / page_max_size)
    return range(0, pages * page_max_size + 1, page_max_size)


def iter_course_codes(client, term, page_max_size=PAGE_MAX_SIZE, policy=None, strict_reset=True):
    """Yield (page_offset, course_codes) for every catalog page of term."""
    total = fetch_total_count(client, term, policy, strict_reset=strict_reset)
    if total is None:
        raise TotalCountUnavailableError(term)

    offsets = page_offsets(total, page_max_size)
    logger.info("Term %s has %d catalog entries across %d page requests", term, total, len(offsets))
    for offset in offsets:
        codes = fetch_page(client, term, offset, page_max_size, policy, strict_reset=strict_reset)
        logger.info("Catalog page at offset %d: %d course codes", offset, len(codes))
        yield offset, codes
