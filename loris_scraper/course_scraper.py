"""Resolves the sections (CRNs) offered for a course code in a term."""

import logging

from loris_scraper.listing_scraper import SORT_COLUMN, SORT_DIRECTION
from loris_scraper.retry import RetryPolicy
from loris_scraper.session import BASE_URL, query

logger = logging.getLogger(__name__)

COURSE_DETAILS_URL = f"{BASE_URL}/searchResults/searchResults/"
# No course is expected to run more sections than this in one term
MAX_SECTIONS = 500


def fetch_crns(client, course_code, term, policy=None, strict_reset=True):
    """Return the CRNs of every section of course_code in term.

    A course with no sections gives an empty list, as does a response the
    portal sent without a data list.
    """
    policy = policy or RetryPolicy()
    payload = {
        "txt_subjectcoursecombo": course_code,
        "txt_term": term,
        "pageOffset": 0,
        "pageMaxSize": MAX_SECTIONS,
        "sortColumn": SORT_COLUMN,
        "sortDirection": SORT_DIRECTION,
    }
    data = query(
        client, policy, COURSE_DETAILS_URL, payload,
        f"CRN lookup for {course_code} in {term}",
        strict_reset=strict_reset,
    )

    sections = data.get("data") if isinstance(data, dict) else None
    if not isinstance(sections, list):
        if data is not None:
            logger.error("Section search for %s in %s has no data list", course_code, term)
        return []

    total = data.get("totalCount")
    if isinstance(total, int) and total > MAX_SECTIONS:
        logger.warning(
            "%s has %d sections in %s, only the first %d were read",
            course_code, total, term, MAX_SECTIONS,
        )

    crns = []
    for section in sections:
        crn = section.get("courseReferenceNumber") if isinstance(section, dict) else None
        if crn is None or crn == "":
            continue
        crns.append(str(crn))
    return crns
