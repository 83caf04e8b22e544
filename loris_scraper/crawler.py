"""Runs a full crawl: catalog pages -> course codes -> CRNs -> instructors -> records."""

import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from loris_scraper.course_scraper import fetch_crns
from loris_scraper.instructor_scraper import Instructor, fetch_instructors
from loris_scraper.listing_scraper import PAGE_MAX_SIZE, iter_course_codes
from loris_scraper.retry import CrawlError, RetryExhaustedError, RetryPolicy, SessionExpiredError
from loris_scraper.sink import store_record

logger = logging.getLogger(__name__)


@dataclass
class CrawlRecord:
    term: str
    course_code: str
    crn: str
    instructors: List[Instructor] = field(default_factory=list)

    def as_dict(self):
        return {
            "term": self.term,
            "course_code": self.course_code,
            "crn": self.crn,
            "instructors": [i.as_dict() for i in self.instructors],
        }


@dataclass
class CrawlReport:
    """What one term's crawl got through, and what stopped it if anything did."""

    term: str
    pages_fetched: int = 0
    course_codes_seen: int = 0
    courses_processed: int = 0
    courses_skipped: int = 0
    courses_failed: int = 0
    crns_processed: int = 0
    instructor_failures: int = 0
    records_emitted: int = 0
    cancelled: bool = False
    session_expired: bool = False
    error: Optional[str] = None

    @property
    def complete(self):
        return self.error is None and not self.cancelled

    def summary(self):
        text = (
            f"Term {self.term}: {self.pages_fetched} pages, {self.course_codes_seen} course codes "
            f"({self.courses_processed} processed, {self.courses_skipped} without sections, "
            f"{self.courses_failed} failed), {self.crns_processed} CRNs "
            f"({self.instructor_failures} instructor lookups failed), "
            f"{self.records_emitted} records emitted"
        )
        if self.error:
            text += f"; stopped: {self.error}"
        elif self.cancelled:
            text += "; cancelled"
        return text

    def as_dict(self):
        return dict(self.__dict__)


@dataclass
class _CourseResult:
    course_code: str
    records: List[CrawlRecord] = field(default_factory=list)
    skipped: bool = False
    failed: bool = False
    crns: int = 0
    instructor_failures: int = 0


class Crawler:
    """Crawls terms through one SessionClient and emits a record per section.

    With workers > 1 course codes are processed on a thread pool. Catalog and
    CRN queries still pair with their reset under the client's lock.
    """

    def __init__(
        self,
        client,
        sink=None,
        page_max_size=PAGE_MAX_SIZE,
        policy: Optional[RetryPolicy] = None,
        workers=1,
        cancel_event: Optional[threading.Event] = None,
        strict_reset=True,
        on_record=None,
    ):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.client = client
        self.sink = sink
        self.page_max_size = page_max_size
        self.policy = policy or RetryPolicy()
        self.workers = workers
        self.cancel_event = cancel_event or threading.Event()
        self.strict_reset = strict_reset
        self.on_record = on_record
        self._halt = threading.Event()

    def cancel(self):
        self.cancel_event.set()

    def _stopping(self):
        return self.cancel_event.is_set() or self._halt.is_set()

    def crawl(self, terms) -> List[CrawlReport]:
        """Crawl each term in turn. An expired session ends the whole batch."""
        reports = []
        for term in terms:
            if self._stopping():
                logger.info("Not starting term %s, crawl is stopping", term)
                break
            report = self.crawl_term(term)
            reports.append(report)
            if report.session_expired:
                logger.error("Session expired, skipping remaining terms")
                break
        return reports

    def crawl_term(self, term) -> CrawlReport:
        report = CrawlReport(term=term)
        logger.info("Starting crawl of term %s", term)
        try:
            pages = iter_course_codes(
                self.client, term, self.page_max_size, self.policy, strict_reset=self.strict_reset
            )
            for offset, codes in pages:
                report.pages_fetched += 1
                report.course_codes_seen += len(codes)
                self._process_codes(term, codes, report)
                if self._stopping():
                    break
        except SessionExpiredError as e:
            self._halt.set()
            report.session_expired = True
            report.error = f"session expired: {e}"
        except CrawlError as e:
            report.error = str(e)

        if self.cancel_event.is_set():
            report.cancelled = True
            self.client.close()

        if report.error:
            logger.error(report.summary())
        else:
            logger.info(report.summary())
        return report

    def _process_codes(self, term, codes, report):
        if self.workers == 1:
            for code in codes:
                if self._stopping():
                    return
                self._collect(self._process_course(term, code), report)
            return

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as executor:
            future_to_code = {
                executor.submit(self._process_course, term, code): code
                for code in codes
            }
            try:
                for future in concurrent.futures.as_completed(future_to_code):
                    self._collect(future.result(), report)
            except CrawlError:
                # Let queued courses return straight away
                self._halt.set()
                raise

    def _process_course(self, term, course_code):
        result = _CourseResult(course_code)
        if self._stopping():
            return result

        try:
            crns = fetch_crns(self.client, course_code, term, self.policy, strict_reset=self.strict_reset)
        except RetryExhaustedError as e:
            logger.error("Giving up on %s: %s", course_code, e)
            result.failed = True
            return result

        if not crns:
            logger.info("Not adding course %s because it has no sections in %s", course_code, term)
            result.skipped = True
            return result

        for crn in crns:
            if self._stopping():
                break
            try:
                instructors = fetch_instructors(self.client, term, crn, self.policy)
            except RetryExhaustedError as e:
                logger.error("Giving up on instructors for CRN %s: %s", crn, e)
                result.instructor_failures += 1
                continue
            result.crns += 1
            result.records.append(CrawlRecord(term, course_code, crn, instructors))
        return result

    def _collect(self, result, report):
        if result.failed:
            report.courses_failed += 1
        elif result.skipped:
            report.courses_skipped += 1
        elif result.crns or result.instructor_failures:
            report.courses_processed += 1
        report.crns_processed += result.crns
        report.instructor_failures += result.instructor_failures
        for record in result.records:
            self._emit(record)
            report.records_emitted += 1

    def _emit(self, record):
        if self.sink is not None:
            store_record(self.sink, record)
        if self.on_record is not None:
            self.on_record(record)
