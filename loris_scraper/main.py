"""LORIS registration crawler entry point.

Usage:
    python -m loris_scraper.main FALL2023 --cookies cookies.json
"""

import argparse
import logging
import signal
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

from loris_scraper.crawler import Crawler
from loris_scraper.listing_scraper import PAGE_MAX_SIZE
from loris_scraper.retry import BACKOFF, MAX_RETRIES, RetryPolicy
from loris_scraper.session import REGISTRATION_URL, CookieFileProvider, SessionClient
from loris_scraper.sink import JsonFileSink

PROJECT_ROOT = Path(__file__).resolve().parent.parent
OUTPUT_PATH = PROJECT_ROOT / "data" / "loris_db.json"

TERMS = {
    "FALL2023": "202309",
    "WINTER2024": "202401",
    "SPRING2024": "202405",
}

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Crawl courses, sections and instructors from LORIS")
    parser.add_argument("terms", nargs="+", help="Term codes (e.g. 202309) or names (FALL2023)")
    parser.add_argument("--cookies", required=True, help="JSON export of the five session cookies")
    parser.add_argument("--out", default=str(OUTPUT_PATH), help="Output JSON path")
    parser.add_argument("--page-size", type=int, default=PAGE_MAX_SIZE, help="Catalog page size")
    parser.add_argument("--max-retries", type=int, default=MAX_RETRIES,
                        help="Retries after a dropped connection")
    parser.add_argument("--backoff", type=float, default=BACKOFF, help="Initial retry delay in seconds")
    parser.add_argument("--workers", type=int, default=1, help="Course codes processed in parallel")
    parser.add_argument("--lenient-reset", action="store_true",
                        help="Run queries even when the search form reset failed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def resolve_term(term):
    return TERMS.get(term.upper(), term)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    terms = [resolve_term(t) for t in args.terms]
    logger.info("Starting LORIS crawl for terms %s", ", ".join(terms))

    # A failure to load the session is fatal
    session = CookieFileProvider(args.cookies).acquire_session()

    cancel = threading.Event()

    def _on_sigint(signum, frame):
        logger.warning("Interrupted, finishing the current request and stopping")
        cancel.set()

    previous_handler = signal.signal(signal.SIGINT, _on_sigint)

    sink = JsonFileSink(args.out)
    policy = RetryPolicy(max_retries=args.max_retries, backoff=args.backoff)
    started = datetime.now(timezone.utc)
    reports = []
    with SessionClient(session) as client:
        crawler = Crawler(
            client,
            sink=sink,
            page_max_size=args.page_size,
            policy=policy,
            workers=args.workers,
            cancel_event=cancel,
            strict_reset=not args.lenient_reset,
        )
        try:
            reports = crawler.crawl(terms)
        finally:
            signal.signal(signal.SIGINT, previous_handler)
            sink.save(metadata={
                "scraped_at": started.isoformat(),
                "source": REGISTRATION_URL,
                "terms": terms,
                "reports": [r.as_dict() for r in reports],
            })

    for report in reports:
        logger.info(report.summary())
    failed = [r for r in reports if r.error]
    logger.info("Done: %d of %d terms completed", sum(r.complete for r in reports), len(terms))
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
