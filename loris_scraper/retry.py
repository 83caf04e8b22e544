"""Failure classification and bounded retries for portal calls."""

import logging
import time

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BACKOFF = 1.5  # seconds, doubled on every retry


class CrawlError(Exception):
    """Base class for conditions that must stop a unit of crawl work."""


class RetryExhaustedError(CrawlError):
    def __init__(self, description, attempts):
        super().__init__(f"{description}: gave up after {attempts} attempts")
        self.description = description
        self.attempts = attempts


class SessionExpiredError(CrawlError):
    """The portal stopped accepting the session cookies."""


class TotalCountUnavailableError(CrawlError):
    def __init__(self, term):
        super().__init__(f"Could not determine the catalog size for term {term}")
        self.term = term


def is_connection_reset(exc):
    """Return True if the peer dropped the connection somewhere in exc's chain.

    requests wraps the socket error a few layers deep, e.g.
    ConnectionError(ProtocolError("Connection aborted.", ConnectionResetError(104, ...))),
    so the cause, context and args of every exception are searched.
    """
    pending = [exc]
    seen = set()
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, ConnectionResetError):
            return True
        pending.append(current.__cause__)
        pending.append(current.__context__)
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
    return False


class RetryPolicy:
    """Re-runs an operation when the connection is reset, up to max_retries times."""

    def __init__(self, max_retries=MAX_RETRIES, backoff=BACKOFF, sleep=time.sleep):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.backoff = backoff
        self.sleep = sleep

    def call(self, operation, description, default=None):
        """Run operation() and return its result.

        Connection resets re-run the whole operation with exponential backoff and
        raise RetryExhaustedError once the retries are used up. CrawlError
        propagates. Anything else is logged and `default` is returned.
        """
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                return operation()
            except CrawlError:
                raise
            except Exception as e:
                if not is_connection_reset(e):
                    logger.error("%s failed: %s", description, e)
                    return default
                if attempt == attempts - 1:
                    raise RetryExhaustedError(description, attempts) from e
                wait = self.backoff * 2 ** attempt
                logger.warning(
                    "Connection reset during %s (attempt %d/%d), retrying in %.1fs",
                    description, attempt + 1, attempts, wait,
                )
                self.sleep(wait)
