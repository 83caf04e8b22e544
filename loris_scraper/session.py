"""Session cookies, the cookie-bound HTTP client, and the search-form reset."""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import requests
from bs4 import BeautifulSoup

from loris_scraper.retry import RetryPolicy, SessionExpiredError

logger = logging.getLogger(__name__)

BASE_URL = "https://loris.wlu.ca/register/ssb"
REGISTRATION_URL = f"{BASE_URL}/registration/"
RESET_URL = f"{BASE_URL}/courseSearch/resetDataForm"
RESET_BODY = "resetCourses=false&resetSections=true"
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}

SESSION_COOKIE_COUNT = 5
TIMEOUT = 30


@dataclass(frozen=True)
class Session:
    """The five authentication cookies of one logged-in portal session."""

    cookies: Tuple[Tuple[str, str], ...]

    def __post_init__(self):
        if len(self.cookies) != SESSION_COOKIE_COUNT:
            raise ValueError(
                f"A session needs exactly {SESSION_COOKIE_COUNT} cookies, got {len(self.cookies)}"
            )

    @classmethod
    def from_pairs(cls, pairs):
        return cls(tuple((str(name), str(value)) for name, value in pairs))

    @classmethod
    def from_browser_cookies(cls, cookies: List[Dict]):
        """Build a session from cookie dicts as a browser driver reports them.

        Only the first five cookies are kept; the rest belong to the browser,
        not the registration session.
        """
        return cls.from_pairs((c["name"], c["value"]) for c in cookies[:SESSION_COOKIE_COUNT])

    def cookie_header(self):
        return "; ".join(f"{name}={value}" for name, value in self.cookies)


class SessionProvider(ABC):
    """Anything that can log in to the portal and hand back a Session."""

    @abstractmethod
    def acquire_session(self) -> Session:
        raise NotImplementedError


class CookieFileProvider(SessionProvider):
    """Reads a session from a JSON cookie export.

    Accepts either a list of {"name", "value"} dicts or a {name: value} object.
    """

    def __init__(self, path):
        self.path = Path(path)

    def acquire_session(self):
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            session = Session.from_pairs(data.items())
        else:
            session = Session.from_browser_cookies(data)
        logger.info("Loaded session cookies from %s", self.path)
        return session


class SessionClient:
    """HTTP client that sends the same session cookies with every request.

    Transport errors are raised unchanged; retrying is up to the caller.
    `lock` guards a reset and the query that depends on it.
    """

    def __init__(self, session: Session, http=None, timeout=TIMEOUT):
        self.session = session
        self.timeout = timeout
        self.http = http if http is not None else requests.Session()
        self.http.headers["Cookie"] = session.cookie_header()
        self.lock = threading.RLock()

    def post(self, url, data, headers=None):
        return self.http.post(url, data=data, headers=headers, timeout=self.timeout)

    def get(self, url, params=None):
        return self.http.get(url, params=params, timeout=self.timeout)

    def close(self):
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def check_authorized(response):
    """Raise SessionExpiredError if the portal refused the session cookies."""
    if response.status_code in (401, 403):
        raise SessionExpiredError(f"{response.url} returned HTTP {response.status_code}")
    content_type = response.headers.get("Content-Type", "")
    if response.ok and "html" in content_type:
        # An expired session is redirected to the login page instead of getting JSON
        soup = BeautifulSoup(response.text, "lxml")
        title = soup.title.get_text(strip=True) if soup.title else "untitled page"
        raise SessionExpiredError(f"{response.url} returned an HTML page ({title})")
    response.raise_for_status()


def decode_json(response):
    """Return the JSON body of response after checking the session is still accepted."""
    check_authorized(response)
    return response.json()


def reset_search_form(client: SessionClient, policy: Optional[RetryPolicy] = None):
    """Clear the portal's server-side section search state.

    Returns True when the reset went through. A failure that is not a
    connection reset is logged and reported as False.
    """
    policy = policy or RetryPolicy()

    def _reset():
        with client.lock:
            check_authorized(client.post(RESET_URL, RESET_BODY, headers=FORM_HEADERS))
        return True

    return policy.call(_reset, "search form reset", default=False)


def query(client, policy, url, payload, description, default=None, strict_reset=True):
    """Reset the search form, then POST payload to url and return the decoded JSON.

    Both requests run under the client's lock so no other query can slip in
    between them, and a connection reset re-runs the pair from the start.
    """

    def _reset_and_post():
        with client.lock:
            if not reset_search_form(client, policy):
                if strict_reset:
                    logger.error("Skipping %s: search form reset failed", description)
                    return default
                logger.warning("Search form reset failed, running %s anyway", description)
            return decode_json(client.post(url, payload, headers=FORM_HEADERS))

    return policy.call(_reset_and_post, description, default=default)
