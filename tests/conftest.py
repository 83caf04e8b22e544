import pytest

from fake_portal import COOKIES, FakePortal
from loris_scraper.retry import RetryPolicy
from loris_scraper.session import Session, SessionClient


@pytest.fixture
def session():
    return Session.from_pairs(COOKIES)


@pytest.fixture
def portal():
    return FakePortal()


@pytest.fixture
def client(session, portal):
    return SessionClient(session, http=portal)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def policy(sleeps):
    return RetryPolicy(max_retries=2, backoff=0.5, sleep=sleeps.append)
