"""Looks up who teaches a section from its faculty/meeting-times record."""

import logging
from dataclasses import asdict, dataclass
from typing import List, Optional

from loris_scraper.retry import RetryPolicy
from loris_scraper.session import BASE_URL, decode_json

logger = logging.getLogger(__name__)

FACULTY_MEETING_TIMES_URL = f"{BASE_URL}/searchResults/getFacultyMeetingTimes"


@dataclass(frozen=True)
class Instructor:
    display_name: str
    email_address: Optional[str]

    def as_dict(self):
        return asdict(self)


def parse_faculty(payload) -> List[Instructor]:
    """Decode the faculty list of a meeting-times payload.

    The portal leaves out the meeting times or the faculty of some sections
    (TBA sections in particular). Any of these is read as "no instructors":
    no payload, no "fmt" list, an empty or missing first "fmt" entry, and
    no "faculty" list in it.
    """
    if not isinstance(payload, dict):
        return []
    meeting_times = payload.get("fmt")
    if not isinstance(meeting_times, list) or not meeting_times:
        return []
    first = meeting_times[0]
    if not isinstance(first, dict):
        return []
    faculty = first.get("faculty")
    if not isinstance(faculty, list):
        return []

    instructors = []
    seen = set()
    for member in faculty:
        if not isinstance(member, dict):
            continue
        name = member.get("displayName")
        if not name or name in seen:
            continue
        seen.add(name)
        instructors.append(Instructor(display_name=name, email_address=member.get("emailAddress")))
    return instructors


def fetch_instructors(client, term, crn, policy=None):
    """Return the instructors of section crn in term (possibly empty)."""
    policy = policy or RetryPolicy()

    def _fetch():
        response = client.get(FACULTY_MEETING_TIMES_URL, params={"term": term, "courseReferenceNumber": crn})
        return decode_json(response)

    payload = policy.call(_fetch, f"instructor lookup for CRN {crn} in {term}")
    return parse_faculty(payload)
