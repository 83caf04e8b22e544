"""Output store for crawl records: a nested dict tree addressed by /-paths."""

import copy
import json
import logging
import re
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

# Characters the realtime database rejects in keys
UNSAFE_KEY_CHARS = re.compile(r"[.$#/\[\]]")


def _split(path):
    parts = [p for p in path.split("/") if p]
    if not parts:
        raise ValueError(f"Empty sink path: {path!r}")
    return parts


class DictSink:
    """In-memory tree supporting upsert(path, value) and read(path)."""

    def __init__(self, data=None):
        self.data = data if data is not None else {}
        self._lock = threading.RLock()

    def upsert(self, path, value):
        *parents, leaf = _split(path)
        with self._lock:
            node = self.data
            for key in parents:
                child = node.get(key)
                if not isinstance(child, dict):
                    child = node[key] = {}
                node = child
            node[leaf] = copy.deepcopy(value)

    def read(self, path):
        with self._lock:
            node = self.data
            for key in _split(path):
                if not isinstance(node, dict) or key not in node:
                    return None
                node = node[key]
            return copy.deepcopy(node)


class JsonFileSink(DictSink):
    """A DictSink backed by a JSON file, so reruns merge into earlier output."""

    def __init__(self, path):
        self.path = Path(path)
        data = {}
        if self.path.exists():
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            logger.info("Loaded existing output from %s", self.path)
        super().__init__(data)

    def save(self, metadata=None):
        with self._lock:
            if metadata is not None:
                self.data["metadata"] = metadata
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)
        logger.info("Wrote output to %s", self.path)


def store_record(sink, record):
    """Merge one crawl record into the sink.

    /courses/<code>/<term> collects the course's CRNs and
    /instructors/<name> maps to {"email": ..., <term>: [CRNs]}.
    Lists never receive the same CRN twice.
    """
    course_path = f"/courses/{record.course_code}/{record.term}"
    crns = sink.read(course_path) or []
    if record.crn not in crns:
        crns.append(record.crn)
        sink.upsert(course_path, crns)

    for instructor in record.instructors:
        name = UNSAFE_KEY_CHARS.sub("", instructor.display_name).strip()
        if not name:
            logger.warning("Skipping instructor with unusable name %r", instructor.display_name)
            continue
        path = f"/instructors/{name}"
        entry = sink.read(path) or {"email": instructor.email_address}
        if entry.get("email") is None and instructor.email_address:
            entry["email"] = instructor.email_address
        taught = entry.setdefault(record.term, [])
        if record.crn not in taught:
            taught.append(record.crn)
        sink.upsert(path, entry)
