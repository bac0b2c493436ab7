"""
Ephemeral Database Naming

Names look like ``pgtest_20261016093000Z_qwhxkzmebd_test_users``: a fixed
prefix, the UTC creation time, a random suffix and an optional caller tag.
The timestamp is fixed width so string order equals creation order, which is
what lets the garbage collector select expired databases with a plain
``datname < boundary`` comparison.
"""

import random
import re
import string
import threading
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Optional

NAME_PREFIX = "pgtest"
TIME_FORMAT = "%Y%m%d%H%M%S"
SUFFIX_LENGTH = 10
SUFFIX_ALPHABET = string.ascii_lowercase

# NAMEDATALEN - 1; longer identifiers are silently truncated by the server
MAX_IDENTIFIER_LENGTH = 63

_NAME_RE = re.compile(rf"^{NAME_PREFIX}_(\d{{14}})Z_")
_UNSAFE_TAG_CHARS = re.compile(r"[^a-z0-9_]")


def format_database_name(suffix: str, when: datetime) -> str:
    """
    Build a database name for the given suffix and creation time.

    Naive datetimes are taken to be UTC.
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    stamp = when.astimezone(timezone.utc).strftime(TIME_FORMAT)
    return f"{NAME_PREFIX}_{stamp}Z_{suffix}"


def parse_timestamp(name: str) -> Optional[datetime]:
    """Return the UTC creation time embedded in a name, or None."""
    match = _NAME_RE.match(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def sanitize_tag(hint: Optional[str]) -> str:
    """
    Turn a caller hint into a tag usable inside an identifier.

    Path-like hints are reduced to their file stem, so ``tests/test_users.py``
    becomes ``test_users``.
    """
    if not hint:
        return ""
    stem = PurePath(hint).stem
    return _UNSAFE_TAG_CHARS.sub("_", stem.lower())


class NameGenerator:
    """
    Generates unique, time-sortable database names.

    The generator owns its random source. The default is
    ``random.SystemRandom``; a seeded ``random.Random`` may be passed for
    reproducible output. Access is serialised so one instance can be shared
    between threads.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.SystemRandom()
        self._lock = threading.Lock()

    def random_suffix(self) -> str:
        with self._lock:
            return "".join(self._rng.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))

    def generate(self, caller_hint: Optional[str] = None, now: Optional[datetime] = None) -> str:
        """
        Generate a new database name.

        Args:
            caller_hint: Optional hint identifying the caller, usually the
                filename of the test module
            now: Creation time, defaults to the current UTC time

        Returns:
            Database name no longer than the server's identifier limit
        """
        now = now or datetime.now(timezone.utc)
        name = format_database_name(self.random_suffix(), now)

        tag = sanitize_tag(caller_hint)
        room = MAX_IDENTIFIER_LENGTH - len(name) - 1
        if tag and room > 0:
            name = f"{name}_{tag[:room]}"
        return name
