"""
pgtest Garbage Collector

Drops ephemeral databases once they are older than the retention window.
Collection piggybacks on provisioning: every new database triggers one
bounded pass, and the drops themselves run on a detached background loop
whose results nobody observes.

Also usable as an administrative command:

    pgtest-gc list
    pgtest-gc collect
    pgtest-gc purge [--all] [--dry-run]
"""

import argparse
import asyncio
import logging
import os
import sys
import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Protocol, Set, Tuple

import asyncpg

from pgtest.database.connection_manager import (
    DropError,
    EnumerationError,
    PgTestError,
    quote_identifier,
    scoped_connection,
)
from pgtest.database.naming import NAME_PREFIX, format_database_name, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(minutes=3)
DEFAULT_DROP_LIMIT = 6

# "_" is a LIKE wildcard, so it is escaped to match the separator literally
EPHEMERAL_PATTERN = f"{NAME_PREFIX}\\_%"

LIST_QUERY = """
    SELECT datname FROM pg_database
    WHERE datname LIKE $1
    ORDER BY datname
"""

EXPIRED_QUERY = """
    SELECT datname FROM pg_database
    WHERE datname LIKE $1 AND datname < $2
    ORDER BY datname
"""


def boundary_name(now: datetime, retention: timedelta) -> str:
    """
    Synthetic name that sorts after every database created before
    ``now - retention`` and before every database created later.
    """
    return format_database_name("db", now - retention)


async def drop_database(admin_url: str, name: str, timeout: Optional[float] = None) -> None:
    """
    Drop one database using a dedicated connection to the admin database.

    Raises:
        DropError: If the connection or the DROP statement fails
    """
    try:
        async with scoped_connection(admin_url, timeout=timeout) as conn:
            await conn.execute(f"DROP DATABASE IF EXISTS {quote_identifier(name)}")
    except PgTestError as e:
        raise DropError(f"Failed to drop {name}: {e}") from e
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        raise DropError(f"Failed to drop {name}: {e}") from e


async def _drop_quietly(admin_url: str, name: str, timeout: Optional[float]) -> None:
    try:
        await drop_database(admin_url, name, timeout=timeout)
    except DropError:
        # The database stays eligible and a later pass picks it up
        pass


class Dropper(Protocol):
    def submit(self, admin_url: str, name: str) -> None:
        ...


class BackgroundDropper:
    """
    Detached work queue for DROP DATABASE statements.

    Drops run on a private event loop in a daemon thread, so they neither
    block nor depend on the caller's event loop. ``submit`` returns nothing:
    completion and failures are not observable, and pending drops are
    abandoned when the process exits.

    A database with a drop still in flight is not submitted again, so
    repeated passes over the same expired names open at most one admin
    connection per database.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._pid: Optional[int] = None
        self._pending: Set[Tuple[str, str]] = set()

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            # A forked child inherits the loop object but not its thread
            if self._loop is None or self._pid != os.getpid() or not self._thread.is_alive():
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=loop.run_forever,
                    name="pgtest-gc",
                    daemon=True
                )
                thread.start()
                self._loop, self._thread, self._pid = loop, thread, os.getpid()
                # Drops pending on a dead loop will never finish
                self._pending.clear()
            return self._loop

    @property
    def pending(self) -> Set[Tuple[str, str]]:
        """(admin_url, name) pairs whose drop has not finished yet."""
        with self._lock:
            return set(self._pending)

    async def _drop_and_release(self, key: Tuple[str, str]) -> None:
        admin_url, name = key
        try:
            await _drop_quietly(admin_url, name, self.timeout)
        finally:
            with self._lock:
                self._pending.discard(key)

    def submit(self, admin_url: str, name: str) -> None:
        loop = self._ensure_loop()
        key = (admin_url, name)
        with self._lock:
            if key in self._pending:
                return
            self._pending.add(key)
        asyncio.run_coroutine_threadsafe(self._drop_and_release(key), loop)


_default_dropper: Optional[BackgroundDropper] = None
_default_dropper_lock = threading.Lock()


def default_dropper() -> BackgroundDropper:
    """Process-wide dropper shared by every collector that is not given one."""
    global _default_dropper
    with _default_dropper_lock:
        if _default_dropper is None:
            _default_dropper = BackgroundDropper()
        return _default_dropper


class GarbageCollector:
    """
    Selects expired ephemeral databases and schedules a bounded number of
    fire-and-forget drops per pass.
    """

    def __init__(
        self,
        admin_url: str,
        retention: timedelta = DEFAULT_RETENTION,
        drop_limit: int = DEFAULT_DROP_LIMIT,
        dropper: Optional[Dropper] = None
    ):
        """
        Initialize GarbageCollector.

        Args:
            admin_url: URL of the administrative database drops connect to
            retention: Minimum age before a database may be dropped
            drop_limit: Maximum number of drops scheduled per pass
            dropper: Work queue for drops, the process-wide default if omitted
        """
        self.admin_url = admin_url
        self.retention = retention
        self.drop_limit = drop_limit
        self._dropper = dropper

    @property
    def dropper(self) -> Dropper:
        if self._dropper is None:
            self._dropper = default_dropper()
        return self._dropper

    async def list_ephemeral(self, conn: asyncpg.Connection) -> List[str]:
        """
        List every database following the ephemeral naming convention.

        Raises:
            EnumerationError: If the inventory query fails
        """
        try:
            rows = await conn.fetch(LIST_QUERY, EPHEMERAL_PATTERN)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise EnumerationError(f"Failed to list ephemeral databases: {e}") from e
        return [row['datname'] for row in rows]

    async def find_expired(self, conn: asyncpg.Connection, now: Optional[datetime] = None) -> List[str]:
        """
        List ephemeral databases older than the retention window, oldest first.

        Raises:
            EnumerationError: If the inventory query fails
        """
        now = now or datetime.now(timezone.utc)
        boundary = boundary_name(now, self.retention)
        try:
            rows = await conn.fetch(EXPIRED_QUERY, EPHEMERAL_PATTERN, boundary)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise EnumerationError(f"Failed to query expired databases: {e}") from e
        return [row['datname'] for row in rows]

    async def collect(self, conn: asyncpg.Connection, now: Optional[datetime] = None) -> List[str]:
        """
        Run one collection pass.

        At most ``drop_limit`` expired databases are handed to the dropper;
        the rest are left to later passes. Returns the names handed over,
        which says nothing about whether they have been dropped yet.

        Raises:
            EnumerationError: If the inventory query fails
        """
        expired = await self.find_expired(conn, now)
        scheduled = expired[:self.drop_limit]
        for name in scheduled:
            self.dropper.submit(self.admin_url, name)

        if scheduled:
            logger.debug(
                f"Scheduled {len(scheduled)} of {len(expired)} expired databases for drop"
            )
        return scheduled


def _format_age(created: Optional[datetime], now: datetime) -> str:
    if created is None:
        return "unknown"
    seconds = int((now - created).total_seconds())
    minutes, seconds = divmod(max(seconds, 0), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m{seconds:02d}s"


async def _drop_all(collector: GarbageCollector, names: List[str], dry_run: bool) -> int:
    failures = 0
    for name in names:
        if dry_run:
            print(f"  [DRY RUN] Would drop database: {name}")
            continue
        try:
            await drop_database(collector.admin_url, name)
            print(f"  Dropped database: {name}")
        except DropError as e:
            failures += 1
            print(f"  Failed to drop {name}: {e}")
    return failures


async def main(argv: Optional[List[str]] = None) -> int:
    """Command-line interface for the garbage collector."""
    from pgtest.config.config_manager import ConfigManager

    parser = argparse.ArgumentParser(description="pgtest ephemeral database garbage collector")
    parser.add_argument('command', choices=['list', 'collect', 'purge'],
                        help='Garbage collection command to execute')
    parser.add_argument('--all', action='store_true',
                        help='With purge: drop every ephemeral database, expired or not')
    parser.add_argument('--dry-run', action='store_true',
                        help='Show what would be dropped without dropping anything')
    parser.add_argument('--database-url', help='Admin database URL (overrides PGTEST_DATABASE_URL)')

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    now = datetime.now(timezone.utc)

    try:
        config = ConfigManager()
        admin_url = args.database_url or config.database_url
        collector = GarbageCollector(
            admin_url,
            retention=config.retention,
            drop_limit=config.drop_limit
        )
        async with scoped_connection(admin_url, timeout=config.connect_timeout) as conn:
            if args.command == 'list':
                names = await collector.list_ephemeral(conn)
                expired = set(await collector.find_expired(conn, now))
            elif args.command == 'collect':
                names = (await collector.find_expired(conn, now))[:collector.drop_limit]
            elif args.all:
                names = await collector.list_ephemeral(conn)
            else:
                names = await collector.find_expired(conn, now)
    except PgTestError as e:
        logger.error(f"Garbage collection failed: {e}")
        return 1

    if args.command == 'list':
        print(f"Ephemeral databases: {len(names)}")
        for name in names:
            state = "expired" if name in expired else "live"
            print(f"  {name}  age={_format_age(parse_timestamp(name), now)}  {state}")
        return 0

    print(f"Databases to drop: {len(names)}")
    failures = await _drop_all(collector, names, args.dry_run)
    if failures:
        logger.error(f"{failures} of {len(names)} drops failed")
        return 1
    return 0


def run():
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
