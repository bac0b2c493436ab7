"""
Database Connection Helpers for pgtest

Thin seam over asyncpg used by the provisioner and the garbage collector:
opening and scoping connections, quoting identifiers, rewriting connection
URLs, and translating driver errors into pgtest's exception hierarchy.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from urllib.parse import quote, urlsplit

import asyncpg

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 60.0


class PgTestError(Exception):
    """Base class for every error raised by pgtest."""
    pass


class ConfigurationError(PgTestError):
    """Raised when options or schema sources cannot be resolved."""
    pass


class DatabaseConnectionError(PgTestError):
    """Raised when the administrative server or a new database is unreachable."""
    pass


class SQLExecutionError(PgTestError):
    """Raised when CREATE DATABASE or a schema statement fails."""
    pass


class EnumerationError(PgTestError):
    """Raised when the inventory of ephemeral databases cannot be queried."""
    pass


class DropError(PgTestError):
    """Raised when an ephemeral database cannot be dropped."""
    pass


def quote_identifier(name: str) -> str:
    """
    Quote a PostgreSQL identifier.

    Embedded double quotes are doubled and anything after a NUL byte is
    discarded, matching the server's own parsing rules.

    Args:
        name: Raw identifier

    Returns:
        Identifier safe to splice into a DDL statement
    """
    end = name.find("\x00")
    if end > -1:
        name = name[:end]
    return '"' + name.replace('"', '""') + '"'


def rewrite_database_url(database_url: str, database_name: str) -> str:
    """
    Point a connection URL at another database.

    Only the path component changes; scheme, credentials, host, port and
    query parameters are preserved.

    Args:
        database_url: Connection URL of the administrative database
        database_name: Name of the database the new URL should target

    Returns:
        Rewritten connection URL
    """
    parts = urlsplit(database_url)
    url = f"{parts.scheme}://{parts.netloc}/{quote(database_name, safe='')}"
    if parts.query:
        url += f"?{parts.query}"
    if parts.fragment:
        url += f"#{parts.fragment}"
    return url


def mask_password(database_url: str) -> str:
    """Return the URL with its password replaced, for logging."""
    parts = urlsplit(database_url)
    if parts.password is None:
        return database_url
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    user = userinfo.split(":", 1)[0]
    return database_url.replace(parts.netloc, f"{user}:***@{hostinfo}", 1)


async def connect(database_url: str, timeout: Optional[float] = None) -> asyncpg.Connection:
    """
    Open a single database connection.

    Args:
        database_url: PostgreSQL connection URL
        timeout: Connection timeout in seconds

    Returns:
        Database connection

    Raises:
        DatabaseConnectionError: If connection fails
    """
    try:
        conn = await asyncpg.connect(database_url, timeout=timeout or DEFAULT_CONNECT_TIMEOUT)
        logger.debug(f"Connected to {mask_password(database_url)}")
        return conn

    except asyncpg.InvalidPasswordError as e:
        raise DatabaseConnectionError(f"Invalid password: {e}") from e
    except asyncpg.InvalidCatalogNameError as e:
        raise DatabaseConnectionError(f"Database does not exist: {e}") from e
    except asyncpg.PostgresError as e:
        raise DatabaseConnectionError(f"PostgreSQL connection error: {e}") from e
    except asyncio.TimeoutError as e:
        raise DatabaseConnectionError(f"Connection timeout: {e}") from e
    except OSError as e:
        raise DatabaseConnectionError(f"Cannot connect to host: {e}") from e
    except Exception as e:
        raise DatabaseConnectionError(f"Unexpected connection error: {e}") from e


@asynccontextmanager
async def scoped_connection(
    database_url: str,
    timeout: Optional[float] = None
) -> AsyncGenerator[asyncpg.Connection, None]:
    """
    Open a connection that is closed when the block exits, however it exits.

    Args:
        database_url: PostgreSQL connection URL
        timeout: Connection timeout in seconds

    Yields:
        Database connection

    Raises:
        DatabaseConnectionError: If connection fails
    """
    conn = await connect(database_url, timeout=timeout)
    try:
        yield conn
    finally:
        await conn.close()


async def execute_statement(conn: asyncpg.Connection, statement: str) -> str:
    """
    Execute SQL text through the simple query protocol.

    Multiple semicolon-separated statements are allowed.

    Returns:
        Command status of the last statement

    Raises:
        SQLExecutionError: If the server rejects the statement
    """
    try:
        return await conn.execute(statement)
    except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        raise SQLExecutionError(f"Query execution failed: {e}") from e
