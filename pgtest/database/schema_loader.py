"""
pgtest Schema Loader
Resolves schema files and migration directories into ordered SQL text.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Union

from pgtest.database.connection_manager import ConfigurationError

logger = logging.getLogger(__name__)

SCHEMA_EXTENSION = ".sql"


class SchemaLoadError(ConfigurationError):
    """Raised when a schema source cannot be walked or read."""
    pass


@dataclass(frozen=True)
class SchemaFile:
    """A single SQL file applied verbatim."""
    path: Path


@dataclass(frozen=True)
class MigrationsDir:
    """A directory whose SQL files are applied in path order."""
    path: Path


SchemaSource = Union[SchemaFile, MigrationsDir]


def _raise_walk_error(error: OSError):
    raise error


def find_migrations(directory: Union[str, Path]) -> List[Path]:
    """
    List migration files below a directory.

    Every file whose name ends in ``.sql`` is returned, at any depth, sorted
    by full path so that prefixes such as ``0001_`` and ``0002_`` decide the
    order. Directories are never returned, even when their name ends in
    ``.sql``.

    Raises:
        SchemaLoadError: If the directory is missing or cannot be traversed
    """
    migrations = []
    try:
        for root, _dirs, files in os.walk(directory, onerror=_raise_walk_error):
            for filename in files:
                if filename.endswith(SCHEMA_EXTENSION):
                    migrations.append(Path(root) / filename)
    except OSError as e:
        raise SchemaLoadError(f"Cannot read migrations directory {directory}: {e}") from e

    return sorted(migrations, key=str)


def resolve_paths(sources: Iterable[SchemaSource]) -> List[Path]:
    """Expand schema sources into the ordered list of files to apply."""
    paths: List[Path] = []
    for source in sources:
        if isinstance(source, MigrationsDir):
            found = find_migrations(source.path)
            logger.debug(f"Found {len(found)} migrations in {source.path}")
            paths.extend(found)
        elif isinstance(source, SchemaFile):
            paths.append(Path(source.path))
        else:
            raise SchemaLoadError(f"Unsupported schema source: {source!r}")
    return paths


def load_schema(sources: Iterable[SchemaSource]) -> List[str]:
    """
    Read every schema source into SQL text blobs, in application order.

    Either every file is read or an error is raised; a partial list is
    never returned.

    Raises:
        SchemaLoadError: If any file or directory cannot be read
    """
    blobs = []
    for path in resolve_paths(sources):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                blobs.append(f.read())
        except (OSError, UnicodeDecodeError) as e:
            raise SchemaLoadError(f"Cannot read schema file {path}: {e}") from e
        logger.debug(f"Loaded schema file {path}")
    return blobs
