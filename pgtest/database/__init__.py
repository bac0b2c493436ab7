"""
Database package for pgtest.

Provides ephemeral database naming, schema loading, garbage collection and
the driver-level connection helpers they share.
"""

from .connection_manager import (
    ConfigurationError,
    DatabaseConnectionError,
    DropError,
    EnumerationError,
    PgTestError,
    SQLExecutionError
)
from .garbage_collector import GarbageCollector
from .naming import NameGenerator
from .schema_loader import SchemaLoadError, load_schema

__all__ = [
    'ConfigurationError',
    'DatabaseConnectionError',
    'DropError',
    'EnumerationError',
    'GarbageCollector',
    'NameGenerator',
    'PgTestError',
    'SQLExecutionError',
    'SchemaLoadError',
    'load_schema'
]
