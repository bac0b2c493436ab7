"""
pgtest

Short-lived, isolated PostgreSQL databases for automated test suites, with
opportunistic garbage collection of the ones that have aged out.
"""

from .testing.provisioner import (
    FailureSink,
    ProvisionedDatabase,
    ProvisioningError,
    Provisioner,
    RaisingFailureSink,
    caller_tag,
    database_url,
    migrations,
    open_database,
    schema_file,
)

__version__ = "0.1.0"

__all__ = [
    'FailureSink',
    'ProvisionedDatabase',
    'ProvisioningError',
    'Provisioner',
    'RaisingFailureSink',
    'caller_tag',
    'database_url',
    'migrations',
    'open_database',
    'schema_file',
]
