"""
pgtest Testing Infrastructure

Provisioning of ephemeral databases and the pytest plugin built on it.
"""
