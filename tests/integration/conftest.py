"""
Integration fixtures: point the pgtest plugin at the test server.
"""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from pgtest.config.config_manager import ConfigManager
from pgtest.testing.provisioner import Provisioner


@pytest.fixture(scope="session")
def integration_config(admin_url):
    """ConfigManager stand-in targeting the integration server."""
    config = Mock(spec=ConfigManager)
    config.database_url = admin_url
    config.retention = timedelta(minutes=3)
    config.drop_limit = 6
    config.connect_timeout = 30.0
    return config


@pytest.fixture(scope="session")
def pgtest_provisioner(integration_config):
    """Overrides the plugin's provisioner so ephemeral_db uses the test server."""
    return Provisioner(config=integration_config)
