"""
Configuration Manager for pgtest

Handles the administrative connection target, garbage collection policy,
environment file loading and configuration validation.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Callable, Dict, Optional, Union
from urllib.parse import urlsplit

from pgtest.database.connection_manager import ConfigurationError


class ConfigValidationError(ConfigurationError):
    """Raised when configuration validation fails."""
    pass


class ConfigManager:
    """
    Central configuration management for pgtest.

    Provides:
    - Administrative database URL
    - Retention window and per-pass drop limit for garbage collection
    - Connection timeout
    - Environment file loading with precedence
    - Configuration validation
    """

    DEFAULT_DATABASE_URL = "postgresql:///postgres?sslmode=disable"

    # Defaults for every setting, keyed by environment variable
    DEFAULTS = {
        'PGTEST_RETENTION_SECONDS': '180',
        'PGTEST_DROP_LIMIT': '6',
        'PGTEST_CONNECT_TIMEOUT': '60',
    }

    VALID_SCHEMES = ('postgres', 'postgresql')

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize ConfigManager.

        Args:
            config_dir: Directory containing environment files
        """
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()

        # Initialize internal state
        self._env_vars: Dict[str, str] = {}

        # Load configuration
        self._load_env_files()

        # Perform validation
        self._validate_database_url(self.database_url)
        self._validate_positive('PGTEST_RETENTION_SECONDS')
        self._validate_positive('PGTEST_DROP_LIMIT')
        self._validate_positive('PGTEST_CONNECT_TIMEOUT', number=float)

    def _load_env_files(self):
        """Load environment files with precedence: .env.<ENV> > .env"""
        env = os.getenv('ENV', 'dev')

        # Later files override earlier ones
        env_files = ['.env', f'.env.{env}']

        for env_file in env_files:
            env_path = self.config_dir / env_file
            if env_path.is_file():
                self._load_env_file(env_path)

    def _load_env_file(self, env_path: Path):
        """Load a single environment file into our internal env_vars dict."""
        try:
            with open(env_path, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        self._env_vars[key.strip()] = value.strip()
        except OSError as e:
            raise ConfigValidationError(f"Cannot read environment file {env_path}: {e}") from e

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Look a setting up: os.environ first, then file-loaded env_vars."""
        return os.getenv(key) or self._env_vars.get(key) or default

    def _validate_database_url(self, url: str):
        """Validate the administrative database URL."""
        scheme = urlsplit(url).scheme
        if scheme not in self.VALID_SCHEMES:
            raise ConfigValidationError(
                f"Invalid database URL scheme '{scheme}' - expected one of {', '.join(self.VALID_SCHEMES)}"
            )

    def _validate_positive(self, key: str, number: Callable[[str], Union[int, float]] = int):
        """Validate that a setting is a positive integer (or number, with ``number=float``)."""
        raw = self.get(key, self.DEFAULTS[key])
        kind = "integer" if number is int else "number"
        try:
            value = number(raw)
        except ValueError:
            raise ConfigValidationError(f"Invalid {key}: '{raw}' - must be a positive {kind}")
        if not value > 0:
            raise ConfigValidationError(f"Invalid {key}: '{raw}' - must be a positive {kind}")

    @property
    def database_url(self) -> str:
        """Get the administrative database URL."""
        return (
            self.get('PGTEST_DATABASE_URL')
            or self.get('DATABASE_URL')
            or self.DEFAULT_DATABASE_URL
        )

    @property
    def retention(self) -> timedelta:
        """Get the garbage collection retention window."""
        return timedelta(seconds=int(self.get('PGTEST_RETENTION_SECONDS', self.DEFAULTS['PGTEST_RETENTION_SECONDS'])))

    @property
    def drop_limit(self) -> int:
        """Get the maximum number of drops per collection pass."""
        return int(self.get('PGTEST_DROP_LIMIT', self.DEFAULTS['PGTEST_DROP_LIMIT']))

    @property
    def connect_timeout(self) -> float:
        """Get the connection timeout in seconds."""
        return float(self.get('PGTEST_CONNECT_TIMEOUT', self.DEFAULTS['PGTEST_CONNECT_TIMEOUT']))

    def generate_env_template(self) -> str:
        """Generate environment template with every setting at its default."""
        template_lines = [f"PGTEST_DATABASE_URL={self.DEFAULT_DATABASE_URL}"]
        for key, value in self.DEFAULTS.items():
            template_lines.append(f"{key}={value}")
        return '\n'.join(template_lines)
