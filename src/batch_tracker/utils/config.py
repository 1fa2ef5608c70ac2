"""
Configuration management for the batch-tracker application.

This module handles:
- Database URL configuration
- Environment-specific configuration (production, development, test)
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import DATABASE_FILENAME

ENV_VAR_ENVIRONMENT = "BATCH_TRACKER_ENV"
ENV_VAR_DATABASE_URL = "BATCH_TRACKER_DATABASE_URL"
ENV_VAR_DATA_DIR = "BATCH_TRACKER_DATA_DIR"

logger = logging.getLogger(__name__)


class Config:
    """
    Application configuration manager.

    Resolves the database location for the current environment. An explicit
    database URL (argument or BATCH_TRACKER_DATABASE_URL) always wins.
    """

    def __init__(self, environment: str = "production", database_url: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            environment: 'production', 'development' or 'test'
            database_url: Optional explicit SQLAlchemy URL
        """
        self.environment = environment
        self._database_url = database_url or os.environ.get(ENV_VAR_DATABASE_URL)

        if environment == "test":
            self._base_dir = None
        elif environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_path = self._base_dir / DATABASE_FILENAME if self._base_dir else None

    def _get_project_data_dir(self) -> Path:
        """Project's data/ directory, used for development."""
        project_root = Path(__file__).parent.parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Per-user data directory for production."""
        override = os.environ.get(ENV_VAR_DATA_DIR)
        if override:
            return Path(override)
        return Path.home() / ".batch_tracker"

    def ensure_directories(self) -> None:
        """Create the database directory if it doesn't exist."""
        if self.database_path is not None:
            self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Optional[Path]:
        """Full path to the SQLite file, None for in-memory/explicit URLs."""
        if self._database_url:
            return None
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            Database URL string for SQLAlchemy
        """
        if self._database_url:
            return self._database_url
        if self._database_path is None:
            return "sqlite:///:memory:"
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    def database_exists(self) -> bool:
        """True when the configured SQLite file exists on disk."""
        path = self.database_path
        return path is not None and path.exists()

    def __repr__(self) -> str:
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment is not changed by passing a
    different environment argument; use set_config() or reset_config().

    Args:
        environment: Optional environment for initial creation. If None, uses
                    BATCH_TRACKER_ENV or defaults to production.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_VAR_ENVIRONMENT, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def set_config(config: Config) -> None:
    """Install an explicit configuration (CLI --database, tests)."""
    global _config_instance
    _config_instance = config


def reset_config() -> None:
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None
