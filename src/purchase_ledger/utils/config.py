"""
Configuration management for the Purchase Ledger application.

This module handles:
- Database path configuration
- Environment-specific configuration (development vs. production)
- Purchase numbering and transaction settings
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_PURCHASE_NUMBER_PREFIX,
)

logger = logging.getLogger(__name__)

ENV_VAR_ENVIRONMENT = "PURCHASE_LEDGER_ENV"
ENV_VAR_DATABASE_URL = "PURCHASE_LEDGER_DATABASE_URL"
ENV_VAR_NUMBER_PREFIX = "PURCHASE_LEDGER_NUMBER_PREFIX"
ENV_VAR_CREATE_TIMEOUT = "PURCHASE_LEDGER_CREATE_TIMEOUT"


class Config:
    """
    Application configuration manager.

    Handles database location, environment mode and the tunables of the
    purchase transaction (number prefix, creation timeout).
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        self._database_url_override = os.environ.get(ENV_VAR_DATABASE_URL)

        self._purchase_number_prefix = os.environ.get(
            ENV_VAR_NUMBER_PREFIX, DEFAULT_PURCHASE_NUMBER_PREFIX
        )
        self._create_timeout_seconds = self._parse_timeout(
            os.environ.get(ENV_VAR_CREATE_TIMEOUT)
        )

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """
        Get the per-user data directory for production.

        Returns:
            Path to ~/.purchase_ledger
        """
        return Path.home() / ".purchase_ledger"

    @staticmethod
    def _parse_timeout(raw: Optional[str]) -> Optional[float]:
        """Parse the creation timeout, ignoring blank or invalid values."""
        if not raw:
            return None
        try:
            value = float(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid {ENV_VAR_CREATE_TIMEOUT}={raw!r}")
            return None
        return value if value > 0 else None

    def ensure_directories(self):
        """Create the database directory if it doesn't exist."""
        self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        PURCHASE_LEDGER_DATABASE_URL takes precedence over the file path.

        Returns:
            Database URL string for SQLAlchemy
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def purchase_number_prefix(self) -> str:
        """Prefix of generated purchase numbers (PREFIX-YYYYMM-NNNN)."""
        return self._purchase_number_prefix

    @property
    def create_timeout_seconds(self) -> Optional[float]:
        """Upper bound for one purchase creation, or None for unbounded."""
        return self._create_timeout_seconds

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if database file exists.

        Returns:
            True if database file exists, False otherwise
        """
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return (
            f"Config(environment='{self.environment}', " f"database_url='{self.database_url}')"
        )


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    PURCHASE_LEDGER_ENV or defaults to production. Ignored if
                    singleton already exists.

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


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """
    Get the database URL.

    Returns:
        SQLAlchemy database URL string
    """
    return get_config().database_url
