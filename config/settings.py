"""
Configuration settings with environment variable loading.

Settings are plain frozen values handed to the sync orchestrator; nothing
reads configuration from a process-wide singleton.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


@dataclass(frozen=True)
class SyncConfig:
    """
    Sync engine configuration.

    A missing server URL means offline-only mode.
    """
    server_url: Optional[str] = None
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    timeout_seconds: float = 30.0

    def __post_init__(self):
        url = (self.server_url or "").strip().rstrip("/") or None
        object.__setattr__(self, "server_url", url)

        if url and not url.startswith(("http://", "https://")):
            raise ConfigurationError("REMEDY_SERVER_URL must be an http(s) URL")
        if self.max_retries < 1:
            raise ConfigurationError("REMEDY_SYNC_MAX_RETRIES must be at least 1")
        if self.retry_delay_seconds < 0:
            raise ConfigurationError("REMEDY_SYNC_RETRY_DELAY cannot be negative")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("REMEDY_SYNC_TIMEOUT must be positive")

    @property
    def sync_enabled(self) -> bool:
        """Check if a remote server is configured."""
        return self.server_url is not None


@dataclass(frozen=True)
class StorageConfig:
    """Local record store configuration."""
    database_path: Path = field(default_factory=lambda: Path("data/remedy.db"))

    def __post_init__(self):
        object.__setattr__(self, 'database_path', Path(self.database_path))


@dataclass(frozen=True)
class Settings:
    """
    Application settings container.

    All configuration is loaded from environment variables.
    """
    sync: SyncConfig
    storage: StorageConfig
    log_level: str = "INFO"

    def __repr__(self) -> str:
        return (
            f"Settings(\n"
            f"  sync={self.sync},\n"
            f"  storage={self.storage}\n"
            f")"
        )


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """
    Load settings from environment variables.

    Optionally loads from a .env file first.

    Args:
        env_file: Optional path to .env file

    Returns:
        Configured Settings instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if env_file and env_file.exists():
        _load_env_file(env_file)
    elif Path(".env").exists():
        _load_env_file(Path(".env"))

    try:
        sync = SyncConfig(
            server_url=os.getenv("REMEDY_SERVER_URL") or None,
            max_retries=int(os.getenv("REMEDY_SYNC_MAX_RETRIES", "3")),
            retry_delay_seconds=float(os.getenv("REMEDY_SYNC_RETRY_DELAY", "1.0")),
            timeout_seconds=float(os.getenv("REMEDY_SYNC_TIMEOUT", "30")),
        )

        storage = StorageConfig(
            database_path=Path(os.getenv("REMEDY_DATABASE_PATH", "data/remedy.db")),
        )

        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        settings = Settings(sync=sync, storage=storage, log_level=log_level)

        if not sync.sync_enabled:
            logger.info("No server URL configured - running in offline-only mode")
        logger.debug(f"Settings: {settings}")

        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Failed to load configuration: {e}") from e


def _load_env_file(path: Path) -> None:
    """
    Load environment variables from a file.

    Simple .env parser that handles:
    - KEY=value
    - KEY="quoted value"
    - # comments
    - Empty lines
    """
    logger.debug(f"Loading environment from {path}")

    with open(path) as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()

            if not line or line.startswith("#"):
                continue

            if "=" not in line:
                logger.warning(f"Invalid line {line_num} in {path}: no '=' found")
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            if value.startswith('"') and value.endswith('"'):
                value = value[1:-1]
            elif value.startswith("'") and value.endswith("'"):
                value = value[1:-1]

            # Real environment variables take precedence
            if key not in os.environ:
                os.environ[key] = value
