"""Configuration management for the photosync CLI."""

import json
import os
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from common.constants import (
    CHUNK_SIZE_BYTES,
    DEFAULT_BACKGROUND_EXPIRES_IN_SECONDS,
    DEFAULT_BACKGROUND_INTERVAL_SECONDS,
    DEFAULT_BATCH_CEILING,
    DEFAULT_CAPACITY_POLL_INTERVAL_SECONDS,
    DEFAULT_DATA_DIR,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_CONCURRENT_UPLOADS,
)
from common.logging_config import get_logger

logger = get_logger(__name__)


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "server_host": os.environ.get("PHOTOSYNC_SERVER_HOST", ""),
        "api_key": "",
        "source_dir": "",
        "data_dir": os.environ.get("PHOTOSYNC_DATA_DIR", DEFAULT_DATA_DIR),
        "timeout": DEFAULT_TIMEOUT_SECONDS,
        "max_retries": DEFAULT_MAX_RETRIES,
        "retry_backoff_multiplier": DEFAULT_RETRY_BACKOFF_MULTIPLIER,
        "chunk_size": CHUNK_SIZE_BYTES,
        "max_concurrent_uploads": MAX_CONCURRENT_UPLOADS,
        "batch_ceiling": DEFAULT_BATCH_CEILING,
        "poll_interval": DEFAULT_CAPACITY_POLL_INTERVAL_SECONDS,
        "background_interval": DEFAULT_BACKGROUND_INTERVAL_SECONDS,
        "background_expires_in": DEFAULT_BACKGROUND_EXPIRES_IN_SECONDS,
    }

    def __init__(self, config_path: Path):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.photosync/config.json)
        """
        self.config_path = config_path
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        Returns:
            Configuration dictionary
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            import tempfile
            self.config_path = Path(tempfile.gettempdir()) / '.photosync' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("config root must be an object")
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                return config
            except (json.JSONDecodeError, ValueError, IOError) as e:
                logger.warning(f"Corrupted config at {self.config_path}: {e}, using defaults")
                backup_path = self.config_path.with_suffix('.json.bak')
                try:
                    shutil.copy(self.config_path, backup_path)
                except OSError as backup_error:
                    logger.debug(f"Could not back up corrupted config: {backup_error}")
                return self.DEFAULT_CONFIG.copy()
        else:
            config = self.DEFAULT_CONFIG.copy()
            try:
                with open(self.config_path, 'w') as f:
                    json.dump(config, f, indent=2)
            except IOError as e:
                logger.warning(f"Could not write default config to {self.config_path}: {e}")
            return config

    def save(self) -> None:
        """Save current configuration to file."""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.data, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save config to {self.config_path}: {e}")

    def get_server_host(self) -> str:
        """
        Get server base URL without trailing slash.

        Returns:
            Base URL string (e.g., "https://photos.example.com"), or "" if unset
        """
        return (self.data.get('server_host') or '').strip().rstrip('/')

    def set_server(self, host: str, api_key: str) -> None:
        """
        Set server host and API key and save to file.

        Args:
            host: Server base URL with http or https scheme
            api_key: API key issued by the server

        Raises:
            ValueError: If the host is not an http(s) URL or the key is empty
        """
        host = host.strip().rstrip('/')
        parts = urlsplit(host)
        if parts.scheme not in ('http', 'https') or not parts.netloc:
            raise ValueError(f"Server host must be an http(s) URL, got '{host}'")
        if not api_key.strip():
            raise ValueError("API key cannot be empty")

        self.data['server_host'] = host
        self.data['api_key'] = api_key.strip()
        self.save()

    def get_api_key(self) -> Optional[str]:
        """
        Get stored API key.

        Returns:
            API key string or None if not set
        """
        return self.data.get('api_key') or None

    def get_source_dir(self) -> Optional[Path]:
        value = self.data.get('source_dir')
        return Path(value).expanduser() if value else None

    def set_source_dir(self, path: str) -> None:
        self.data['source_dir'] = str(Path(path).expanduser().resolve())
        self.save()

    def get_data_dir(self) -> Path:
        """
        Get directory holding settings, progress and upload sessions.

        Returns:
            Expanded data directory path
        """
        return Path(self.data.get('data_dir') or DEFAULT_DATA_DIR).expanduser()

    def get_timeout(self) -> int:
        """
        Get request timeout in seconds.

        Returns:
            Timeout value in seconds
        """
        return self.data.get('timeout', DEFAULT_TIMEOUT_SECONDS)

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', DEFAULT_MAX_RETRIES),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', DEFAULT_RETRY_BACKOFF_MULTIPLIER),
        }

    def get_upload_config(self) -> dict:
        """
        Get upload transport tuning.

        Returns:
            Dictionary with 'chunk_size' and 'max_concurrent_uploads'
        """
        return {
            'chunk_size': self.data.get('chunk_size', CHUNK_SIZE_BYTES),
            'max_concurrent_uploads': self.data.get('max_concurrent_uploads', MAX_CONCURRENT_UPLOADS),
        }

    def get_sync_config(self) -> dict:
        """
        Get coordinator pacing.

        Returns:
            Dictionary with 'batch_ceiling' and 'poll_interval'
        """
        return {
            'batch_ceiling': self.data.get('batch_ceiling', DEFAULT_BATCH_CEILING),
            'poll_interval': self.data.get('poll_interval', DEFAULT_CAPACITY_POLL_INTERVAL_SECONDS),
        }

    def get_background_config(self) -> dict:
        return {
            'interval': self.data.get('background_interval', DEFAULT_BACKGROUND_INTERVAL_SECONDS),
            'expires_in': self.data.get('background_expires_in', DEFAULT_BACKGROUND_EXPIRES_IN_SECONDS),
        }
