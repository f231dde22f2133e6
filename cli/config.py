"""Configuration management for the Reelup CLI."""

import json
import os
import shutil
from pathlib import Path
from typing import Optional

from common.constants import (
    CHUNK_TIMEOUT_SECONDS,
    DEFAULT_CHECKPOINT_PATH,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    PROGRESS_THROTTLE_SECONDS,
    SESSION_TIMEOUT_SECONDS,
)
from common.logging_config import get_logger

logger = get_logger(__name__)


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "signer_scheme": "http",
        "signer_host": os.environ.get("REELUP_SIGNER_HOST", "localhost"),
        "signer_port": int(os.environ.get("REELUP_SIGNER_PORT", "3000")),
        "timeout": SESSION_TIMEOUT_SECONDS,
        "chunk_timeout": CHUNK_TIMEOUT_SECONDS,
        "max_retries": DEFAULT_MAX_RETRIES,
        "retry_backoff_multiplier": DEFAULT_RETRY_BACKOFF_MULTIPLIER,
        "progress_interval": PROGRESS_THROTTLE_SECONDS,
        "checkpoint_path": str(DEFAULT_CHECKPOINT_PATH),
        "log_file": None,
    }

    def __init__(self, config_path: Path):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.reelup/config.json)
        """
        self.config_path = config_path
        self.data = self._load()

    def _load(self) -> dict:
        """
        Merge the config file over the defaults.

        A missing file is created from the defaults. An unreadable one is
        copied aside to config.json.bak and the defaults are used instead.

        Returns:
            Configuration dictionary
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if not self.config_path.exists():
            self._write(self.DEFAULT_CONFIG)
            return dict(self.DEFAULT_CONFIG)

        try:
            stored = json.loads(self.config_path.read_text())
            if not isinstance(stored, dict):
                raise ValueError("top-level value is not an object")
        except (ValueError, OSError) as e:
            self._backup_unreadable(e)
            return dict(self.DEFAULT_CONFIG)
        return {**self.DEFAULT_CONFIG, **stored}

    def _backup_unreadable(self, error: Exception) -> None:
        backup_path = self.config_path.with_suffix('.json.bak')
        logger.warning(f"Config file unreadable ({error}), backing up to {backup_path}")
        try:
            shutil.copy(self.config_path, backup_path)
        except OSError as copy_error:
            logger.warning(f"Failed to back up config file: {copy_error}")

    def _write(self, data: dict) -> None:
        try:
            self.config_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            logger.warning(f"Failed to write config to {self.config_path}: {e}")

    def save(self) -> None:
        """Save current configuration to file."""
        self._write(self.data)

    def get_auth_token(self) -> Optional[str]:
        """
        Get the bearer token forwarded to the signer.

        Returns:
            Token string or None if not set
        """
        return self.data.get('auth_token')

    def set_auth_token(self, token: str) -> None:
        """
        Set bearer token and save to file.

        Args:
            token: Opaque token issued by the signer's auth provider
        """
        self.data['auth_token'] = token
        self.save()

    def get_base_url(self) -> str:
        """
        Get signer base URL.

        Returns:
            Base URL string (e.g., "http://localhost:3000")
        """
        scheme = self.data.get('signer_scheme', 'http')
        host = self.data.get('signer_host', 'localhost')
        port = self.data.get('signer_port', 3000)
        return f"{scheme}://{host}:{port}"

    def get_timeout(self) -> float:
        """
        Get signer request timeout in seconds.

        Returns:
            Timeout value in seconds
        """
        return self.data.get('timeout', SESSION_TIMEOUT_SECONDS)

    def get_chunk_timeout(self) -> float:
        """
        Get per-chunk request timeout in seconds.

        Returns:
            Timeout value in seconds
        """
        return self.data.get('chunk_timeout', CHUNK_TIMEOUT_SECONDS)

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', DEFAULT_MAX_RETRIES),
            'retry_backoff_multiplier': self.data.get(
                'retry_backoff_multiplier', DEFAULT_RETRY_BACKOFF_MULTIPLIER
            ),
        }

    def get_progress_interval(self) -> float:
        return self.data.get('progress_interval', PROGRESS_THROTTLE_SECONDS)

    def get_checkpoint_path(self) -> Path:
        return Path(self.data.get('checkpoint_path', str(DEFAULT_CHECKPOINT_PATH))).expanduser()

    def get_log_file(self) -> Optional[Path]:
        """
        Get the log file path; None means log to stdout.

        Returns:
            Expanded path or None
        """
        log_file = self.data.get("log_file")
        return Path(log_file).expanduser() if log_file else None
