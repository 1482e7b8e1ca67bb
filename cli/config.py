"""Settings for the Folder Vault CLI, kept in a JSON file."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from common.constants import DEFAULT_SERVICE_PORT
from common.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.foldervault' / 'config.json'

# Overrides the file's uploader_url for one-off runs against another server.
URL_ENV_VAR = 'FOLDERVAULT_URL'


class Config:
    """
    CLI settings: uploader location, timeouts and retry policy.

    Missing keys fall back to defaults, and values of the wrong type are
    ignored with a warning rather than failing the command.
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        "uploader_url": f"http://localhost:{DEFAULT_SERVICE_PORT}",
        "timeout": 30,
        "upload_timeout": None,
        "max_retries": 3,
        "retry_backoff_multiplier": 2,
    }

    NUMERIC_KEYS = ("timeout", "upload_timeout", "max_retries", "retry_backoff_multiplier")

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH):
        self.config_path = Path(config_path)
        self.data = dict(self.DEFAULT_CONFIG)
        self.data.update(self._read_file())

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            self._write_defaults()
            return {}

        try:
            stored = json.loads(self.config_path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable config {self.config_path}: {e}")
            return {}

        if not isinstance(stored, dict):
            logger.warning(f"Ignoring config {self.config_path}: expected a JSON object")
            return {}

        accepted = {}
        for key, value in stored.items():
            if key in self.NUMERIC_KEYS and value is not None and not isinstance(value, (int, float)):
                logger.warning(f"Ignoring non-numeric {key}={value!r} in {self.config_path}")
                continue
            accepted[key] = value
        return accepted

    def _write_defaults(self) -> None:
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            self.config_path = Path(tempfile.gettempdir()) / '.foldervault' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self.config_path.write_text(json.dumps(self.DEFAULT_CONFIG, indent=2))
        except OSError as e:
            logger.debug(f"Could not write default config: {e}")

    def get_base_url(self) -> str:
        """
        Uploader base URL; the FOLDERVAULT_URL env var wins over the file.
        """
        url = os.environ.get(URL_ENV_VAR) or self.data["uploader_url"]
        return url.rstrip('/')

    def get_timeout(self) -> float:
        return self.data["timeout"]

    def get_upload_timeout(self) -> Optional[float]:
        """
        Read timeout for uploads. None waits as long as the server takes to
        publish, which for large folders can be many minutes.
        """
        return self.data["upload_timeout"]

    def get_retry_config(self) -> Dict[str, float]:
        return {
            'max_retries': self.data["max_retries"],
            'retry_backoff_multiplier': self.data["retry_backoff_multiplier"],
        }
