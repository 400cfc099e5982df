"""
Configuration module for whatsbot.
"""

import os
import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "WHATSBOT_"
CONFIG_PATH_ENV = "WHATSBOT_CONFIG"


class Config:
    """
    Configuration handler for whatsbot.
    Manages the store location, gateway endpoint, timeouts and server settings.
    """

    DEFAULT_CONFIG = {
        "log_level": "INFO",
        "store_path": "whatsapp.db",
        "gateway_url": "http://127.0.0.1:8088",
        "request_timeout": 15,  # seconds
        "connect_timeout": 15,  # seconds
        "pairing_timeout": 60,  # seconds
        "force_relink": True,
        "host": "0.0.0.0",
        "port": 5003,
        "platform": "whatsbot",
        "debug_client": False
    }

    def __init__(self, config_path: Optional[str] = None, use_env: bool = True):
        """
        Initialize the configuration.

        Args:
            config_path: Path to the configuration file. If None, falls back to
                the WHATSBOT_CONFIG environment variable, then to defaults.
            use_env: Whether WHATSBOT_<KEY> environment variables override values.
        """
        self.config = self.DEFAULT_CONFIG.copy()
        self.config_path = config_path or (os.environ.get(CONFIG_PATH_ENV) if use_env else None)

        if self.config_path and os.path.exists(self.config_path):
            self._load_config(self.config_path)

        if use_env:
            self._load_env()

        # Setup logging based on config
        self._setup_logging()

    def _load_config(self, config_path: str) -> None:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file.
        """
        try:
            with open(config_path, 'r') as f:
                user_config = json.load(f)
                self.config.update(user_config)
            logger.debug(f"Loaded configuration from {config_path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load config from {config_path}: {str(e)}")

    def _load_env(self) -> None:
        """Apply WHATSBOT_<KEY> overrides, coerced to the type of the default."""
        for key, default in self.DEFAULT_CONFIG.items():
            raw = os.environ.get(ENV_PREFIX + key.upper())
            if raw is None:
                continue
            try:
                self.config[key] = self._coerce(raw, default)
            except ValueError:
                logger.warning(f"Ignoring invalid value for {ENV_PREFIX + key.upper()}: {raw!r}")

    @staticmethod
    def _coerce(raw: str, default: Any) -> Any:
        if isinstance(default, bool):
            lowered = raw.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        return raw

    def _setup_logging(self) -> None:
        """Configure logging based on settings."""
        log_level = getattr(logging, str(self.config.get("log_level", "INFO")).upper(), logging.INFO)

        logging.basicConfig(
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        logging.getLogger("whatsbot").setLevel(log_level)

        # Gateway wire chatter is only useful when debugging the client
        if self.config.get("debug_client", False):
            logging.getLogger("whatsbot.client").setLevel(logging.DEBUG)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: The configuration key.
            default: Default value if key is not found.

        Returns:
            The configuration value or default.
        """
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            key: The configuration key.
            value: The value to set.
        """
        self.config[key] = value

        # Reload logging if log level changes
        if key in ("log_level", "debug_client"):
            self._setup_logging()

    def as_dict(self) -> Dict[str, Any]:
        """Return a copy of the current settings."""
        return dict(self.config)

    def save(self, path: Optional[str] = None) -> None:
        """
        Save the current configuration to a file.

        Args:
            path: Path to save the configuration file. If None, uses config_path.
        """
        save_path = path or self.config_path

        if not save_path:
            logger.warning("No path specified for saving configuration")
            return

        try:
            Path(save_path).parent.mkdir(parents=True, exist_ok=True)

            with open(save_path, 'w') as f:
                json.dump(self.config, f, indent=4)
            logger.debug(f"Saved configuration to {save_path}")
        except OSError as e:
            logger.error(f"Failed to save config to {save_path}: {str(e)}")
