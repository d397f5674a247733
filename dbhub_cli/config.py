"""Configuration management for the DBHub CLI."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any
import os

import yaml


CONFIG_DIR = Path.home() / ".dbhub"
CONFIG_FILE = CONFIG_DIR / "config.yaml"


@dataclass
class CLIConfig:
    """CLI configuration.

    The API key is optional: without one, requests are anonymous and only
    public databases are visible.
    """

    url: str = ""
    api_key: str = ""

    @classmethod
    def load(cls) -> "CLIConfig":
        """Load configuration from file and environment.

        Priority (highest to lowest):
        1. Environment variables (DBHUB_URL, DBHUB_API_KEY)
        2. Config file (~/.dbhub/config.yaml)
        3. Defaults
        """
        config = cls()

        if CONFIG_FILE.exists():
            try:
                with open(CONFIG_FILE) as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError):
                data = {}  # Unreadable file, use defaults
            if isinstance(data, dict):
                config.url = data.get("url", "") or ""
                config.api_key = data.get("api_key", "") or ""

        if env_url := os.environ.get("DBHUB_URL"):
            config.url = env_url
        if env_key := os.environ.get("DBHUB_API_KEY"):
            config.api_key = env_key

        return config

    def save(self) -> None:
        """Save configuration to file."""
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)

        data = {
            "url": self.url,
            "api_key": self.api_key,
        }

        with open(CONFIG_FILE, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

    def set_value(self, key: str, value: str) -> None:
        """Set a configuration value."""
        key_normalized = key.lower().replace("-", "_")

        if key_normalized == "url":
            self.url = value
        elif key_normalized in ("api_key", "apikey"):
            self.api_key = value
        else:
            raise ValueError(f"Unknown config key: {key}")

        self.save()

    def get_value(self, key: str) -> str:
        """Get a configuration value."""
        key_normalized = key.lower().replace("-", "_")

        if key_normalized == "url":
            return self.url
        elif key_normalized in ("api_key", "apikey"):
            return self.api_key
        else:
            raise ValueError(f"Unknown config key: {key}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "url": self.url,
            "api_key": self._mask_key(self.api_key) if self.api_key else "",
        }

    @staticmethod
    def _mask_key(key: str) -> str:
        """Mask API key for display."""
        if len(key) <= 8:
            return "*" * len(key)
        return key[:4] + "*" * (len(key) - 8) + key[-4:]

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if not self.url:
            errors.append("URL not configured. Use: dbhub config set url <url>")
        return errors


def get_config() -> CLIConfig:
    """Get the current configuration."""
    return CLIConfig.load()
