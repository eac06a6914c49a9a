"""
Configuration management for the LiteTrack dashboard.

This module handles saving, loading, and managing the persisted dashboard
settings (theme, AI provider, delivery URL, verified flag) including JSON
serialization, per-key defaults and download link generation.
"""

import base64
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Union

from models import AIConfig, AIProviderType

THEMES = ("light", "dark")
MODELS = ("gemini-3-flash-preview", "gemini-3-pro-preview")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardConfig:
    """User-facing settings persisted between sessions"""

    theme: str = "light"
    ai_config: AIConfig = field(default_factory=AIConfig)
    target_url: str = ""
    is_verified: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "theme": self.theme,
            "aiConfig": self.ai_config.to_dict(),
            "targetUrl": self.target_url,
            "isVerified": self.is_verified,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DashboardConfig":
        """Create from dictionary, falling back to the default for any invalid key"""
        defaults = cls()

        theme = data.get("theme", defaults.theme)
        if theme not in THEMES:
            logger.warning(f"Unknown theme {theme!r}, using {defaults.theme!r}")
            theme = defaults.theme

        ai_config = _parse_ai_config(data.get("aiConfig"), defaults.ai_config)

        target_url = data.get("targetUrl", defaults.target_url)
        if not isinstance(target_url, str):
            target_url = defaults.target_url

        is_verified = data.get("isVerified", defaults.is_verified)
        if isinstance(is_verified, str):
            is_verified = is_verified.lower() == "true"
        elif not isinstance(is_verified, bool):
            is_verified = defaults.is_verified

        return cls(
            theme=theme,
            ai_config=ai_config,
            target_url=target_url,
            is_verified=is_verified,
        )


def _parse_ai_config(raw: Any, default: AIConfig) -> AIConfig:
    if not isinstance(raw, dict):
        return default

    try:
        provider = AIProviderType(raw.get("provider", default.provider.value))
    except ValueError:
        logger.warning(f"Unknown AI provider {raw.get('provider')!r}, using default")
        provider = default.provider

    model = raw.get("model", default.model)
    if model not in MODELS:
        model = default.model

    endpoint = raw.get("customEndpoint")
    return AIConfig(
        provider=provider,
        model=model,
        custom_endpoint=endpoint if isinstance(endpoint, str) and endpoint else None,
    )


class DashboardConfigManager:
    """Manages saving and loading of dashboard configuration"""

    @staticmethod
    def save_config(config: DashboardConfig) -> str:
        """Save dashboard configuration to JSON string"""
        config_data = {
            "config": config.to_dict(),
            "saved_at": datetime.now().isoformat(),
        }
        return json.dumps(config_data, indent=2)

    @staticmethod
    def load_config(config_json: str) -> DashboardConfig:
        """Load dashboard configuration from JSON string; unreadable input yields defaults"""
        try:
            config_data = json.loads(config_json)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Could not parse saved configuration, using defaults: {str(e)}")
            return DashboardConfig()

        if not isinstance(config_data, dict):
            return DashboardConfig()

        raw = config_data.get("config", config_data)
        return DashboardConfig.from_dict(raw if isinstance(raw, dict) else {})

    @classmethod
    def save_to_file(cls, config: DashboardConfig, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(cls.save_config(config), encoding="utf-8")
        logger.info(f"Saved dashboard configuration to {path}")
        return path

    @classmethod
    def load_from_file(cls, path: Union[str, Path]) -> DashboardConfig:
        path = Path(path)
        if not path.exists():
            logger.info(f"No saved configuration at {path}, using defaults")
            return DashboardConfig()
        return cls.load_config(path.read_text(encoding="utf-8"))

    @staticmethod
    def create_download_link(config_json: str, filename: str) -> str:
        """Create download link for configuration"""
        b64 = base64.b64encode(config_json.encode()).decode()
        return f'<a href="data:application/json;base64,{b64}" download="{filename}">Download Configuration</a>'
