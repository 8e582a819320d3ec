from __future__ import annotations

from .settings import ConfigError, Settings, get_safe_config_report, get_settings

__all__ = ["ConfigError", "Settings", "get_safe_config_report", "get_settings"]
