"""Configuration module for AutoSpread.

Centralized, environment-driven settings loaded through pydantic-settings.
"""

from config.settings import GlobalConfig, get_config

__all__ = ["GlobalConfig", "get_config"]
