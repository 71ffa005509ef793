"""Configuration management."""

from .settings import GroupSettings, Settings, get_settings

__all__ = ["GroupSettings", "Settings", "get_settings"]
