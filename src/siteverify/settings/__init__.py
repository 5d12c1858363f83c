"""Layered TOML + environment configuration."""

from siteverify.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
