"""Configuration package."""

from .settings import SearchSettings, get_settings, reset_settings, configure_logging

__all__ = ["SearchSettings", "get_settings", "reset_settings", "configure_logging"]
