"""
Configuration and environment setup.

Settings are read from environment variables (and a local .env file).
"""

from .settings import Settings, get_settings, get_database_url

__all__ = ["Settings", "get_settings", "get_database_url"]
