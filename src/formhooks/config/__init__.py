"""
Module: config
Description: Package initialization for application configuration.

Exposes the pydantic-settings Settings class and the global
settings instance used by the composition root.
"""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
