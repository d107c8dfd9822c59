"""Configuration module - public API.

Centralized configuration management for Courier using Pydantic BaseSettings
with domain-based organization.

Exports:
    settings: Singleton Settings instance (main configuration object)
    Settings: Main settings class (for testing/overrides)
"""

from courier.configuration.settings import Settings, settings

__all__ = ["Settings", "settings"]
