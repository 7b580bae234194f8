"""
Configuration module - Base settings class for environment configuration.
"""

from common.config.base_settings import BaseAppSettings, ConfigurationError

__all__ = ["BaseAppSettings", "ConfigurationError"]
