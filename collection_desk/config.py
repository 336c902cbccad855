"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class CollectionDeskConfig(BaseSettings):
    """Collection desk configuration"""

    # Storage configuration
    database_url: str = "sqlite:///collections.db"  # "memory" for an in-process store

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091

    # Secondary secrets (distinct from login credentials)
    verification_secret: str = "6789"
    admin_secret: str = "1234"

    # Money configuration
    currency: str = "LKR"
    amount_tolerance: str = "0.01"  # Decimal as string

    # Aging thresholds (days since creation)
    due_soon_days: int = 10
    overdue_days: int = 14

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Feature flags
    enable_events: bool = True

    class Config:
        env_prefix = "COLLECTIONS_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = CollectionDeskConfig()


def get_config() -> CollectionDeskConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CollectionDeskConfig:
    """Reload configuration from environment"""
    global config
    config = CollectionDeskConfig()
    return config
