#!/usr/bin/env python3
"""Modular configuration system for the back-of-house engine

Configuration hierarchy:
- engine_config: Pricing rules (tax, volume discount) and engine policies (TTLs, windows, tables)
- catalog_config: Menu/catalog collaborator endpoint
- logging_config: Logging configuration
"""
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .catalog_config import CatalogConfig
from .engine_config import EngineConfig, PricingConfig
from .logging_config import LoggingConfig, configure_logging

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": ".env",
    "dev": ".env",
    "testing": ".env.test",
    "test": ".env.test",
    "production": ".env.production",
}
env_file = env_files.get(env, ".env")
load_dotenv(env_file, override=False)


@dataclass
class Settings:
    """Aggregate of all configuration sections"""
    engine: EngineConfig = field(default_factory=EngineConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            engine=EngineConfig.from_env(),
            catalog=CatalogConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )


# Create global settings instance
settings = Settings.from_env()

def get_settings() -> Settings:
    """Get global settings instance"""
    return settings

def reload_settings() -> Settings:
    """Reload settings from environment"""
    global settings
    settings = Settings.from_env()
    return settings

__all__ = [
    'Settings',
    'get_settings',
    'reload_settings',
    'settings',
    'EngineConfig',
    'PricingConfig',
    'CatalogConfig',
    'LoggingConfig',
    'configure_logging',
]
