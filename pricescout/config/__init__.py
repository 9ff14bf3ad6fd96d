"""Configuration management for the price extraction service."""

from .production import (
    ProductionConfig, DeploymentEnvironment, LogLevel, ExplorationTier,
    SystemConfig, RedisConfig, BrowserConfig, NavigationConfig,
    ScraperConfig, CacheConfig, RateLimitConfig, PlacesConfig,
    get_config, reset_config
)

__all__ = [
    'ProductionConfig', 'DeploymentEnvironment', 'LogLevel', 'ExplorationTier',
    'SystemConfig', 'RedisConfig', 'BrowserConfig', 'NavigationConfig',
    'ScraperConfig', 'CacheConfig', 'RateLimitConfig', 'PlacesConfig',
    'get_config', 'reset_config'
]
