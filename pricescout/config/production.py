"""Production configuration management for the price extraction service.

- Environment-based configuration loading
- Browser, navigation and exploration settings
- Cache TTLs and rate-limit tiers
- Redis and places-provider connection settings
"""

from __future__ import annotations

import os
import logging
from typing import Dict, Any, Optional, List, Tuple
from dataclasses import dataclass, field
from enum import Enum


class DeploymentEnvironment(str, Enum):
    """Deployment environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels for production."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ExplorationTier(str, Enum):
    """How hard the scraper looks before it stops iterating service paths."""
    STANDARD = "standard"   # stop once 2 categories are priced
    THOROUGH = "thorough"   # stop only once all 3 categories are priced


@dataclass
class SystemConfig:
    """System configuration for paths and basic settings."""
    log_root: str = "/tmp/logs"
    service_port: int = 8004
    log_level: str = "INFO"
    log_structured: bool = False


@dataclass
class RedisConfig:
    """Redis configuration shared by the cache and the rate limiter."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    ssl: bool = False
    socket_timeout_seconds: int = 5
    socket_connect_timeout_seconds: int = 5


@dataclass
class BrowserConfig:
    """Browser automation configuration."""
    headless: bool = True
    stealth_level: str = "moderate"  # basic, moderate, aggressive
    viewport_width: int = 1920
    viewport_height: int = 1080
    accept_language: str = "en-US,en;q=0.9"
    launch_timeout_seconds: int = 60


@dataclass
class NavigationConfig:
    """Tiered wait strategies for page loads, tried in order and cycled."""
    wait_strategies: List[Tuple[str, int]] = field(default_factory=lambda: [
        ("domcontentloaded", 15000),
        ("networkidle", 20000),
        ("load", 25000),
    ])
    max_attempts: int = 3
    backoff_ms: int = 1000


@dataclass
class ScraperConfig:
    """Per-site exploration policy."""
    service_paths: List[str] = field(default_factory=lambda: [
        "",
        "/services",
        "/pricing",
        "/menu",
        "/price-list",
        "/our-services",
        "/nail-services",
        "/prices",
    ])
    attempts_per_path: int = 2
    exploration_tier: ExplorationTier = ExplorationTier.STANDARD
    max_discovered_links: int = 5
    settle_ms: int = 1500
    social_settle_ms: int = 5000
    expand_settle_ms: int = 1000
    max_expand_clicks: int = 3
    batch_concurrency: int = 3
    social_domains: List[str] = field(default_factory=lambda: [
        "facebook.com",
        "instagram.com",
    ])
    excluded_url_patterns: List[str] = field(default_factory=lambda: [
        "google.com/maps",
        "google.com/search",
        "maps.google.",
        "goo.gl/maps",
        "maps.app.goo.gl",
        "bing.com/search",
        "bing.com/maps",
        "duckduckgo.com/",
        "search.yahoo.com",
        "maps.apple.com",
    ])
    pricing_rules_path: Optional[str] = None


@dataclass
class CacheConfig:
    """TTLs (seconds) per cached data class."""
    enabled: bool = True
    geocoding_ttl_seconds: int = 60 * 60 * 24 * 7
    places_search_ttl_seconds: int = 60 * 60 * 24
    place_details_ttl_seconds: int = 60 * 60 * 12


@dataclass
class RateLimitConfig:
    """Per-identity hourly request ceilings by subscription tier."""
    enabled: bool = True
    window_seconds: int = 3600
    tier_limits: Dict[str, int] = field(default_factory=lambda: {
        "free": 100,
        "pro": 1000,
        "enterprise": 10000,
    })


@dataclass
class PlacesConfig:
    """External places/geocoding provider settings."""
    api_key: str = ""  # Set via GOOGLE_MAPS_API_KEY environment variable
    base_url: str = "https://maps.googleapis.com/maps/api"
    timeout_seconds: float = 10.0
    search_query: str = "nail salon"


class ProductionConfig:
    """Production configuration manager."""

    def __init__(self, environment: DeploymentEnvironment = DeploymentEnvironment.PRODUCTION):
        self.environment = environment
        self._load_configuration()

    def _load_configuration(self) -> None:
        """Load configuration based on environment and environment variables."""
        self.system = SystemConfig()
        self.redis = RedisConfig()
        self.browser = BrowserConfig()
        self.navigation = NavigationConfig()
        self.scraper = ScraperConfig()
        self.cache = CacheConfig()
        self.rate_limit = RateLimitConfig()
        self.places = PlacesConfig()

        if self.environment == DeploymentEnvironment.DEVELOPMENT:
            self.system.log_level = "DEBUG"
            self.rate_limit.enabled = False

        self._load_from_environment()
        self._validate_configuration()

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        # System settings
        self.system.log_root = os.getenv("LOG_ROOT", self.system.log_root)
        self.system.service_port = self._get_int_env("SERVICE_PORT", self.system.service_port)
        self.system.log_level = os.getenv("LOG_LEVEL", self.system.log_level).upper()
        self.system.log_structured = self._get_bool_env("LOG_STRUCTURED", self.system.log_structured)

        # Redis settings
        self.redis.host = os.getenv("REDIS_HOST", self.redis.host)
        self.redis.port = self._get_int_env("REDIS_PORT", self.redis.port)
        self.redis.db = self._get_int_env("REDIS_DB", self.redis.db)
        self.redis.password = os.getenv("REDIS_PASSWORD") or self.redis.password
        self.redis.ssl = self._get_bool_env("REDIS_SSL", self.redis.ssl)

        # Browser settings
        self.browser.headless = self._get_bool_env("BROWSER_HEADLESS", self.browser.headless)
        self.browser.stealth_level = os.getenv("STEALTH_LEVEL", self.browser.stealth_level).lower()
        self.browser.accept_language = os.getenv("ACCEPT_LANGUAGE", self.browser.accept_language)

        # Navigation settings
        self.navigation.max_attempts = self._get_int_env("NAVIGATION_MAX_ATTEMPTS", self.navigation.max_attempts)
        self.navigation.backoff_ms = self._get_int_env("NAVIGATION_BACKOFF_MS", self.navigation.backoff_ms)

        # Scraper settings
        tier = os.getenv("EXPLORATION_TIER")
        if tier:
            try:
                self.scraper.exploration_tier = ExplorationTier(tier.lower())
            except ValueError:
                raise ValueError(f"Invalid exploration tier: {tier}")
        self.scraper.batch_concurrency = self._get_int_env("SCRAPE_CONCURRENCY", self.scraper.batch_concurrency)
        self.scraper.max_discovered_links = self._get_int_env("MAX_DISCOVERED_LINKS", self.scraper.max_discovered_links)
        self.scraper.pricing_rules_path = os.getenv("PRICING_RULES_PATH") or self.scraper.pricing_rules_path

        # Cache settings
        self.cache.enabled = self._get_bool_env("CACHE_ENABLED", self.cache.enabled)
        self.cache.geocoding_ttl_seconds = self._get_int_env("CACHE_TTL_GEOCODING", self.cache.geocoding_ttl_seconds)
        self.cache.places_search_ttl_seconds = self._get_int_env("CACHE_TTL_PLACES", self.cache.places_search_ttl_seconds)
        self.cache.place_details_ttl_seconds = self._get_int_env("CACHE_TTL_PLACE_DETAILS", self.cache.place_details_ttl_seconds)

        # Rate limit settings
        self.rate_limit.enabled = self._get_bool_env("RATE_LIMITING_ENABLED", self.rate_limit.enabled)
        for tier_name in list(self.rate_limit.tier_limits):
            env_key = f"RATE_LIMIT_{tier_name.upper()}"
            self.rate_limit.tier_limits[tier_name] = self._get_int_env(env_key, self.rate_limit.tier_limits[tier_name])

        # Places provider
        self.places.api_key = os.getenv("GOOGLE_MAPS_API_KEY", self.places.api_key)
        self.places.search_query = os.getenv("PLACES_SEARCH_QUERY", self.places.search_query)

    def _get_bool_env(self, key: str, default: bool) -> bool:
        """Get boolean value from environment."""
        value = os.getenv(key, "").lower()
        if value in ("true", "1", "yes", "on"):
            return True
        elif value in ("false", "0", "no", "off"):
            return False
        return default

    def _get_int_env(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def _validate_configuration(self) -> None:
        """Validate configuration values."""
        if self.redis.port < 1 or self.redis.port > 65535:
            raise ValueError("Redis port must be between 1 and 65535")

        if self.browser.stealth_level not in ["basic", "moderate", "aggressive"]:
            raise ValueError("Invalid stealth level. Must be: basic, moderate, or aggressive")

        if self.navigation.max_attempts < 1:
            raise ValueError("NAVIGATION_MAX_ATTEMPTS must be at least 1")

        if not self.navigation.wait_strategies:
            raise ValueError("At least one navigation wait strategy is required")

        if self.scraper.batch_concurrency < 1:
            raise ValueError("SCRAPE_CONCURRENCY must be at least 1")

        for tier_name, limit in self.rate_limit.tier_limits.items():
            if limit < 0:
                raise ValueError(f"Rate limit for tier {tier_name} cannot be negative")

        if self.system.log_level not in LogLevel.__members__:
            raise ValueError(f"Invalid LOG_LEVEL: {self.system.log_level}")

    def get_redis_url(self) -> str:
        """Get Redis connection URL."""
        explicit = os.getenv("REDIS_URL")
        if explicit:
            return explicit
        protocol = "rediss" if self.redis.ssl else "redis"
        auth = f":{self.redis.password}@" if self.redis.password else ""
        return f"{protocol}://{auth}{self.redis.host}:{self.redis.port}/{self.redis.db}"

    def get_configuration_summary(self) -> Dict[str, Any]:
        """Get configuration summary for logging/debugging."""
        return {
            "environment": self.environment.value,
            "browser": {
                "headless": self.browser.headless,
                "stealth_level": self.browser.stealth_level,
            },
            "scraper": {
                "exploration_tier": self.scraper.exploration_tier.value,
                "batch_concurrency": self.scraper.batch_concurrency,
                "service_paths": len(self.scraper.service_paths),
                "pricing_rules_path": self.scraper.pricing_rules_path or "<bundled>",
            },
            "cache": {
                "enabled": self.cache.enabled,
                "geocoding_ttl": self.cache.geocoding_ttl_seconds,
                "places_ttl": self.cache.places_search_ttl_seconds,
                "place_details_ttl": self.cache.place_details_ttl_seconds,
            },
            "rate_limit": {
                "enabled": self.rate_limit.enabled,
                "tiers": dict(self.rate_limit.tier_limits),
            },
            "places": {
                "api_key_configured": bool(self.places.api_key),
            },
        }

    def setup_logging(self) -> logging.Logger:
        """Setup console logging for the package loggers."""
        logger = logging.getLogger("pricescout")
        logger.setLevel(getattr(logging, self.system.log_level))

        for handler in logger.handlers[:]:
            logger.removeHandler(handler)

        if self.system.log_structured:
            formatter = logging.Formatter(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
                '"logger": "%(name)s", "message": "%(message)s", '
                '"environment": "' + self.environment.value + '"}'
            )
        else:
            formatter = logging.Formatter(
                '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
            )

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        return logger


# Global configuration instance
_config_instance: Optional[ProductionConfig] = None


def get_config(environment: Optional[DeploymentEnvironment] = None) -> ProductionConfig:
    """Get or create global configuration instance."""
    global _config_instance

    if _config_instance is None or (environment and environment != _config_instance.environment):
        if environment is None:
            env_str = os.getenv("DEPLOYMENT_ENVIRONMENT", "production").lower()
            try:
                environment = DeploymentEnvironment(env_str)
            except ValueError:
                environment = DeploymentEnvironment.PRODUCTION

        _config_instance = ProductionConfig(environment)

    return _config_instance


def reset_config() -> None:
    """Reset global configuration instance (useful for testing)."""
    global _config_instance
    _config_instance = None
