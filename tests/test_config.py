import pytest

from pricescout.config import (
    DeploymentEnvironment, ExplorationTier, ProductionConfig, get_config,
)


class TestProductionConfig:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        config = ProductionConfig()

        assert config.scraper.exploration_tier is ExplorationTier.STANDARD
        assert config.scraper.batch_concurrency == 3
        assert config.scraper.service_paths[0] == ""
        assert config.navigation.wait_strategies[0] == ("domcontentloaded", 15000)
        assert config.cache.geocoding_ttl_seconds == 7 * 24 * 3600
        assert config.rate_limit.tier_limits == {"free": 100, "pro": 1000, "enterprise": 10000}
        assert config.get_redis_url() == "redis://localhost:6379/0"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("EXPLORATION_TIER", "thorough")
        monkeypatch.setenv("SCRAPE_CONCURRENCY", "5")
        monkeypatch.setenv("RATE_LIMIT_PRO", "250")
        monkeypatch.setenv("CACHE_ENABLED", "false")
        monkeypatch.setenv("REDIS_URL", "redis://cache.internal:6380/2")

        config = ProductionConfig()

        assert config.scraper.exploration_tier is ExplorationTier.THOROUGH
        assert config.scraper.batch_concurrency == 5
        assert config.rate_limit.tier_limits["pro"] == 250
        assert config.cache.enabled is False
        assert config.get_redis_url() == "redis://cache.internal:6380/2"

    def test_invalid_values_are_rejected(self, monkeypatch):
        monkeypatch.setenv("EXPLORATION_TIER", "exhaustive")
        with pytest.raises(ValueError):
            ProductionConfig()

        monkeypatch.delenv("EXPLORATION_TIER")
        monkeypatch.setenv("STEALTH_LEVEL", "invisible")
        with pytest.raises(ValueError):
            ProductionConfig()

    def test_development_relaxes_limits(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("RATE_LIMITING_ENABLED", raising=False)
        config = ProductionConfig(DeploymentEnvironment.DEVELOPMENT)
        assert config.system.log_level == "DEBUG"
        assert config.rate_limit.enabled is False

    def test_summary_hides_api_key(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "secret-key")
        summary = ProductionConfig().get_configuration_summary()
        assert summary["places"] == {"api_key_configured": True}
        assert "secret-key" not in str(summary)

    def test_global_instance(self, monkeypatch):
        monkeypatch.setenv("DEPLOYMENT_ENVIRONMENT", "staging")
        config = get_config()
        assert config is get_config()
        assert config.environment is DeploymentEnvironment.STAGING
