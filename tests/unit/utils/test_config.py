"""Unit tests for configuration loading."""

from astro_cache.utils.config import AppConfig


class TestFromEnv:
    """Test environment-based configuration."""

    def test_defaults(self):
        config = AppConfig.from_env({})

        assert config.cache.enabled is True
        assert config.cache.max_size == 1000
        assert config.cache.default_ttl_seconds == 300.0
        assert config.rate_limit.backend == "memory"
        assert config.geocoder.api_key is None
        assert config.interpreter.timeout_seconds == 30.0
        assert config.admin_token is None

    def test_overrides(self):
        config = AppConfig.from_env(
            {
                "ASTRO_CACHE_ENABLED": "false",
                "ASTRO_CACHE_MAX_SIZE": "50",
                "ASTRO_CACHE_DEFAULT_TTL": "12.5",
                "ASTRO_RATE_LIMIT_BACKEND": "Redis",
                "ASTRO_REDIS_URL": "redis://cache:6379/2",
                "OPENCAGE_API_KEY": "geo-key",
                "OPENROUTER_API_KEY": "llm-key",
                "OPENROUTER_MODEL": "some/model",
                "APP_NAME": "Stars",
                "ASTRO_ADMIN_TOKEN": "s3cret",
            }
        )

        assert config.cache.enabled is False
        assert config.cache.max_size == 50
        assert config.cache.default_ttl_seconds == 12.5
        assert config.rate_limit.backend == "redis"
        assert config.rate_limit.redis_url == "redis://cache:6379/2"
        assert config.geocoder.api_key == "geo-key"
        assert config.interpreter.api_key == "llm-key"
        assert config.interpreter.model == "some/model"
        assert config.interpreter.app_name == "Stars"
        assert config.admin_token == "s3cret"

    def test_empty_keys_are_unset(self):
        config = AppConfig.from_env({"OPENCAGE_API_KEY": "", "ASTRO_RATE_LIMIT_ENABLED": ""})

        assert config.geocoder.api_key is None
        assert config.rate_limit.enabled is True


class TestFromDict:
    """Test dict-based configuration."""

    def test_sections(self):
        config = AppConfig.from_dict(
            {
                "cache": {"max_size": 10, "enabled": False},
                "rate_limit": {"enabled": False},
                "resilience": {"retry_max_attempts": 1},
                "admin_token": "t",
            }
        )

        assert config.cache.max_size == 10
        assert config.cache.enabled is False
        assert config.rate_limit.enabled is False
        assert config.resilience.retry_max_attempts == 1
        assert config.resilience.retry_backoff_ms == [200, 1000]
        assert config.admin_token == "t"

    def test_missing_sections_use_defaults(self):
        config = AppConfig.from_dict({})

        assert config.interpreter.model == "moonshotai/kimi-k2:free"
        assert config.geocoder.language == "en"
