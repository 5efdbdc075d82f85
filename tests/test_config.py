"""
Tests for config.py - Environment-driven configuration.
"""
import pytest

from config import Config, Environment, _redact, get_config, reset_config
from core.errors import ConfigurationError


ENV_NAMES = (
    "PORT", "HOST", "ENVIRONMENT", "MANDATORY_SUBSYSTEMS", "CONNECT_TIMEOUT",
    "PROBE_TIMEOUT", "HEALTH_ERROR_STATUS_CODE", "LOG_LEVEL", "CORS_ORIGINS",
    "DATABASE_URL", "DB_POOL_SIZE", "REDIS_URL", "MESSAGING_URL", "SMTP_HOST", "SMTP_PORT", "SMTP_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class TestDefaults:

    def test_port_defaults_to_3000(self):
        assert Config().server.port == 3000

    def test_database_is_the_only_mandatory_subsystem(self):
        config = Config()

        assert config.is_mandatory("database")
        assert not config.is_mandatory("cache")
        assert not config.is_mandatory("realtime")

    def test_health_reports_failures_with_200(self):
        assert Config().health.error_status_code == 200

    def test_exporters_off(self):
        config = Config()

        assert not config.observability.tracing_enabled
        assert not config.observability.metrics_enabled

    def test_defaults_validate(self):
        assert Config().validate() == []


class TestEnvironmentOverrides:

    def test_port(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")

        assert Config().server.port == 8080

    def test_empty_port_uses_default(self, monkeypatch):
        monkeypatch.setenv("PORT", "")

        assert Config().server.port == 3000

    def test_bad_port(self, monkeypatch):
        monkeypatch.setenv("PORT", "eighty")

        with pytest.raises(ConfigurationError) as exc_info:
            Config()

        assert exc_info.value.setting == "PORT"

    def test_mandatory_list(self, monkeypatch):
        monkeypatch.setenv("MANDATORY_SUBSYSTEMS", "database, cache ,")

        assert Config().subsystems.mandatory == ["database", "cache"]

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "Production")

        config = Config()

        assert config.env is Environment.PRODUCTION
        assert config.is_production

    def test_unknown_environment(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "moon")

        with pytest.raises(ConfigurationError):
            Config()

    def test_pool_size(self, monkeypatch):
        monkeypatch.setenv("DB_POOL_SIZE", "4")

        config = Config()

        assert config.subsystems.database_pool_size == 4
        assert not hasattr(config.subsystems, "database_pool_min")

    def test_messaging_falls_back_to_redis_url(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")

        assert Config().subsystems.messaging_url == "redis://cache:6379/0"


class TestValidate:

    @pytest.mark.parametrize("name,value,fragment", [
        ("PORT", "70000", "PORT"),
        ("CONNECT_TIMEOUT", "0", "CONNECT_TIMEOUT"),
        ("PROBE_TIMEOUT", "-1", "PROBE_TIMEOUT"),
        ("HEALTH_ERROR_STATUS_CODE", "42", "HEALTH_ERROR_STATUS_CODE"),
        ("LOG_LEVEL", "chatty", "LOG_LEVEL"),
        ("SMTP_PORT", "0", "SMTP_PORT"),
    ])
    def test_problems(self, monkeypatch, name, value, fragment):
        monkeypatch.setenv(name, value)

        problems = Config().validate()

        assert len(problems) == 1
        assert fragment in problems[0]


class TestRedaction:

    def test_password_hidden(self):
        assert _redact("postgresql+asyncpg://app:s3cret@db:5432/app") == "postgresql+asyncpg://app:***@db:5432/app"

    def test_user_only(self):
        assert _redact("redis://user@cache:6379") == "redis://user@cache:6379"

    def test_no_credentials(self):
        assert _redact("redis://localhost:6379/0") == "redis://localhost:6379/0"

    def test_to_dict_redacts(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://app:s3cret@db/app")

        data = Config().to_dict()

        assert "s3cret" not in str(data)
        assert data["server"]["port"] == 3000

    def test_smtp_password_not_exposed(self, monkeypatch):
        monkeypatch.setenv("SMTP_PASSWORD", "mail-secret")

        data = Config().to_dict()

        assert "mail-secret" not in str(data)
        assert data["subsystems"]["smtp_port"] == 587


class TestSingleton:

    def test_built_directly_from_environment(self):
        assert not hasattr(Config, "from_environment")
        assert isinstance(get_config(), Config)

    def test_cached_until_reset(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("PORT", "9000")

        assert get_config() is first
        reset_config()
        assert get_config().server.port == 9000

