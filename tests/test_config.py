"""Unit tests for the config module."""

import pytest

from src.config import (
    DEFAULT_AGENT_API_URL,
    DEFAULT_AGENT_TTL_MINUTES,
    Config,
    load_config,
    load_config_from_env,
    load_config_from_file,
    parse_config_file,
)

REQUIRED_ENV = {
    "JIRA_BASE_URL": "https://jira.example.com/",
    "JIRA_API_TOKEN": "env_token",
    "JIRA_PROJECTS": "ABC, XYZ",
}

OPTIONAL_KEYS = (
    "TRIGGER_LABEL",
    "COMMENT_VISIBILITY_ROLE",
    "AGENT_API_URL",
    "AGENT_TTL_MINUTES",
    "AUTO_CREATE_PR",
    "HTTP_TIMEOUT",
    "DATABASE_PATH",
    "REPOSITORIES_PATH",
    "CREDENTIALS_PATH",
    "LOG_FILE",
    "LOG_SIZE",
    "LOG_BACKUPS",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_SERVICE_NAME",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every autopr variable from the environment."""
    for key in (*REQUIRED_ENV, *OPTIONAL_KEYS, "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestConfig:
    """Tests for Config dataclass."""

    def test_defaults(self):
        config = Config()

        assert config.trigger_label == "autopr"
        assert config.agent_api_url == DEFAULT_AGENT_API_URL
        assert config.agent_ttl_minutes == DEFAULT_AGENT_TTL_MINUTES
        assert config.auto_create_pr is True
        assert config.database_path == ".autopr/autopr.db"
        assert config.repositories_path == ".autopr/repositories.yaml"
        assert config.credentials_path == ".autopr/credentials.yaml"
        assert config.comment_visibility_role == ""

    def test_projects_list_is_independent(self):
        config1 = Config()
        config2 = Config()

        config1.jira_projects.append("ABC")

        assert config2.jira_projects == []


@pytest.mark.unit
class TestValidate:
    """Tests for Config.validate()."""

    def test_valid_config(self, config):
        config.validate()

    def test_reports_every_problem(self):
        config = Config(
            jira_base_url="jira.example.com",
            jira_api_token="",
            jira_projects=[],
            agent_ttl_minutes=0,
        )

        with pytest.raises(ValueError) as exc_info:
            config.validate()

        message = str(exc_info.value)
        assert "JIRA_BASE_URL must be an http(s) URL" in message
        assert "JIRA_API_TOKEN is empty" in message
        assert "JIRA_PROJECTS" in message
        assert "AGENT_TTL_MINUTES must be positive" in message

    def test_rejects_bad_agent_url(self, config):
        config.agent_api_url = "ftp://agents.example.com"

        with pytest.raises(ValueError, match="AGENT_API_URL"):
            config.validate()

    def test_rejects_empty_trigger_label(self, config):
        config.trigger_label = ""

        with pytest.raises(ValueError, match="TRIGGER_LABEL"):
            config.validate()


@pytest.mark.unit
class TestLoadConfigFromEnv:
    """Tests for load_config_from_env function."""

    def test_required_only(self, clean_env):
        for key, value in REQUIRED_ENV.items():
            clean_env.setenv(key, value)

        config = load_config_from_env()

        assert config.jira_base_url == "https://jira.example.com"
        assert config.jira_api_token == "env_token"
        assert config.jira_projects == ["ABC", "XYZ"]
        assert config.trigger_label == "autopr"
        assert config.agent_ttl_minutes == DEFAULT_AGENT_TTL_MINUTES

    def test_all_optional_values(self, clean_env):
        for key, value in REQUIRED_ENV.items():
            clean_env.setenv(key, value)
        clean_env.setenv("TRIGGER_LABEL", "ai-agent")
        clean_env.setenv("COMMENT_VISIBILITY_ROLE", "Developers")
        clean_env.setenv("AGENT_API_URL", "https://agents.example.com/")
        clean_env.setenv("AGENT_TTL_MINUTES", "45")
        clean_env.setenv("AUTO_CREATE_PR", "false")
        clean_env.setenv("HTTP_TIMEOUT", "10")
        clean_env.setenv("DATABASE_PATH", "/var/lib/autopr/runs.db")
        clean_env.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318")

        config = load_config_from_env()

        assert config.trigger_label == "ai-agent"
        assert config.comment_visibility_role == "Developers"
        assert config.agent_api_url == "https://agents.example.com"
        assert config.agent_ttl_minutes == 45
        assert config.auto_create_pr is False
        assert config.http_timeout == 10
        assert config.database_path == "/var/lib/autopr/runs.db"
        assert config.otel_endpoint == "http://localhost:4318"

    def test_missing_required_vars_listed_together(self, clean_env):
        clean_env.setenv("JIRA_BASE_URL", "https://jira.example.com")

        with pytest.raises(ValueError) as exc_info:
            load_config_from_env()

        assert "JIRA_API_TOKEN" in str(exc_info.value)
        assert "JIRA_PROJECTS" in str(exc_info.value)
        assert "environment variables" in str(exc_info.value)

    def test_projects_empty_after_parsing(self, clean_env):
        for key, value in REQUIRED_ENV.items():
            clean_env.setenv(key, value)
        clean_env.setenv("JIRA_PROJECTS", " , ,")

        with pytest.raises(ValueError, match="JIRA_PROJECTS"):
            load_config_from_env()

    def test_invalid_integer(self, clean_env):
        for key, value in REQUIRED_ENV.items():
            clean_env.setenv(key, value)
        clean_env.setenv("AGENT_TTL_MINUTES", "two hours")

        with pytest.raises(ValueError, match="AGENT_TTL_MINUTES must be an integer"):
            load_config_from_env()

    def test_invalid_boolean(self, clean_env):
        for key, value in REQUIRED_ENV.items():
            clean_env.setenv(key, value)
        clean_env.setenv("AUTO_CREATE_PR", "maybe")

        with pytest.raises(ValueError, match="AUTO_CREATE_PR must be a boolean"):
            load_config_from_env()

    @pytest.mark.parametrize("raw", ["1", "yes", "TRUE", "on"])
    def test_boolean_true_spellings(self, clean_env, raw):
        for key, value in REQUIRED_ENV.items():
            clean_env.setenv(key, value)
        clean_env.setenv("AUTO_CREATE_PR", raw)

        assert load_config_from_env().auto_create_pr is True


@pytest.mark.unit
class TestParseConfigFile:
    """Tests for parse_config_file function."""

    def test_parses_keys_comments_and_quotes(self, tmp_path):
        config_file = tmp_path / "config"
        config_file.write_text(
            "# autopr configuration\n"
            "\n"
            "JIRA_BASE_URL = https://jira.example.com\n"
            'JIRA_API_TOKEN="quoted-token"\n'
            "TRIGGER_LABEL='single'\n"
            "QUERY=a=b\n"
            "not a setting\n"
        )

        data = parse_config_file(config_file)

        assert data == {
            "JIRA_BASE_URL": "https://jira.example.com",
            "JIRA_API_TOKEN": "quoted-token",
            "TRIGGER_LABEL": "single",
            "QUERY": "a=b",
        }

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_config_file(tmp_path / "missing")


@pytest.mark.unit
class TestLoadConfigFromFile:
    """Tests for load_config_from_file and load_config."""

    def write_config(self, directory, extra=""):
        autopr_dir = directory / ".autopr"
        autopr_dir.mkdir()
        config_file = autopr_dir / "config"
        config_file.write_text(
            "JIRA_BASE_URL=https://file.example.com\n"
            "JIRA_API_TOKEN=file_token\n"
            "JIRA_PROJECTS=FILE\n" + extra
        )
        return config_file

    def test_load_from_file(self, tmp_path, clean_env):
        config_file = self.write_config(tmp_path, "AGENT_TTL_MINUTES=30\n")

        config = load_config_from_file(config_file)

        assert config.jira_base_url == "https://file.example.com"
        assert config.jira_projects == ["FILE"]
        assert config.agent_ttl_minutes == 30

    def test_file_errors_name_the_file(self, tmp_path, clean_env):
        config_file = tmp_path / "config"
        config_file.write_text("JIRA_BASE_URL=https://file.example.com\n")

        with pytest.raises(ValueError, match=r"\.autopr/config"):
            load_config_from_file(config_file)

    def test_file_log_level_exported(self, tmp_path, clean_env):
        import os

        config_file = self.write_config(tmp_path, "LOG_LEVEL=DEBUG\n")

        load_config_from_file(config_file)

        assert os.environ["LOG_LEVEL"] == "DEBUG"

    def test_load_config_prefers_file(self, tmp_path, clean_env):
        self.write_config(tmp_path)
        for key, value in REQUIRED_ENV.items():
            clean_env.setenv(key, value)
        clean_env.chdir(tmp_path)

        assert load_config().jira_api_token == "file_token"

    def test_load_config_falls_back_to_env(self, tmp_path, clean_env):
        for key, value in REQUIRED_ENV.items():
            clean_env.setenv(key, value)
        clean_env.chdir(tmp_path)

        assert load_config().jira_api_token == "env_token"
