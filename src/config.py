"""Configuration module for autopr.

This module provides configuration management for the application,
loading settings from .autopr/config file (KEY=value format) with
fallback to environment variables.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Default paths relative to .autopr directory
AUTOPR_DIR = ".autopr"
CONFIG_FILE = "config"

DEFAULT_AGENT_API_URL = "https://api.cursor.com"
DEFAULT_TRIGGER_LABEL = "autopr"
DEFAULT_AGENT_TTL_MINUTES = 120

REQUIRED_KEYS = ("JIRA_BASE_URL", "JIRA_API_TOKEN", "JIRA_PROJECTS")


@dataclass
class Config:
    """Application configuration.

    Attributes:
        jira_base_url: Base URL of the Jira Server/Data Center instance
        jira_api_token: Personal access token used as a bearer token
        jira_projects: Jira project keys searched for the trigger label
        trigger_label: Label that marks a ticket for ingestion
        comment_visibility_role: Project role comments are restricted to ("" = public)
        agent_api_url: Base URL of the cloud agent API
        agent_ttl_minutes: Maximum minutes a job run may stay running before timing out
        auto_create_pr: Whether launched agents open a pull request on completion
        http_timeout: Timeout in seconds for outbound HTTP requests
        database_path: Path to the SQLite database file
        repositories_path: Path to the repository registry YAML file
        credentials_path: Path to the user credentials YAML file
    """

    jira_base_url: str = ""
    jira_api_token: str = ""
    jira_projects: list[str] = field(default_factory=list)
    trigger_label: str = DEFAULT_TRIGGER_LABEL
    comment_visibility_role: str = ""
    agent_api_url: str = DEFAULT_AGENT_API_URL
    agent_ttl_minutes: int = DEFAULT_AGENT_TTL_MINUTES
    auto_create_pr: bool = True
    http_timeout: int = 30
    database_path: str = ".autopr/autopr.db"
    repositories_path: str = ".autopr/repositories.yaml"
    credentials_path: str = ".autopr/credentials.yaml"
    log_file: str = ".autopr/logs/autopr.log"
    log_size: int = 10 * 1024 * 1024  # 10MB default
    log_backups: int = 5
    otel_endpoint: str = ""
    otel_service_name: str = "autopr"

    def validate(self) -> None:
        """Check that the configuration is usable for a scheduled run.

        Raises:
            ValueError: Listing every problem found
        """
        problems: list[str] = []

        for name, url in (
            ("JIRA_BASE_URL", self.jira_base_url),
            ("AGENT_API_URL", self.agent_api_url),
        ):
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                problems.append(f"{name} must be an http(s) URL, got '{url}'")

        if not self.jira_api_token:
            problems.append("JIRA_API_TOKEN is empty")
        if not self.jira_projects:
            problems.append("JIRA_PROJECTS must list at least one project key")
        if not self.trigger_label:
            problems.append("TRIGGER_LABEL is empty")
        if self.agent_ttl_minutes <= 0:
            problems.append(
                f"AGENT_TTL_MINUTES must be positive, got {self.agent_ttl_minutes}"
            )
        if self.http_timeout <= 0:
            problems.append(f"HTTP_TIMEOUT must be positive, got {self.http_timeout}")

        if problems:
            raise ValueError("Invalid configuration: " + "; ".join(problems))


def parse_config_file(config_path: Path) -> dict[str, str]:
    """Parse a KEY=value config file.

    Args:
        config_path: Path to the config file

    Returns:
        Dictionary of key-value pairs
    """
    config = {}
    with open(config_path) as f:
        for line in f:
            line = line.strip()
            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                # Remove surrounding quotes if present
                if (value.startswith('"') and value.endswith('"')) or (
                    value.startswith("'") and value.endswith("'")
                ):
                    value = value[1:-1]
                config[key] = value
    return config


def _parse_int(data: Mapping[str, str], key: str, default: int) -> int:
    raw = data.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got '{raw}'") from e


def _parse_bool(data: Mapping[str, str], key: str, default: bool) -> bool:
    raw = data.get(key, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{key} must be a boolean (true/false), got '{raw}'")


def _build_config(data: Mapping[str, str], source: str) -> Config:
    """Build a Config from a key/value mapping.

    Args:
        data: Raw key/value pairs (config file contents or os.environ)
        source: Human-readable source name used in error messages

    Returns:
        Config instance

    Raises:
        ValueError: If required keys are missing or values are malformed
    """
    # Collect all missing required vars before raising
    missing_vars = [key for key in REQUIRED_KEYS if not data.get(key, "").strip()]

    jira_projects = [
        p.strip() for p in data.get("JIRA_PROJECTS", "").split(",") if p.strip()
    ]
    if "JIRA_PROJECTS" not in missing_vars and not jira_projects:
        missing_vars.append("JIRA_PROJECTS")  # Present but empty after parsing

    if missing_vars:
        raise ValueError(f"Missing required configuration in {source}: {', '.join(missing_vars)}")

    log_level = data.get("LOG_LEVEL")
    if log_level:
        os.environ["LOG_LEVEL"] = log_level  # Read by the logger module

    return Config(
        jira_base_url=data["JIRA_BASE_URL"].strip().rstrip("/"),
        jira_api_token=data["JIRA_API_TOKEN"].strip(),
        jira_projects=jira_projects,
        trigger_label=data.get("TRIGGER_LABEL", "").strip() or DEFAULT_TRIGGER_LABEL,
        comment_visibility_role=data.get("COMMENT_VISIBILITY_ROLE", "").strip(),
        agent_api_url=(data.get("AGENT_API_URL", "").strip() or DEFAULT_AGENT_API_URL).rstrip(
            "/"
        ),
        agent_ttl_minutes=_parse_int(data, "AGENT_TTL_MINUTES", DEFAULT_AGENT_TTL_MINUTES),
        auto_create_pr=_parse_bool(data, "AUTO_CREATE_PR", True),
        http_timeout=_parse_int(data, "HTTP_TIMEOUT", 30),
        database_path=data.get("DATABASE_PATH", "").strip() or ".autopr/autopr.db",
        repositories_path=data.get("REPOSITORIES_PATH", "").strip()
        or ".autopr/repositories.yaml",
        credentials_path=data.get("CREDENTIALS_PATH", "").strip()
        or ".autopr/credentials.yaml",
        log_file=data.get("LOG_FILE", "").strip() or ".autopr/logs/autopr.log",
        log_size=_parse_int(data, "LOG_SIZE", 10 * 1024 * 1024),
        log_backups=_parse_int(data, "LOG_BACKUPS", 5),
        otel_endpoint=data.get("OTEL_EXPORTER_OTLP_ENDPOINT", "").strip(),
        otel_service_name=data.get("OTEL_SERVICE_NAME", "").strip() or "autopr",
    )


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from a KEY=value config file.

    Args:
        config_path: Path to the config file

    Returns:
        Config: A Config instance populated from the config file

    Raises:
        ValueError: If required fields are missing or invalid
        FileNotFoundError: If the config file doesn't exist
    """
    data = parse_config_file(config_path)
    return _build_config(data, ".autopr/config")


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Returns:
        Config: A Config instance populated from environment variables

    Raises:
        ValueError: If required environment variables are missing
    """
    return _build_config(os.environ, "environment variables")


def load_config() -> Config:
    """Load configuration from config file or environment variables.

    Priority:
    1. Config file at .autopr/config
    2. Environment variables

    Returns:
        Config: A Config instance

    Raises:
        ValueError: If required configuration is missing
    """
    config_path = Path.cwd() / AUTOPR_DIR / CONFIG_FILE

    if config_path.exists():
        logger.debug(f"Loading configuration from {config_path}")
        return load_config_from_file(config_path)
    return load_config_from_env()
