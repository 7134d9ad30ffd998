"""User credential store for autopr.

Maps assignee emails to files holding their agent API keys, configured in
.autopr/credentials.yaml:

    users:
      - email: dev@example.com
        api_key_path: /etc/autopr/keys/dev.key

Secrets never live in the YAML file itself, only the paths to them.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from src.logger import register_secret

logger = logging.getLogger(__name__)

CREDENTIALS_CONFIG_PATH = ".autopr/credentials.yaml"


class UserCredentialsError(Exception):
    """Base exception for user credential errors."""

    pass


class UserCredentialsLoadError(UserCredentialsError):
    """Error loading the user credentials configuration file."""

    pass


@dataclass
class UserCredentialEntry:
    """A single user credential mapping.

    Attributes:
        email: Assignee email, lower-cased.
        api_key_path: Absolute path to the file holding the API key.
    """

    email: str
    api_key_path: str


class UserCredentialsManager:
    """YAML-backed implementation of the CredentialStore protocol.

    Attributes:
        config_path: Path to the credentials YAML configuration file.
    """

    def __init__(self, config_path: str | None = None):
        """Initialize the user credentials manager.

        Args:
            config_path: Optional path to the credentials file.
                Defaults to .autopr/credentials.yaml if not specified.
        """
        self.config_path = config_path or CREDENTIALS_CONFIG_PATH
        self._cached_entries: dict[str, UserCredentialEntry] | None = None

    def load_config(self) -> dict[str, UserCredentialEntry]:
        """Load user credential mappings from the config file.

        Returns:
            Mapping of lower-cased email to its entry. Empty if the file
            does not exist.

        Raises:
            UserCredentialsLoadError: If the file exists but cannot be parsed
                or contains invalid entries.
        """
        if self._cached_entries is not None:
            return self._cached_entries

        config_path = Path(self.config_path)
        if not config_path.exists():
            logger.debug(f"Credentials config file not found at {self.config_path}")
            self._cached_entries = {}
            return self._cached_entries

        try:
            with open(config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise UserCredentialsLoadError(
                f"Invalid YAML in credentials config file {self.config_path}: {e}"
            ) from e
        except OSError as e:
            raise UserCredentialsLoadError(
                f"Failed to read credentials config file {self.config_path}: {e}"
            ) from e

        if raw_config is None:
            self._cached_entries = {}
            return self._cached_entries

        if not isinstance(raw_config, dict):
            raise UserCredentialsLoadError(
                f"Credentials config must be a YAML mapping, got {type(raw_config).__name__}"
            )

        users = raw_config.get("users") or []
        if not isinstance(users, list):
            raise UserCredentialsLoadError(f"'users' must be a list, got {type(users).__name__}")

        entries: dict[str, UserCredentialEntry] = {}
        for i, user in enumerate(users):
            if not isinstance(user, dict):
                raise UserCredentialsLoadError(
                    f"User entry {i} must be a mapping, got {type(user).__name__}"
                )
            for field in ("email", "api_key_path"):
                if not user.get(field):
                    raise UserCredentialsLoadError(
                        f"User entry {i} is missing required field '{field}'"
                    )

            api_key_path = str(user["api_key_path"])
            if not Path(api_key_path).is_absolute():
                raise UserCredentialsLoadError(
                    f"User entry {i} api_key_path must be absolute, got '{api_key_path}'"
                )

            email = str(user["email"]).strip().lower()
            entries[email] = UserCredentialEntry(email=email, api_key_path=api_key_path)

        self._cached_entries = entries
        logger.info(f"Loaded credentials config with {len(entries)} user mapping(s)")
        return self._cached_entries

    def _read_key(self, email: str) -> str | None:
        entry = self.load_config().get(email.strip().lower())
        if entry is None:
            return None

        key_path = Path(entry.api_key_path)
        if not key_path.is_file():
            logger.warning(f"API key file not found at {entry.api_key_path} for {entry.email}")
            return None
        try:
            key = key_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning(f"Failed to read API key file for {entry.email}: {e}")
            return None
        if not key:
            return None
        register_secret(key)
        return key

    def credentials_exist(self, user_email: str) -> bool:
        return self._read_key(user_email) is not None

    def get_api_key(self, user_email: str) -> str | None:
        """Return the API key registered for an email, or None."""
        return self._read_key(user_email)

    def clear_cache(self) -> None:
        """Clear the cached configuration."""
        self._cached_entries = None
        logger.debug("User credentials config cache cleared")
