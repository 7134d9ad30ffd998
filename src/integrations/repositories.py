"""Repository registry for autopr.

Loads the repositories autopr may target without an explicit ref from
.autopr/repositories.yaml:

    repositories:
      my-org/api-service:
        default_branch: main
      my-org/web:
        default_branch: develop

A target label naming a repository listed here may omit '@<ref>'; the
repository's default branch is used instead.
"""

import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

REPOSITORIES_CONFIG_PATH = ".autopr/repositories.yaml"
DEFAULT_BRANCH = "main"


class RepositoryRegistryError(Exception):
    """Base exception for repository registry errors."""

    pass


class RepositoryRegistryLoadError(RepositoryRegistryError):
    """Error loading the repository registry file."""

    pass


class RepositoryRegistryManager:
    """YAML-backed implementation of the RepositoryRegistry protocol.

    The file is read lazily on first lookup and cached. A missing or empty
    file means no repository is configured.

    Attributes:
        config_path: Path to the registry YAML file.
    """

    def __init__(self, config_path: str | None = None):
        self.config_path = config_path or REPOSITORIES_CONFIG_PATH
        self._cached: dict[str, str] | None = None

    def load_config(self) -> dict[str, str]:
        """Load the repository to default-branch mapping.

        Returns:
            Mapping of 'org/repo' (lower-cased) to default branch.

        Raises:
            RepositoryRegistryLoadError: If the file exists but cannot be
                parsed or has an invalid structure.
        """
        if self._cached is not None:
            return self._cached

        config_path = Path(self.config_path)
        if not config_path.exists():
            logger.debug(f"Repository registry not found at {self.config_path}")
            self._cached = {}
            return self._cached

        try:
            with open(config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RepositoryRegistryLoadError(
                f"Invalid YAML in repository registry {self.config_path}: {e}"
            ) from e
        except OSError as e:
            raise RepositoryRegistryLoadError(
                f"Failed to read repository registry {self.config_path}: {e}"
            ) from e

        if raw_config is None:
            self._cached = {}
            return self._cached

        if not isinstance(raw_config, dict):
            raise RepositoryRegistryLoadError(
                f"Repository registry must be a YAML mapping, got {type(raw_config).__name__}"
            )

        repositories = raw_config.get("repositories") or {}
        if not isinstance(repositories, dict):
            raise RepositoryRegistryLoadError(
                f"'repositories' must be a mapping, got {type(repositories).__name__}"
            )

        entries: dict[str, str] = {}
        for name, settings in repositories.items():
            repository = str(name).strip()
            if repository.count("/") != 1:
                raise RepositoryRegistryLoadError(
                    f"Repository '{repository}' must be in 'org/repo' format"
                )
            if settings is None:
                settings = {}
            if not isinstance(settings, dict):
                raise RepositoryRegistryLoadError(
                    f"Settings for '{repository}' must be a mapping, "
                    f"got {type(settings).__name__}"
                )
            branch = str(settings.get("default_branch") or DEFAULT_BRANCH).strip()
            entries[repository.lower()] = branch

        self._cached = entries
        logger.info(f"Loaded repository registry with {len(entries)} repository(ies)")
        return self._cached

    def is_configured(self, repository: str) -> bool:
        return repository.strip().lower() in self.load_config()

    def get_default_branch(self, repository: str) -> str | None:
        """Get the default branch of a configured repository, None if not configured."""
        return self.load_config().get(repository.strip().lower())

    def clear_cache(self) -> None:
        """Force the next lookup to re-read the file."""
        self._cached = None
        logger.debug("Repository registry cache cleared")
