"""File-backed integrations used by the polling services.

This package contains:
- repositories: repository registry (default branches)
- user_credentials: assignee to agent API key mapping
"""

from src.integrations.repositories import (
    RepositoryRegistryError,
    RepositoryRegistryLoadError,
    RepositoryRegistryManager,
)
from src.integrations.user_credentials import (
    UserCredentialEntry,
    UserCredentialsError,
    UserCredentialsLoadError,
    UserCredentialsManager,
)

__all__ = [
    # repositories
    "RepositoryRegistryError",
    "RepositoryRegistryLoadError",
    "RepositoryRegistryManager",
    # user_credentials
    "UserCredentialEntry",
    "UserCredentialsError",
    "UserCredentialsLoadError",
    "UserCredentialsManager",
]
