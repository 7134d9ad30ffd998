"""Protocols for the configuration lookups used during ticket validation."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class CredentialStore(Protocol):
    """Answers whether a user has agent execution credentials."""

    def credentials_exist(self, user_email: str) -> bool: ...

    def get_api_key(self, user_email: str) -> str | None: ...


@runtime_checkable
class RepositoryRegistry(Protocol):
    """Answers whether a target repository is pre-configured."""

    def is_configured(self, repository: str) -> bool: ...

    def get_default_branch(self, repository: str) -> str | None: ...
