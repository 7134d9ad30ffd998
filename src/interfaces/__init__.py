"""Abstract interfaces for the external collaborators used by the polling services."""

from src.interfaces.agent import (
    AgentLauncher,
    AgentStatus,
    AgentStatusProvider,
    AgentStatusResult,
    LaunchRequest,
    LaunchResult,
    StatusRequest,
)
from src.interfaces.registry import CredentialStore, RepositoryRegistry
from src.interfaces.ticket import DevStatus, DevStatusPullRequest, Issue, TicketClient

__all__ = [
    "AgentLauncher",
    "AgentStatus",
    "AgentStatusProvider",
    "AgentStatusResult",
    "CredentialStore",
    "DevStatus",
    "DevStatusPullRequest",
    "Issue",
    "LaunchRequest",
    "LaunchResult",
    "RepositoryRegistry",
    "StatusRequest",
    "TicketClient",
]
