"""Abstract coding-agent protocols and data types.

Launching an agent and polling its status are separate capabilities so that
services only depend on what they use: ingestion needs an AgentLauncher,
the agent status reconciler needs an AgentStatusProvider.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class AgentStatus(Enum):
    """Status reported by the external agent service."""

    CREATING = "CREATING"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    EXPIRED = "EXPIRED"

    @property
    def is_in_progress(self) -> bool:
        return self in (AgentStatus.CREATING, AgentStatus.RUNNING)


@dataclass
class LaunchRequest:
    """Everything needed to start an agent run for one ticket target.

    Attributes:
        ticket_key: Tracker key, included in the agent prompt
        summary: Ticket title
        description: Ticket body
        repository: Target repository in 'org/repo' format
        ref: Branch or ref the agent starts from
        assignee_email: Identity whose credentials run the agent
        auto_create_pr: Whether the agent opens a pull request when done
    """

    ticket_key: str
    summary: str
    description: str | None
    repository: str
    ref: str | None
    assignee_email: str
    auto_create_pr: bool = True


@dataclass
class LaunchResult:
    """Outcome of a launch attempt. error is set when success is False."""

    success: bool
    agent_id: str | None = None
    agent_url: str | None = None
    error: str | None = None


@dataclass
class StatusRequest:
    agent_id: str
    assignee_email: str


@dataclass
class AgentStatusResult:
    """Outcome of a status fetch. error is set when success is False."""

    success: bool
    status: AgentStatus | None = None
    pr_url: str | None = None
    summary: str | None = None
    error: str | None = None


@runtime_checkable
class AgentLauncher(Protocol):
    """Starts external coding-agent runs."""

    def launch(self, request: LaunchRequest) -> LaunchResult:
        """Launch an agent. Must not raise for API failures."""
        ...


@runtime_checkable
class AgentStatusProvider(Protocol):
    """Reads the status of external coding-agent runs."""

    def get_status(self, request: StatusRequest) -> AgentStatusResult:
        """Fetch the current agent status. Must not raise for API failures."""
        ...
