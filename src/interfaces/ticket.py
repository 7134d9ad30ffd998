"""Abstract issue tracker protocol and data types.

This module defines the interface the polling services use to talk to the
issue tracker (Jira today). Services depend only on this protocol so tests
can substitute in-memory fakes.
"""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass
class Issue:
    """Abstract representation of a tracker ticket.

    Attributes:
        key: Tracker key (e.g., "PROJ-123")
        summary: Ticket title
        description: Ticket body, None when empty
        assignee_email: Email of the assignee, None when unassigned
        labels: Label names on the ticket, in tracker order
    """

    key: str
    summary: str = ""
    description: str | None = None
    assignee_email: str | None = None
    labels: list[str] = field(default_factory=list)


@dataclass
class DevStatusPullRequest:
    """A pull request linked to a ticket through the tracker's development panel.

    Attributes:
        url: Pull request URL
        status: Upper-case status as reported by the tracker (OPEN, MERGED, DECLINED)
        name: Pull request title, if reported
    """

    url: str
    status: str
    name: str | None = None


@dataclass
class DevStatus:
    """Development information (linked pull requests) for a ticket."""

    pull_requests: list[DevStatusPullRequest] = field(default_factory=list)


@runtime_checkable
class TicketClient(Protocol):
    """Protocol defining the interface for issue tracker clients."""

    def search_issues(self, query: str) -> list[Issue]:
        """Return all issues matching a tracker query (JQL for Jira)."""
        ...

    def remove_label(self, ticket_key: str, label: str) -> None:
        """Remove a label from a ticket."""
        ...

    def add_comment(self, ticket_key: str, body: str) -> None:
        """Post a comment on a ticket."""
        ...

    def find_label_applier(self, ticket_key: str, label: str) -> str | None:
        """Return the email of whoever most recently applied the label, or None."""
        ...

    def get_dev_status(self, ticket_key: str) -> DevStatus | None:
        """Return linked pull requests for the ticket, or None if unavailable."""
        ...
