"""Turn raw tracker issues into the fields ingestion works with."""

from dataclasses import dataclass, field

from src.interfaces import Issue
from src.labels import Target, parse_targets


@dataclass
class ParsedTicket:
    """Normalized view of a ticket picked up for ingestion.

    Attributes:
        key: Tracker key
        summary: Ticket title
        description: Ticket body, None when blank
        assignee_email: Assignee email, None when unassigned
        targets: Targets parsed from target labels
    """

    key: str
    summary: str
    description: str | None
    assignee_email: str | None
    targets: list[Target] = field(default_factory=list)


def parse_ticket(issue: Issue) -> ParsedTicket:
    """Parse a tracker issue into a ParsedTicket.

    Args:
        issue: Issue as returned by the ticket client

    Returns:
        ParsedTicket with blank strings normalized to None
    """
    description = issue.description.strip() if issue.description else ""
    assignee = issue.assignee_email.strip() if issue.assignee_email else ""
    return ParsedTicket(
        key=issue.key,
        summary=(issue.summary or "").strip(),
        description=description or None,
        assignee_email=assignee or None,
        targets=parse_targets(issue.labels),
    )
