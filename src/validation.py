"""Ticket-level validation run once per ingested ticket.

Validation failures are user errors: the ticket's job runs are marked failed,
one combined comment explains what to fix, and nothing is retried until a
human corrects the ticket and re-applies the trigger label.
"""

from dataclasses import dataclass, field

from src.interfaces import CredentialStore, RepositoryRegistry
from src.labels import Labels
from src.logger import get_logger
from src.ticket_parser import ParsedTicket

logger = get_logger(__name__)

MISSING_TARGET_MESSAGE = (
    "Missing repository label. Please add a label in the format: "
    f"{Labels.TARGET_PREFIX}<org>/<repo_name>"
)
MISSING_ASSIGNEE_MESSAGE = "No assignee set. Please assign this ticket to a user."


def unconfigured_repository_message(repository: str) -> str:
    return (
        f"Repository {repository} is not configured. Add it to the repository registry "
        f"or specify a ref: {Labels.TARGET_PREFIX}{repository}@<ref>"
    )


def missing_credentials_message(assignee_email: str) -> str:
    return (
        f"Assignee ({assignee_email}) does not have credentials configured. "
        "Please register your API key before using autopr."
    )


@dataclass
class ValidationResult:
    """Result of validating a ticket.

    Attributes:
        errors: User-facing problems, empty when the ticket is valid
    """

    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_message(self) -> str:
        """Combined message stored on failed job runs."""
        return "Validation failed: " + "; ".join(self.errors)


def validate_ticket(
    ticket: ParsedTicket,
    credential_store: CredentialStore,
    repository_registry: RepositoryRegistry,
) -> ValidationResult:
    """Validate a parsed ticket before any agent is launched.

    Checks, in order:
    1. At least one target label is present
    2. Every target is pre-configured or carries an inline ref
    3. The ticket has an assignee
    4. The assignee has execution credentials

    Args:
        ticket: Parsed ticket
        credential_store: Lookup for assignee credentials
        repository_registry: Lookup for pre-configured repositories

    Returns:
        ValidationResult listing every problem found
    """
    errors: list[str] = []

    if not ticket.targets:
        errors.append(MISSING_TARGET_MESSAGE)
    for target in ticket.targets:
        if target.ref is None and not repository_registry.is_configured(target.repository):
            errors.append(unconfigured_repository_message(target.repository))

    if not ticket.assignee_email:
        errors.append(MISSING_ASSIGNEE_MESSAGE)
    elif not credential_store.credentials_exist(ticket.assignee_email):
        errors.append(missing_credentials_message(ticket.assignee_email))

    if errors:
        logger.info(f"Ticket {ticket.key} failed validation with {len(errors)} error(s)")
    return ValidationResult(errors=errors)
