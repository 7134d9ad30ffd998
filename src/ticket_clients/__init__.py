"""Issue tracker client implementations.

Use get_ticket_client() to build the client for the configured tracker.
"""

from src.config import Config
from src.ticket_clients.base import JiraClientError, NetworkError, retry_with_backoff
from src.ticket_clients.jira import JiraTicketClient, build_trigger_query


def get_ticket_client(config: Config) -> JiraTicketClient:
    """Factory function to build the tracker client from configuration.

    Args:
        config: Application configuration

    Returns:
        Configured JiraTicketClient
    """
    return JiraTicketClient(
        base_url=config.jira_base_url,
        token=config.jira_api_token,
        visibility_role=config.comment_visibility_role,
        timeout=config.http_timeout,
    )


__all__ = [
    "JiraClientError",
    "JiraTicketClient",
    "NetworkError",
    "build_trigger_query",
    "get_ticket_client",
    "retry_with_backoff",
]
