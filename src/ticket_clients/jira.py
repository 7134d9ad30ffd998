"""Jira Server / Data Center client (REST API v2).

Authenticates with a personal access token sent as a bearer token. Transient
failures (connection errors, timeouts, 429 and 5xx responses) are retried
with exponential backoff; everything else is raised as JiraClientError.
"""

import contextlib
from typing import Any

import requests

from src.interfaces import DevStatus, DevStatusPullRequest, Issue
from src.logger import get_logger
from src.ticket_clients.base import (
    TRANSIENT_STATUS_CODES,
    JiraClientError,
    NetworkError,
    retry_with_backoff,
)

logger = get_logger(__name__)

SEARCH_FIELDS = ["summary", "description", "assignee", "labels"]
SEARCH_MAX_RESULTS = 100


def build_trigger_query(label: str, projects: list[str]) -> str:
    """Build the JQL that selects trigger-labeled tickets in the given projects.

    Example:
        >>> build_trigger_query("autopr", ["ABC", "XYZ"])
        'labels = "autopr" AND project IN ("ABC", "XYZ")'
    """
    project_list = ", ".join(f'"{project}"' for project in projects)
    return f'labels = "{label}" AND project IN ({project_list})'


def _error_message(response: requests.Response) -> str:
    """Extract a readable error from a Jira error response."""
    data: Any = None
    with contextlib.suppress(ValueError):
        data = response.json()

    if isinstance(data, dict):
        messages = list(data.get("errorMessages") or [])
        errors = data.get("errors") or {}
        if isinstance(errors, dict):
            messages.extend(f"{field}: {message}" for field, message in errors.items())
        if messages:
            return "; ".join(str(m) for m in messages)
        if data.get("message"):
            return str(data["message"])

    return response.text.strip() or response.reason or "Unknown error"


class JiraTicketClient:
    """Jira implementation of the TicketClient protocol."""

    def __init__(
        self,
        base_url: str,
        token: str,
        visibility_role: str = "",
        timeout: int = 30,
        max_attempts: int = 3,
    ) -> None:
        """Initialize the Jira client.

        Args:
            base_url: Jira base URL (e.g., https://jira.example.com)
            token: Personal access token
            visibility_role: Project role that may see autopr comments, empty for everyone
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per request for transient failures
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.visibility_role = visibility_role
        self.timeout = timeout
        self.max_attempts = max_attempts
        logger.debug(f"JiraTicketClient initialized for {self.base_url}")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        allowed_statuses: tuple[int, ...] = (),
    ) -> requests.Response:
        """Send a request, retrying transient failures.

        Args:
            method: HTTP method
            path: API path starting with '/'
            params: Query string parameters
            json_body: JSON request body
            allowed_statuses: Non-2xx statuses returned to the caller instead of raised

        Returns:
            The response

        Raises:
            NetworkError: If the request still fails transiently after all attempts
            JiraClientError: If Jira rejects the request
        """
        url = f"{self.base_url}{path}"
        description = f"Jira {method} {path}"

        def attempt() -> requests.Response:
            try:
                response = requests.request(
                    method,
                    url,
                    headers=self._headers(),
                    params=params,
                    json=json_body,
                    timeout=self.timeout,
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                raise NetworkError(f"{description}: {e}") from e
            except requests.RequestException as e:
                raise JiraClientError(f"{description} failed: {e}") from e

            if response.status_code in TRANSIENT_STATUS_CODES:
                raise NetworkError(f"{description} returned HTTP {response.status_code}")
            return response

        response = retry_with_backoff(
            attempt, max_attempts=self.max_attempts, description=description
        )

        if response.status_code in allowed_statuses or response.ok:
            return response

        message = _error_message(response)
        logger.error(f"{description} failed with HTTP {response.status_code}: {message}")
        raise JiraClientError(
            f"Jira API error ({response.status_code}): {message}",
            status_code=response.status_code,
        )

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise JiraClientError("Invalid JSON in Jira response", response.status_code) from e

    def search_issues(self, query: str) -> list[Issue]:
        """Run a JQL search and return matching issues.

        Only the first page (up to 100 issues) is returned; tickets beyond it
        are picked up by later polls once earlier ones lose the trigger label.
        """
        response = self._request(
            "POST",
            "/rest/api/2/search",
            json_body={
                "jql": query,
                "fields": SEARCH_FIELDS,
                "maxResults": SEARCH_MAX_RESULTS,
            },
        )
        data = self._json(response)

        issues = []
        for raw in data.get("issues", []):
            fields = raw.get("fields") or {}
            assignee = fields.get("assignee") or {}
            issues.append(
                Issue(
                    key=raw["key"],
                    summary=fields.get("summary") or "",
                    description=fields.get("description"),
                    assignee_email=assignee.get("emailAddress"),
                    labels=list(fields.get("labels") or []),
                )
            )

        total = data.get("total")
        if isinstance(total, int) and total > len(issues):
            logger.warning(f"JQL matched {total} issues, only the first {len(issues)} returned")
        logger.debug(f"JQL returned {len(issues)} issue(s): {query}")
        return issues

    def remove_label(self, ticket_key: str, label: str) -> None:
        """Remove a label. Removing a label the ticket does not carry is a no-op in Jira."""
        self._request(
            "PUT",
            f"/rest/api/2/issue/{ticket_key}",
            json_body={"update": {"labels": [{"remove": label}]}},
        )
        logger.debug(f"Removed label '{label}' from {ticket_key}")

    def add_comment(self, ticket_key: str, body: str) -> None:
        payload: dict[str, Any] = {"body": body}
        if self.visibility_role:
            payload["visibility"] = {"type": "role", "value": self.visibility_role}
        self._request("POST", f"/rest/api/2/issue/{ticket_key}/comment", json_body=payload)
        logger.debug(f"Added comment to {ticket_key}")

    def find_label_applier(self, ticket_key: str, label: str) -> str | None:
        """Find who most recently added a label, from the issue changelog.

        Args:
            ticket_key: Jira issue key
            label: Label name to look for

        Returns:
            Email address of the user who added the label, or None if it
            cannot be determined (including on API errors)
        """
        try:
            response = self._request(
                "GET",
                f"/rest/api/2/issue/{ticket_key}",
                params={"expand": "changelog"},
            )
            data = self._json(response)
        except (JiraClientError, NetworkError) as e:
            logger.warning(f"Failed to read changelog for {ticket_key}: {e}")
            return None

        histories = (data.get("changelog") or {}).get("histories") or []
        for history in reversed(histories):
            for item in history.get("items") or []:
                if item.get("field") != "labels":
                    continue
                added = (item.get("toString") or item.get("to") or "").split()
                previous = (item.get("fromString") or item.get("from") or "").split()
                if label in added and label not in previous:
                    author = history.get("author") or {}
                    return author.get("emailAddress")
        return None

    def get_dev_status(self, ticket_key: str) -> DevStatus | None:
        """Read pull requests linked to a ticket via the development panel.

        Args:
            ticket_key: Jira issue key

        Returns:
            DevStatus with upper-cased PR statuses, or None when the issue or
            its development information is unavailable
        """
        try:
            response = self._request(
                "GET",
                f"/rest/api/2/issue/{ticket_key}",
                params={"fields": "id"},
                allowed_statuses=(404,),
            )
            if response.status_code == 404:
                logger.warning(f"Issue {ticket_key} not found")
                return None
            issue_id = self._json(response).get("id")
            if not issue_id:
                return None

            response = self._request(
                "GET",
                "/rest/dev-status/1.0/issue/detail",
                params={
                    "issueId": issue_id,
                    "applicationType": "GitHub",
                    "dataType": "pullrequest",
                },
                allowed_statuses=(404,),
            )
            if response.status_code == 404:
                logger.debug(f"No development information for {ticket_key}")
                return None
            data = self._json(response)
        except (JiraClientError, NetworkError) as e:
            logger.warning(f"Failed to get dev status for {ticket_key}: {e}")
            return None

        pull_requests = []
        for detail in data.get("detail") or []:
            for pr in detail.get("pullRequests") or []:
                url = pr.get("url")
                if not url:
                    continue
                pull_requests.append(
                    DevStatusPullRequest(
                        url=url,
                        status=str(pr.get("status", "")).upper(),
                        name=pr.get("name"),
                    )
                )
        return DevStatus(pull_requests=pull_requests)
