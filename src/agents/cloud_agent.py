"""Cloud coding-agent API client.

Launches agents with POST /v0/agents and reads their status with
GET /v0/agents/{id}. Each call authenticates as the ticket assignee, using
the API key registered for them in the credential store.

launch() and get_status() never raise for API failures; they return a
result with success=False and the error message instead.
"""

import contextlib
from typing import Any

import requests

from src.interfaces import (
    AgentStatus,
    AgentStatusResult,
    CredentialStore,
    LaunchRequest,
    LaunchResult,
    StatusRequest,
)
from src.logger import get_logger
from src.ticket_clients.base import TRANSIENT_STATUS_CODES, NetworkError, retry_with_backoff

logger = get_logger(__name__)

GITHUB_URL_PREFIX = "https://github.com/"


class AgentApiError(Exception):
    """Raised when the agent API returns an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def normalize_repository_url(repository: str) -> str:
    """Convert 'org/repo' to a full GitHub URL.

    Full GitHub URLs pass through unchanged. Anything else is passed through
    with a warning and left for the API to validate.
    """
    if repository.startswith(GITHUB_URL_PREFIX):
        return repository
    if "/" in repository and "://" not in repository:
        return f"{GITHUB_URL_PREFIX}{repository}"
    logger.warning(f"Unexpected repository URL format, passing through to API: {repository}")
    return repository


def build_prompt(ticket_key: str, summary: str, description: str | None) -> str:
    """Build the task prompt for an agent from ticket data."""
    description_section = f"\n\n### Description\n{description}" if description else ""

    return f"""You are an autonomous engineering agent that implements Jira tickets end-to-end. \
Your goal is to deliver production-ready code that fully addresses the ticket requirements.

## Your Workflow
1. **Understand** - Analyze the ticket requirements thoroughly before writing any code
2. **Explore** - Examine the existing codebase to understand patterns, conventions, and architecture
3. **Plan** - Outline your implementation approach before coding
4. **Implement** - Write clean, well-structured code following existing patterns
5. **Test** - Add appropriate tests and verify existing tests pass
6. **Review** - Self-review your changes for quality, edge cases, and potential issues

## Quality Standards
- Follow existing code patterns and conventions in the repository
- Write clear, self-documenting code with comments only where necessary
- Include appropriate error handling
- Add or update tests to cover your changes
- Ensure your changes do not break existing functionality
- Keep changes focused and minimal - only implement what the ticket requires

---

## Jira Ticket: {ticket_key}

### Summary
{summary}{description_section}

---

## Instructions
Implement the changes described in ticket {ticket_key} above. When complete, provide a concise \
summary of what you implemented and any important decisions you made."""


def _error_message(response: requests.Response) -> str:
    data: Any = None
    with contextlib.suppress(ValueError):
        data = response.json()

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])

    return response.text.strip() or f"HTTP {response.status_code}"


class CloudAgentClient:
    """Implements AgentLauncher and AgentStatusProvider against the agent REST API."""

    def __init__(
        self,
        base_url: str,
        credential_store: CredentialStore,
        timeout: int = 30,
        max_attempts: int = 3,
    ) -> None:
        """Initialize the agent client.

        Args:
            base_url: Agent API base URL (e.g., https://api.cursor.com)
            credential_store: Lookup for per-assignee API keys
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per request for transient failures
        """
        self.base_url = base_url.rstrip("/")
        self.credential_store = credential_store
        self.timeout = timeout
        self.max_attempts = max_attempts

    def _request(
        self,
        method: str,
        path: str,
        api_key: str,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send an authenticated request and return the decoded JSON body.

        Raises:
            NetworkError: If the request still fails transiently after all attempts
            AgentApiError: If the API rejects the request
        """
        url = f"{self.base_url}{path}"
        description = f"Agent API {method} {path}"
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        def attempt() -> requests.Response:
            try:
                response = requests.request(
                    method, url, headers=headers, json=json_body, timeout=self.timeout
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                raise NetworkError(f"{description}: {e}") from e
            if response.status_code in TRANSIENT_STATUS_CODES:
                raise NetworkError(f"{description} returned HTTP {response.status_code}")
            return response

        response = retry_with_backoff(
            attempt, max_attempts=self.max_attempts, description=description
        )

        if not response.ok:
            raise AgentApiError(_error_message(response), status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise AgentApiError("Invalid JSON in agent API response", response.status_code) from e
        if not isinstance(data, dict):
            raise AgentApiError("Unexpected agent API response", response.status_code)
        return data

    @staticmethod
    def _format_error(error: Exception) -> str:
        if isinstance(error, AgentApiError):
            return f"Agent API error ({error.status_code}): {error}"
        return f"Agent API error: {error}"

    def launch(self, request: LaunchRequest) -> LaunchResult:
        """Launch an agent for one ticket target.

        Args:
            request: Ticket data, repository, ref and assignee

        Returns:
            LaunchResult with agent_id and agent_url on success
        """
        logger.info(
            f"Launching agent for {request.ticket_key} on {request.repository} "
            f"(ref={request.ref}, auto_create_pr={request.auto_create_pr})"
        )

        if not request.ref:
            error = f"No target ref provided for ticket {request.ticket_key}"
            logger.error(error)
            return LaunchResult(success=False, error=error)

        api_key = self.credential_store.get_api_key(request.assignee_email)
        if not api_key:
            error = f"No API key found for assignee: {request.assignee_email}"
            logger.error(error)
            return LaunchResult(success=False, error=error)

        body = {
            "prompt": {
                "text": build_prompt(request.ticket_key, request.summary, request.description),
            },
            "source": {
                "repository": normalize_repository_url(request.repository),
                "ref": request.ref,
            },
            "target": {
                "autoCreatePr": request.auto_create_pr,
                "openAsCursorGithubApp": False,
                "skipReviewerRequest": False,
            },
        }

        try:
            data = self._request("POST", "/v0/agents", api_key, json_body=body)
        except (AgentApiError, NetworkError) as e:
            error = self._format_error(e)
            logger.error(f"Failed to launch agent for {request.ticket_key}: {error}")
            return LaunchResult(success=False, error=error)

        agent_id = data.get("id")
        agent_url = (data.get("target") or {}).get("url")
        logger.info(
            f"Agent launched for {request.ticket_key}: id={agent_id}, status={data.get('status')}"
        )
        return LaunchResult(success=True, agent_id=agent_id, agent_url=agent_url)

    def get_status(self, request: StatusRequest) -> AgentStatusResult:
        """Fetch the current status of an agent.

        Args:
            request: Agent id and the assignee whose key launched it

        Returns:
            AgentStatusResult with status, pr_url and summary on success
        """
        api_key = self.credential_store.get_api_key(request.assignee_email)
        if not api_key:
            return AgentStatusResult(
                success=False,
                error=f"No API key found for assignee: {request.assignee_email}",
            )

        try:
            data = self._request("GET", f"/v0/agents/{request.agent_id}", api_key)
        except (AgentApiError, NetworkError) as e:
            error = self._format_error(e)
            logger.warning(f"Failed to get status for agent {request.agent_id}: {error}")
            return AgentStatusResult(success=False, error=error)

        raw_status = str(data.get("status", "")).upper()
        try:
            status = AgentStatus(raw_status)
        except ValueError:
            return AgentStatusResult(
                success=False, error=f"Unknown agent status: {data.get('status')}"
            )

        target = data.get("target") or {}
        return AgentStatusResult(
            success=True,
            status=status,
            pr_url=target.get("prUrl"),
            summary=data.get("summary"),
        )
