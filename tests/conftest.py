"""Pytest configuration and shared fixtures."""

import itertools
import os
import tempfile
from pathlib import Path

import pytest
from hypothesis import settings

from src.config import Config
from src.database import JobRunStore
from src.interfaces import (
    AgentStatus,
    AgentStatusResult,
    DevStatus,
    Issue,
    LaunchRequest,
    LaunchResult,
    StatusRequest,
)

# Configure Hypothesis profiles for different environments
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "dev"))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast, isolated tests")
    config.addinivalue_line("markers", "integration: services against a real SQLite store")
    config.addinivalue_line(
        "markers",
        "hypothesis: marks property-based tests using Hypothesis",
    )


# ============================================================================
# In-memory collaborators
# ============================================================================


class FakeTicketClient:
    """In-memory issue tracker.

    search_issues() returns every issue still carrying the trigger label, so
    removing the label takes a ticket out of the next poll like Jira does.
    """

    def __init__(self, trigger_label: str = "autopr"):
        self.trigger_label = trigger_label
        self.issues: dict[str, Issue] = {}
        self.comments: dict[str, list[str]] = {}
        self.label_appliers: dict[str, str] = {}
        self.dev_statuses: dict[str, DevStatus] = {}
        self.removed_labels: list[tuple[str, str]] = []
        self.search_error: Exception | None = None
        self.comment_error: Exception | None = None
        self.queries: list[str] = []

    def add_issue(self, issue: Issue) -> Issue:
        self.issues[issue.key] = issue
        return issue

    def search_issues(self, query: str) -> list[Issue]:
        self.queries.append(query)
        if self.search_error is not None:
            raise self.search_error
        return [i for i in self.issues.values() if self.trigger_label in i.labels]

    def remove_label(self, ticket_key: str, label: str) -> None:
        self.removed_labels.append((ticket_key, label))
        issue = self.issues.get(ticket_key)
        if issue is not None and label in issue.labels:
            issue.labels.remove(label)

    def add_comment(self, ticket_key: str, body: str) -> None:
        if self.comment_error is not None:
            raise self.comment_error
        self.comments.setdefault(ticket_key, []).append(body)

    def find_label_applier(self, ticket_key: str, label: str) -> str | None:
        return self.label_appliers.get(ticket_key)

    def get_dev_status(self, ticket_key: str) -> DevStatus | None:
        return self.dev_statuses.get(ticket_key)


class FakeAgentService:
    """In-memory agent service implementing both launch and status lookups."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.launches: list[LaunchRequest] = []
        self.launch_errors: dict[str, str] = {}
        self.launch_exceptions: dict[str, Exception] = {}
        self.statuses: dict[str, AgentStatusResult] = {}
        self.status_requests: list[StatusRequest] = []

    def launch(self, request: LaunchRequest) -> LaunchResult:
        self.launches.append(request)
        if request.repository in self.launch_exceptions:
            raise self.launch_exceptions[request.repository]
        if request.repository in self.launch_errors:
            return LaunchResult(success=False, error=self.launch_errors[request.repository])
        agent_id = f"agent-{next(self._ids)}"
        self.statuses[agent_id] = AgentStatusResult(success=True, status=AgentStatus.RUNNING)
        return LaunchResult(
            success=True,
            agent_id=agent_id,
            agent_url=f"https://agents.example.com/{agent_id}",
        )

    def get_status(self, request: StatusRequest) -> AgentStatusResult:
        self.status_requests.append(request)
        return self.statuses.get(
            request.agent_id,
            AgentStatusResult(success=False, error="agent not found"),
        )

    def set_status(self, agent_id: str, status: AgentStatus, **kwargs) -> None:
        self.statuses[agent_id] = AgentStatusResult(success=True, status=status, **kwargs)


class FakeCredentialStore:
    def __init__(self, keys: dict[str, str] | None = None):
        self.keys = keys if keys is not None else {"dev@example.com": "key-dev"}

    def credentials_exist(self, user_email: str) -> bool:
        return user_email in self.keys

    def get_api_key(self, user_email: str) -> str | None:
        return self.keys.get(user_email)


class FakeRepositoryRegistry:
    def __init__(self, repositories: dict[str, str] | None = None):
        self.repositories = (
            repositories if repositories is not None else {"org/configured": "main"}
        )

    def is_configured(self, repository: str) -> bool:
        return repository in self.repositories

    def get_default_branch(self, repository: str) -> str | None:
        return self.repositories.get(repository)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def config():
    """A valid configuration pointing at example hosts."""
    return Config(
        jira_base_url="https://jira.example.com",
        jira_api_token="jira-token",
        jira_projects=["PROJ"],
        agent_ttl_minutes=120,
    )


@pytest.fixture
def temp_store():
    """Fixture providing a connected JobRunStore on a temporary SQLite file."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".db", delete=False) as f:
        db_path = f.name

    store = JobRunStore(db_path).connect()
    yield store

    store.close()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def ticket_client():
    return FakeTicketClient()


@pytest.fixture
def agent_service():
    return FakeAgentService()


@pytest.fixture
def credential_store():
    return FakeCredentialStore()


@pytest.fixture
def repository_registry():
    return FakeRepositoryRegistry()


@pytest.fixture
def temp_dir():
    """Fixture providing a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
