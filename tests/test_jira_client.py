"""Tests for the Jira ticket client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from src.interfaces import TicketClient
from src.ticket_clients import get_ticket_client
from src.ticket_clients.base import JiraClientError, NetworkError
from src.ticket_clients.jira import JiraTicketClient, build_trigger_query


def make_response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = "Reason"
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def client():
    return JiraTicketClient("https://jira.example.com/", "secret-token", timeout=10)


@pytest.fixture
def mock_request():
    with patch("src.ticket_clients.jira.requests.request") as mock:
        yield mock


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("src.ticket_clients.base.time.sleep") as mock:
        yield mock


@pytest.mark.unit
class TestBuildTriggerQuery:
    def test_single_project(self):
        assert build_trigger_query("autopr", ["ABC"]) == 'labels = "autopr" AND project IN ("ABC")'

    def test_multiple_projects(self):
        assert (
            build_trigger_query("ai", ["ABC", "XYZ"])
            == 'labels = "ai" AND project IN ("ABC", "XYZ")'
        )


@pytest.mark.unit
class TestJiraRequests:
    def test_client_satisfies_protocol(self, client):
        assert isinstance(client, TicketClient)

    def test_factory_uses_config(self, config):
        config.comment_visibility_role = "Developers"
        client = get_ticket_client(config)

        assert client.base_url == "https://jira.example.com"
        assert client.visibility_role == "Developers"
        assert client.timeout == config.http_timeout

    def test_bearer_auth_and_timeout(self, client, mock_request):
        mock_request.return_value = make_response(200, {"issues": []})

        client.search_issues('labels = "autopr"')

        kwargs = mock_request.call_args.kwargs
        assert mock_request.call_args.args == ("POST", "https://jira.example.com/rest/api/2/search")
        assert kwargs["headers"]["Authorization"] == "Bearer secret-token"
        assert kwargs["timeout"] == 10

    def test_retries_transient_status(self, client, mock_request, no_sleep):
        mock_request.side_effect = [
            make_response(503),
            make_response(200, {"issues": []}),
        ]

        assert client.search_issues("q") == []
        assert mock_request.call_count == 2
        no_sleep.assert_called_once()

    def test_retries_connection_errors_then_raises(self, client, mock_request):
        mock_request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError, match="failed after 3 attempts"):
            client.search_issues("q")
        assert mock_request.call_count == 3

    def test_client_error_raises_with_messages(self, client, mock_request):
        mock_request.return_value = make_response(
            400, {"errorMessages": ["Bad JQL"], "errors": {"labels": "unknown field"}}
        )

        with pytest.raises(JiraClientError) as exc_info:
            client.search_issues("q")

        assert exc_info.value.status_code == 400
        assert "Bad JQL" in str(exc_info.value)
        assert "labels: unknown field" in str(exc_info.value)
        assert mock_request.call_count == 1


@pytest.mark.unit
class TestSearchIssues:
    def test_maps_fields(self, client, mock_request):
        mock_request.return_value = make_response(
            200,
            {
                "total": 2,
                "issues": [
                    {
                        "key": "PROJ-1",
                        "fields": {
                            "summary": "Fix login",
                            "description": "Steps",
                            "assignee": {"emailAddress": "dev@example.com"},
                            "labels": ["autopr", "target:org/repo"],
                        },
                    },
                    {"key": "PROJ-2", "fields": {"summary": None, "assignee": None}},
                ],
            },
        )

        issues = client.search_issues('labels = "autopr"')

        body = mock_request.call_args.kwargs["json"]
        assert body == {
            "jql": 'labels = "autopr"',
            "fields": ["summary", "description", "assignee", "labels"],
            "maxResults": 100,
        }
        assert issues[0].key == "PROJ-1"
        assert issues[0].assignee_email == "dev@example.com"
        assert issues[0].labels == ["autopr", "target:org/repo"]
        assert issues[1].summary == ""
        assert issues[1].assignee_email is None
        assert issues[1].labels == []


@pytest.mark.unit
class TestMutations:
    def test_remove_label(self, client, mock_request):
        mock_request.return_value = make_response(204)

        client.remove_label("PROJ-1", "autopr")

        assert mock_request.call_args.args == (
            "PUT",
            "https://jira.example.com/rest/api/2/issue/PROJ-1",
        )
        assert mock_request.call_args.kwargs["json"] == {
            "update": {"labels": [{"remove": "autopr"}]}
        }

    def test_add_comment_public(self, client, mock_request):
        mock_request.return_value = make_response(201, {"id": "1"})

        client.add_comment("PROJ-1", "hello")

        assert mock_request.call_args.kwargs["json"] == {"body": "hello"}

    def test_add_comment_with_visibility_role(self, mock_request):
        client = JiraTicketClient("https://jira.example.com", "t", visibility_role="Developers")
        mock_request.return_value = make_response(201, {"id": "1"})

        client.add_comment("PROJ-1", "hello")

        assert mock_request.call_args.kwargs["json"] == {
            "body": "hello",
            "visibility": {"type": "role", "value": "Developers"},
        }


@pytest.mark.unit
class TestFindLabelApplier:
    def test_newest_matching_history_wins(self, client, mock_request):
        mock_request.return_value = make_response(
            200,
            {
                "changelog": {
                    "histories": [
                        {
                            "author": {"emailAddress": "old@example.com"},
                            "items": [
                                {"field": "labels", "fromString": "", "toString": "autopr"}
                            ],
                        },
                        {
                            "author": {"emailAddress": "other@example.com"},
                            "items": [{"field": "status", "fromString": "Open", "toString": "Done"}],
                        },
                        {
                            "author": {"emailAddress": "new@example.com"},
                            "items": [
                                {
                                    "field": "labels",
                                    "fromString": "bug",
                                    "toString": "bug autopr",
                                }
                            ],
                        },
                        {
                            "author": {"emailAddress": "remover@example.com"},
                            "items": [
                                {"field": "labels", "fromString": "bug autopr", "toString": "bug"}
                            ],
                        },
                    ]
                }
            },
        )

        assert client.find_label_applier("PROJ-1", "autopr") == "new@example.com"
        assert mock_request.call_args.kwargs["params"] == {"expand": "changelog"}

    def test_no_match(self, client, mock_request):
        mock_request.return_value = make_response(200, {"changelog": {"histories": []}})

        assert client.find_label_applier("PROJ-1", "autopr") is None

    def test_error_returns_none(self, client, mock_request):
        mock_request.return_value = make_response(403, {"errorMessages": ["Forbidden"]})

        assert client.find_label_applier("PROJ-1", "autopr") is None


@pytest.mark.unit
class TestGetDevStatus:
    def test_flattens_pull_requests(self, client, mock_request):
        mock_request.side_effect = [
            make_response(200, {"id": "10001"}),
            make_response(
                200,
                {
                    "detail": [
                        {
                            "pullRequests": [
                                {"url": "https://github.com/org/a/pull/1", "status": "merged"},
                                {"url": "https://github.com/org/a/pull/2", "status": "OPEN"},
                            ]
                        },
                        {
                            "pullRequests": [
                                {
                                    "url": "https://github.com/org/b/pull/3",
                                    "status": "DECLINED",
                                    "name": "Fix",
                                }
                            ]
                        },
                    ]
                },
            ),
        ]

        status = client.get_dev_status("PROJ-1")

        assert [(pr.url, pr.status) for pr in status.pull_requests] == [
            ("https://github.com/org/a/pull/1", "MERGED"),
            ("https://github.com/org/a/pull/2", "OPEN"),
            ("https://github.com/org/b/pull/3", "DECLINED"),
        ]
        assert status.pull_requests[2].name == "Fix"
        second_call = mock_request.call_args_list[1]
        assert second_call.args[1] == "https://jira.example.com/rest/dev-status/1.0/issue/detail"
        assert second_call.kwargs["params"] == {
            "issueId": "10001",
            "applicationType": "GitHub",
            "dataType": "pullrequest",
        }

    def test_issue_not_found(self, client, mock_request):
        mock_request.return_value = make_response(404)

        assert client.get_dev_status("PROJ-404") is None

    def test_dev_status_not_found(self, client, mock_request):
        mock_request.side_effect = [make_response(200, {"id": "1"}), make_response(404)]

        assert client.get_dev_status("PROJ-1") is None

    def test_error_returns_none(self, client, mock_request):
        mock_request.side_effect = requests.Timeout("slow")

        assert client.get_dev_status("PROJ-1") is None
