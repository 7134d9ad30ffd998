"""Protocol conformance tests for collaborator implementations.

This module verifies that every concrete collaborator implements the protocol
the polling services depend on. It tests three levels of conformance:

1. Structural conformance: isinstance(impl, Protocol) passes
2. Method existence: All protocol methods exist on each implementation
3. Signature matching: Method parameter names match the protocol definition

These tests keep the real clients interchangeable with the in-memory fakes
used throughout the unit tests.
"""

import inspect

import pytest

from src.agents import CloudAgentClient
from src.integrations import RepositoryRegistryManager, UserCredentialsManager
from src.interfaces import (
    AgentLauncher,
    AgentStatusProvider,
    CredentialStore,
    RepositoryRegistry,
    TicketClient,
)
from src.ticket_clients import JiraTicketClient


def _jira_client():
    return JiraTicketClient("https://jira.example.com", "token")


def _agent_client():
    return CloudAgentClient("https://api.example.com", UserCredentialsManager("/nonexistent"))


# (protocol, implementation factory, protocol methods)
CONFORMANCE_CASES = [
    (
        TicketClient,
        _jira_client,
        ["search_issues", "remove_label", "add_comment", "find_label_applier", "get_dev_status"],
    ),
    (AgentLauncher, _agent_client, ["launch"]),
    (AgentStatusProvider, _agent_client, ["get_status"]),
    (CredentialStore, UserCredentialsManager, ["credentials_exist", "get_api_key"]),
    (RepositoryRegistry, RepositoryRegistryManager, ["is_configured", "get_default_branch"]),
]

METHOD_CASES = [
    (protocol, factory, method)
    for protocol, factory, methods in CONFORMANCE_CASES
    for method in methods
]


def _case_id(value):
    """Generate a readable test ID from protocols and factories."""
    if isinstance(value, str):
        return value
    if callable(value):
        return value.__name__.lstrip("_")
    return None


def _param_names(func) -> list[str]:
    """Extract parameter names from a callable's signature, excluding 'self'."""
    return [name for name in inspect.signature(func).parameters if name != "self"]


@pytest.mark.unit
class TestProtocolStructuralConformance:
    """isinstance() checks against the runtime-checkable protocols."""

    @pytest.mark.parametrize("protocol,factory,methods", CONFORMANCE_CASES, ids=_case_id)
    def test_isinstance(self, protocol, factory, methods):
        impl = factory()

        assert isinstance(impl, protocol), (
            f"{type(impl).__name__} should be an instance of {protocol.__name__}"
        )


@pytest.mark.unit
class TestProtocolSignatureConformance:
    """Implementations must accept the protocol parameters in the same order."""

    @pytest.mark.parametrize("protocol,factory,method_name", METHOD_CASES, ids=_case_id)
    def test_method_signature_matches_protocol(self, protocol, factory, method_name):
        impl = factory()
        method = getattr(impl, method_name)
        assert callable(method)

        protocol_params = _param_names(getattr(protocol, method_name))
        impl_params = _param_names(method)

        assert impl_params[: len(protocol_params)] == protocol_params, (
            f"{type(impl).__name__}.{method_name} has parameters {impl_params}, "
            f"protocol expects {protocol_params}"
        )
