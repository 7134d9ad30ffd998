"""Coding-agent client implementations."""

from src.agents.cloud_agent import (
    AgentApiError,
    CloudAgentClient,
    build_prompt,
    normalize_repository_url,
)

__all__ = [
    "AgentApiError",
    "CloudAgentClient",
    "build_prompt",
    "normalize_repository_url",
]
