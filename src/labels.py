"""Label definitions and the target label grammar.

A ticket is picked up when it carries the trigger label. The repositories it
asks work against are expressed as target labels:

    target:<org>/<repo>          work against the repository's default branch
    target:<org>/<repo>@<ref>    work against an explicit branch/ref

The ref may itself contain '/', '.' and '-' (e.g. target:org/repo@release/v1.2).
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass


class Labels:
    """Constants for autopr label names."""

    # Default trigger label, overridable with TRIGGER_LABEL
    TRIGGER = "autopr"

    # Prefix of labels naming a target repository
    TARGET_PREFIX = "target:"


TARGET_LABEL_PATTERN = re.compile(
    r"^"
    + re.escape(Labels.TARGET_PREFIX)
    + r"([a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+)"  # org/repo
    + r"(?:@([a-zA-Z0-9_.\-/]+))?$"  # optional @ref
)


@dataclass(frozen=True)
class Target:
    """A repository (and optional ref) a ticket requests work against."""

    repository: str
    ref: str | None = None

    def __str__(self) -> str:
        return f"{self.repository}@{self.ref}" if self.ref else self.repository


def parse_target_label(label: str) -> Target | None:
    """Parse a single target label.

    Args:
        label: Raw label text

    Returns:
        Target if the label matches the grammar, None otherwise
    """
    match = TARGET_LABEL_PATTERN.fullmatch(label)
    if not match:
        return None
    return Target(repository=match.group(1), ref=match.group(2))


def parse_targets(labels: Iterable[str]) -> list[Target]:
    """Extract all targets from a ticket's labels.

    Order is preserved. When the same repository appears more than once,
    the first label wins.

    Args:
        labels: Label names on the ticket

    Returns:
        List of unique targets, possibly empty
    """
    targets: list[Target] = []
    seen: set[str] = set()
    for label in labels:
        target = parse_target_label(label)
        if target is None or target.repository in seen:
            continue
        seen.add(target.repository)
        targets.append(target)
    return targets
