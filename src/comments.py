"""Jira comment templates for user-visible job run outcomes.

Every terminal or validation outcome is reported on the ticket as a Jira
``{panel}``. Panels use border and title colors only so they stay readable in
dark mode. Transient and skip outcomes never produce a comment.
"""

from dataclasses import dataclass

from src.labels import Labels

RED = "#DE350B"
GREEN = "#00875A"
BLUE = "#0052CC"
ORANGE = "#FF8B00"
WHITE = "#FFFFFF"


@dataclass(frozen=True)
class PanelStyle:
    title: str
    color: str


VALIDATION_FAILED = PanelStyle("autopr Validation Failed", RED)
AGENT_LAUNCHED = PanelStyle("autopr Agent Launched", BLUE)
AGENT_LAUNCH_FAILED = PanelStyle("autopr Agent Launch Failed", RED)
AGENT_COMPLETED = PanelStyle("autopr Agent Completed", GREEN)
AGENT_FAILED = PanelStyle("autopr Agent Failed", RED)
AGENT_EXPIRED = PanelStyle("autopr Agent Expired", ORANGE)
AGENT_TIMED_OUT = PanelStyle("autopr Agent Timed Out", ORANGE)


def format_panel(style: PanelStyle, content: str) -> str:
    """Wrap content in a Jira panel.

    Args:
        style: Panel title and color
        content: Panel body (Jira wiki markup)

    Returns:
        Jira panel markup
    """
    return (
        f"{{panel:title={style.title}|borderColor={style.color}"
        f"|titleBGColor={style.color}|titleColor={WHITE}}}\n"
        f"{content}\n"
        "{panel}"
    )


def inline_code(text: str) -> str:
    return f"{{{{{text}}}}}"


def format_bullet_list(items: list[str]) -> str:
    return "\n".join(f"* {item}" for item in items)


def _retry_hint(trigger_label: str) -> str:
    return f"re-add the {inline_code(trigger_label)} label to retry."


def validation_failed(errors: list[str], trigger_label: str = Labels.TRIGGER) -> str:
    """One combined comment listing every validation error on the ticket."""
    content = (
        "The following issues must be resolved before autopr can process this ticket:\n\n"
        f"{format_bullet_list(errors)}\n\n"
        f"Please fix these issues and {_retry_hint(trigger_label)}"
    )
    return format_panel(VALIDATION_FAILED, content)


def agent_launched(repository: str, ref: str | None, agent_url: str | None) -> str:
    target = f"{repository}@{ref}" if ref else repository
    content = f"A coding agent has started working on {inline_code(target)}."
    if agent_url:
        content += f"\n\n[View agent|{agent_url}]"
    return format_panel(AGENT_LAUNCHED, content)


def agent_launch_failed(
    repository: str, error: str, trigger_label: str = Labels.TRIGGER
) -> str:
    content = (
        f"The coding agent for {inline_code(repository)} could not be started.\n\n"
        f"*Reason:* {error}\n\n"
        f"Please {_retry_hint(trigger_label)}"
    )
    return format_panel(AGENT_LAUNCH_FAILED, content)


def agent_completed(pr_url: str | None = None, summary: str | None = None) -> str:
    """Success comment, with PR link and agent summary when available."""
    content = "The coding agent has completed work on this ticket."
    if pr_url:
        content += f"\n\n[View PR|{pr_url}]"
    if summary:
        content += f"\n\n*Summary:*\n{summary}"
    return format_panel(AGENT_COMPLETED, content)


def agent_failed(reason: str, trigger_label: str = Labels.TRIGGER) -> str:
    content = (
        f"The coding agent failed.\n\n*Reason:* {reason}\n\n"
        f"Please {_retry_hint(trigger_label)}"
    )
    return format_panel(AGENT_FAILED, content)


def agent_expired(trigger_label: str = Labels.TRIGGER) -> str:
    content = (
        "The coding agent session expired before the work was finished.\n\n"
        f"Please {_retry_hint(trigger_label)}"
    )
    return format_panel(AGENT_EXPIRED, content)


def agent_timed_out(ttl_minutes: int, trigger_label: str = Labels.TRIGGER) -> str:
    content = (
        f"The coding agent timed out after running for more than {ttl_minutes} minutes.\n\n"
        f"Please {_retry_hint(trigger_label)}"
    )
    return format_panel(AGENT_TIMED_OUT, content)
