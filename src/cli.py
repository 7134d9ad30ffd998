"""CLI entry point for autopr.

Each polling service is a one-shot command meant to be invoked by an
external scheduler (cron, a Kubernetes CronJob, ...). The exit code tells
the scheduler whether the batch hit system errors.

Subcommands:
    autopr ingest            - Launch agents for trigger-labeled tickets
    autopr reconcile-agents  - Advance running job runs from agent status
    autopr reconcile-merges  - Finalize completed job runs from PR status
    autopr history <KEY>     - Show the job run history of a ticket
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.agent_status_reconciler import AgentStatusReconciler
    from src.config import Config
    from src.database import JobRun, JobRunStore
    from src.merge_status_reconciler import MergeStatusReconciler
    from src.ticket_ingestion import TicketIngestionService

    PollingService = TicketIngestionService | AgentStatusReconciler | MergeStatusReconciler

# Version is set during build
__version__ = "1.0.0"

INGEST_COMMAND = "ingest"
RECONCILE_AGENTS_COMMAND = "reconcile-agents"
RECONCILE_MERGES_COMMAND = "reconcile-merges"
SERVICE_COMMANDS = (INGEST_COMMAND, RECONCILE_AGENTS_COMMAND, RECONCILE_MERGES_COMMAND)


def build_service(command: str, config: Config, store: JobRunStore) -> PollingService:
    """Build the polling service for a command with its collaborators injected.

    Args:
        command: One of SERVICE_COMMANDS
        config: Loaded configuration
        store: Job run store (not yet connected)

    Returns:
        A polling service exposing run_as_job()
    """
    from src.agent_status_reconciler import AgentStatusReconciler
    from src.agents import CloudAgentClient
    from src.integrations import RepositoryRegistryManager, UserCredentialsManager
    from src.merge_status_reconciler import MergeStatusReconciler
    from src.ticket_clients import get_ticket_client
    from src.ticket_ingestion import TicketIngestionService

    ticket_client = get_ticket_client(config)

    if command == RECONCILE_MERGES_COMMAND:
        return MergeStatusReconciler(config, store, ticket_client)

    credential_store = UserCredentialsManager(config.credentials_path)
    agent_client = CloudAgentClient(
        config.agent_api_url, credential_store, timeout=config.http_timeout
    )

    if command == RECONCILE_AGENTS_COMMAND:
        return AgentStatusReconciler(config, store, ticket_client, agent_client)

    if command == INGEST_COMMAND:
        return TicketIngestionService(
            config,
            store,
            ticket_client,
            agent_client,
            credential_store,
            RepositoryRegistryManager(config.repositories_path),
        )

    raise ValueError(f"Unknown command: {command}")


def run_service(command: str, quiet: bool = False) -> int:
    """Load config, set up logging and telemetry, and run one polling batch.

    Args:
        command: One of SERVICE_COMMANDS
        quiet: If True, log to file only

    Returns:
        Process exit code
    """
    from src.config import load_config
    from src.database import JobRunStore
    from src.logger import get_logger, setup_logging
    from src.telemetry import get_git_version, init_telemetry, shutdown_telemetry

    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        log_file=config.log_file,
        log_size=config.log_size,
        log_backups=config.log_backups,
        quiet=quiet,
        secrets=[config.jira_api_token],
    )
    logger = get_logger(__name__)
    logger.info(f"=== autopr {command} (v{__version__}) ===")

    if config.otel_endpoint:
        init_telemetry(
            config.otel_endpoint,
            config.otel_service_name,
            service_version=get_git_version(),
        )

    try:
        service = build_service(command, config, JobRunStore(config.database_path))
        return int(service.run_as_job())
    except Exception:
        logger.exception(f"autopr {command} failed")
        return 1
    finally:
        shutdown_telemetry()


def format_duration(start: datetime | None, end: datetime | None) -> str:
    """Format duration between two timestamps."""
    if start is None:
        return "-"
    if end is None:
        return "running..."
    total_seconds = int((end - start).total_seconds())
    if total_seconds < 60:
        return f"{total_seconds}s"
    elif total_seconds < 3600:
        return f"{total_seconds // 60}m {total_seconds % 60}s"
    else:
        return f"{total_seconds // 3600}h {(total_seconds % 3600) // 60}m"


def format_status(job_run: JobRun) -> str:
    """Format a job run status with a symbol, including the PR state once completed."""
    symbols = {
        "pending": "⏳",
        "running": "⏳",
        "completed": "✓",
        "failed": "✗",
        "failed_timeout": "⚠",
        "cancelled": "-",
    }
    status = job_run.status.value
    text = f"{symbols.get(status, '?')} {status}"
    if job_run.pr is not None:
        text += f" (pr {job_run.pr.status.value})"
    return text


def cmd_history(args: argparse.Namespace) -> int:
    """Handle the 'history' subcommand."""
    from src.config import Config, load_config
    from src.database import JobRunStore

    # Only the database path is needed; fall back to defaults without Jira settings
    try:
        db_path = load_config().database_path
    except ValueError:
        db_path = Config().database_path

    if not Path(db_path).exists():
        print(f"No database found at {db_path}. Run 'autopr ingest' first.", file=sys.stderr)
        return 1

    with JobRunStore(db_path) as store:
        runs = store.list_for_ticket(args.ticket_key, limit=args.limit)

    if not runs:
        print(f"No job runs found for {args.ticket_key}.")
        return 0

    print(f"\nJob runs for {args.ticket_key}:\n")
    print(f"{'ID':<6} {'Repository':<32} {'Created':<18} {'Duration':<12} {'Status'}")
    print("-" * 90)
    for run in runs:
        repository = run.target_repository
        if run.target_ref:
            repository = f"{repository}@{run.target_ref}"
        created = run.created_at.strftime("%Y-%m-%d %H:%M")
        duration = format_duration(run.started_at, run.completed_at)
        print(f"{run.id:<6} {repository:<32} {created:<18} {duration:<12} {format_status(run)}")
        if run.error_message:
            print(f"{'':<6} error: {run.error_message}")
        if run.pr is not None:
            print(f"{'':<6} pr: {run.pr.url}")
    print()
    return 0


def main() -> None:
    """Main entry point for the autopr CLI."""
    parser = argparse.ArgumentParser(
        prog="autopr",
        description="Launch cloud coding agents from Jira tickets and track them to merge",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"autopr {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    service_help = {
        INGEST_COMMAND: "Launch agents for tickets carrying the trigger label",
        RECONCILE_AGENTS_COMMAND: "Advance running job runs from agent status",
        RECONCILE_MERGES_COMMAND: "Finalize completed job runs once their PR merges or closes",
    }
    for command in SERVICE_COMMANDS:
        service_parser = subparsers.add_parser(command, help=service_help[command])
        service_parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Log to file only (no stdout/stderr)",
        )

    history_parser = subparsers.add_parser(
        "history",
        help="Show the job run history for a ticket",
    )
    history_parser.add_argument("ticket_key", help="Jira ticket key (e.g., PROJ-123)")
    history_parser.add_argument(
        "--limit",
        "-n",
        type=int,
        default=50,
        help="Maximum number of job runs to show (default 50)",
    )

    args = parser.parse_args()

    if args.command == "history":
        sys.exit(cmd_history(args))
    sys.exit(run_service(args.command, quiet=args.quiet))


if __name__ == "__main__":
    main()
