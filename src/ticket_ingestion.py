"""Ticket ingestion: turn trigger-labeled tickets into launched agent runs.

For each ticket carrying the trigger label the service:
1. Parses the ticket and its target labels
2. Skips the ticket if every target already has an active job run
3. Records who applied the trigger label, removes the label and creates one
   job run per target without an active run
4. Validates the ticket once and reports every problem in one comment
5. Launches an agent per job run and reports each launch on the ticket

Removing the trigger label before validating and launching is what keeps the
next poll from picking the ticket up again, even if later steps fail.
"""

from dataclasses import replace

from src import comments
from src.config import Config
from src.database import JobRun, JobRunStatus, JobRunStore
from src.interfaces import (
    AgentLauncher,
    CredentialStore,
    Issue,
    LaunchRequest,
    RepositoryRegistry,
    TicketClient,
)
from src.labels import Target
from src.logger import get_logger
from src.polling import ItemResult, PollingResult, Query, execute_polling, run_as_job
from src.ticket_clients.jira import build_trigger_query
from src.ticket_parser import ParsedTicket, parse_ticket
from src.validation import validate_ticket

logger = get_logger(__name__)

ALL_TARGETS_ACTIVE_REASON = "All repositories have active job runs"
UNKNOWN_INITIATOR = "unknown"


class TicketIngestionService:
    """Polls the tracker for trigger-labeled tickets and launches agents for them."""

    name = "ticket_ingestion"

    def __init__(
        self,
        config: Config,
        store: JobRunStore,
        ticket_client: TicketClient,
        agent_launcher: AgentLauncher,
        credential_store: CredentialStore,
        repository_registry: RepositoryRegistry,
    ) -> None:
        """Initialize the ingestion service.

        Args:
            config: Application configuration (trigger label, projects, auto-PR flag)
            store: Job run store
            ticket_client: Issue tracker client
            agent_launcher: Starts agent runs
            credential_store: Lookup for assignee credentials
            repository_registry: Lookup for pre-configured repositories
        """
        self.config = config
        self.store = store
        self.ticket_client = ticket_client
        self.agent_launcher = agent_launcher
        self.credential_store = credential_store
        self.repository_registry = repository_registry

    @property
    def trigger_label(self) -> str:
        return self.config.trigger_label

    def build_query(self) -> Query[Issue]:
        jql = build_trigger_query(self.trigger_label, self.config.jira_projects)
        return Query(description=jql, fetch=lambda: self.ticket_client.search_issues(jql))

    def item_key(self, item: Issue) -> str:
        return item.key

    def poll(self) -> PollingResult:
        return execute_polling(self)

    def run_as_job(self) -> int:
        return run_as_job(self, self.store, self.config)

    def process_item(self, item: Issue) -> ItemResult:
        """Process one trigger-labeled ticket.

        Args:
            item: Issue returned by the trigger query

        Returns:
            skipped when every target is already active or validation fails,
            success when at least one agent launched, failed otherwise
        """
        ticket = parse_ticket(item)

        pending_targets = self._targets_without_active_run(ticket)
        if ticket.targets and not pending_targets:
            logger.info(
                f"Skipping {ticket.key}: all {len(ticket.targets)} target(s) already "
                "have active job runs"
            )
            self._remove_trigger_label_quietly(ticket.key)
            return ItemResult.skip(ticket.key, ALL_TARGETS_ACTIVE_REASON)

        initiated_by = (
            self.ticket_client.find_label_applier(ticket.key, self.trigger_label)
            or UNKNOWN_INITIATOR
        )
        self.ticket_client.remove_label(ticket.key, self.trigger_label)
        logger.info(f"Removed label '{self.trigger_label}' from {ticket.key}")

        job_runs = [
            self._create_job_run(ticket, target, initiated_by) for target in pending_targets
        ]

        try:
            validation = validate_ticket(
                replace(ticket, targets=pending_targets),
                self.credential_store,
                self.repository_registry,
            )
        except Exception as e:
            self._fail_job_runs(job_runs, f"Validation error: {e}")
            raise

        if not validation.is_valid:
            self._fail_job_runs(job_runs, validation.error_message)
            self.ticket_client.add_comment(
                ticket.key, comments.validation_failed(validation.errors, self.trigger_label)
            )
            logger.info(f"Skipping {ticket.key}: {validation.error_message}")
            return ItemResult.skip(ticket.key, validation.error_message)

        return self._launch_all(ticket, pending_targets, job_runs)

    def _targets_without_active_run(self, ticket: ParsedTicket) -> list[Target]:
        pending: list[Target] = []
        for target in ticket.targets:
            active = self.store.find_active(ticket.key, target.repository)
            if active is not None:
                logger.info(
                    f"Active job run {active.id} ({active.status.value}) already exists for "
                    f"{ticket.key} -> {target.repository}"
                )
                continue
            pending.append(target)
        return pending

    def _remove_trigger_label_quietly(self, ticket_key: str) -> None:
        """Remove the trigger label without failing the skip path."""
        try:
            self.ticket_client.remove_label(ticket_key, self.trigger_label)
        except Exception as e:
            logger.warning(
                f"Failed to remove label '{self.trigger_label}' from {ticket_key} "
                f"while skipping duplicate job runs: {e}"
            )

    def _create_job_run(self, ticket: ParsedTicket, target: Target, initiated_by: str) -> JobRun:
        resolved_ref = target.ref or self.repository_registry.get_default_branch(
            target.repository
        )
        job_run = self.store.create(
            ticket_key=ticket.key,
            target_repository=target.repository,
            initiated_by=initiated_by,
            assignee=ticket.assignee_email,
            target_ref=target.ref,
            metadata={
                "summary": ticket.summary,
                "description": ticket.description,
                "target_repository": target.repository,
                "resolved_ref": resolved_ref,
            },
        )
        logger.info(
            f"Creating job run {job_run.id} for {ticket.key} -> {target} "
            f"(initiated by {initiated_by})"
        )
        return job_run

    def _fail_job_runs(self, job_runs: list[JobRun], error_message: str) -> None:
        for job_run in job_runs:
            self.store.update(
                job_run.id,  # type: ignore[arg-type]
                status=JobRunStatus.FAILED,
                error_message=error_message,
            )

    def _launch_all(
        self, ticket: ParsedTicket, targets: list[Target], job_runs: list[JobRun]
    ) -> ItemResult:
        """Launch one agent per job run. Launches are independent of each other.

        A target whose agent is running counts as launched even when a later
        step for it (the launched comment) raised; that error is still
        reported as a partial failure.
        """
        failures: list[str] = []
        launched = 0

        for target, job_run in zip(targets, job_runs, strict=True):
            try:
                error = self._launch_one(ticket, target, job_run)
            except Exception as e:
                logger.exception(f"Unexpected error launching agent for {ticket.key} -> {target}")
                current = self.store.get(job_run.id)  # type: ignore[arg-type]
                if current is not None and current.status == JobRunStatus.RUNNING:
                    # The reconciler keeps tracking the live agent
                    launched += 1
                    failures.append(f"Agent launched but follow-up failed: {e}")
                    continue
                error = f"Agent launch failed: {e}"
                if current is not None and current.status == JobRunStatus.PENDING:
                    self.store.update(
                        job_run.id,  # type: ignore[arg-type]
                        status=JobRunStatus.FAILED,
                        error_message=error,
                    )
            if error is None:
                launched += 1
            else:
                failures.append(error)

        if launched:
            return ItemResult(key=ticket.key, success=True, partial_failures=failures)
        return ItemResult(
            key=ticket.key,
            success=False,
            error=failures[-1],
            partial_failures=failures[:-1],
        )

    def _launch_one(self, ticket: ParsedTicket, target: Target, job_run: JobRun) -> str | None:
        """Launch the agent for one job run.

        Returns:
            None on success, otherwise the error message recorded on the job run
        """
        ref = job_run.metadata.get("resolved_ref") or target.ref
        logger.info(f"Launching agent for {ticket.key} -> {target.repository} (ref={ref})")
        result = self.agent_launcher.launch(
            LaunchRequest(
                ticket_key=ticket.key,
                summary=ticket.summary,
                description=ticket.description,
                repository=target.repository,
                ref=ref,
                assignee_email=ticket.assignee_email or "",
                auto_create_pr=self.config.auto_create_pr,
            )
        )

        if result.success and not result.agent_id:
            result = replace(
                result,
                success=False,
                error="Agent launch reported success but did not return an agent id",
            )

        if not result.success:
            reason = result.error or "Unknown error"
            error_message = f"Agent launch failed: {reason}"
            logger.error(f"Failed to launch agent for {ticket.key} -> {target}: {reason}")
            self.store.update(
                job_run.id,  # type: ignore[arg-type]
                status=JobRunStatus.FAILED,
                error_message=error_message,
            )
            self.ticket_client.add_comment(
                ticket.key,
                comments.agent_launch_failed(target.repository, reason, self.trigger_label),
            )
            return error_message

        self.store.update(
            job_run.id,  # type: ignore[arg-type]
            status=JobRunStatus.RUNNING,
            agent_id=result.agent_id,
        )
        self.ticket_client.add_comment(
            ticket.key, comments.agent_launched(target.repository, ref, result.agent_url)
        )
        logger.info(f"Agent {result.agent_id} launched for {ticket.key} -> {target}")
        return None
