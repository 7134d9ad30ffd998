"""Agent status reconciliation for running job runs.

Running job runs are advanced using the status reported by the agent
service. There are no callbacks: every scheduled invocation re-reads the
status of every running job.

The TTL only applies while the agent still reports RUNNING or CREATING.
A run that finished past its TTL is recorded with its real outcome.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from src import comments
from src.config import Config
from src.database import JobRun, JobRunStatus, JobRunStore, PullRequestInfo
from src.interfaces import AgentStatus, AgentStatusProvider, StatusRequest, TicketClient
from src.logger import get_logger
from src.polling import ItemResult, PollingResult, Query, execute_polling, run_as_job

logger = get_logger(__name__)

AGENT_ERROR_MESSAGE = "agent encountered an error"
AGENT_EXPIRED_MESSAGE = "agent session expired"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def ttl_exceeded(job_run: JobRun, ttl: timedelta, now: datetime) -> bool:
    """Check whether a job run has been running longer than the TTL.

    Elapsed time counts from started_at, falling back to created_at for
    records that never had started_at stamped.
    """
    started = job_run.started_at or job_run.created_at
    return now - started > ttl


class AgentStatusReconciler:
    """Advances running job runs from external agent status."""

    name = "agent_status"

    def __init__(
        self,
        config: Config,
        store: JobRunStore,
        ticket_client: TicketClient,
        status_provider: AgentStatusProvider,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the reconciler.

        Args:
            config: Application configuration (agent TTL, trigger label)
            store: Job run store
            ticket_client: Issue tracker client used for outcome comments
            status_provider: Reads agent status
            clock: Returns the current time (timezone-aware)
        """
        self.config = config
        self.store = store
        self.ticket_client = ticket_client
        self.status_provider = status_provider
        self.clock = clock
        self.ttl = timedelta(minutes=config.agent_ttl_minutes)

    def build_query(self) -> Query[JobRun]:
        return Query(description="running job runs", fetch=self.store.find_running)

    def item_key(self, item: JobRun) -> str:
        return f"{item.ticket_key}@{item.target_repository}"

    def poll(self) -> PollingResult:
        return execute_polling(self)

    def run_as_job(self) -> int:
        return run_as_job(self, self.store, self.config)

    def process_item(self, item: JobRun) -> ItemResult:
        key = self.item_key(item)

        if not item.agent_id:
            logger.warning(f"Skipping job run {item.id}: no agent id")
            return ItemResult.skip(key, "Job run has no agent id")
        if not item.assignee:
            logger.warning(f"Skipping job run {item.id}: no assignee")
            return ItemResult.skip(key, "Job run has no assignee")

        status_result = self.status_provider.get_status(
            StatusRequest(agent_id=item.agent_id, assignee_email=item.assignee)
        )
        if not status_result.success or status_result.status is None:
            error = status_result.error or "no status returned"
            logger.warning(f"Failed to get agent status for job run {item.id}: {error}")
            return ItemResult.skip(key, f"API error: {error}")

        status = status_result.status
        logger.debug(f"Agent {item.agent_id} for job run {item.id} reports {status.value}")

        if status.is_in_progress:
            if ttl_exceeded(item, self.ttl, self.clock()):
                self._time_out(item)
            return ItemResult.ok(key)

        if status == AgentStatus.FINISHED:
            self._complete(item, status_result.pr_url, status_result.summary)
        elif status == AgentStatus.ERROR:
            self._fail(
                item,
                AGENT_ERROR_MESSAGE,
                comments.agent_failed(
                    "The agent encountered an error during execution", self.config.trigger_label
                ),
            )
        elif status == AgentStatus.EXPIRED:
            self._fail(item, AGENT_EXPIRED_MESSAGE, comments.agent_expired(self.config.trigger_label))
        return ItemResult.ok(key)

    def _time_out(self, job_run: JobRun) -> None:
        minutes = self.config.agent_ttl_minutes
        logger.info(f"Job run {job_run.id} timed out after {minutes} minutes")
        self.store.update(
            job_run.id,  # type: ignore[arg-type]
            status=JobRunStatus.FAILED_TIMEOUT,
            error_message=f"Agent timed out after {minutes} minutes",
        )
        self.ticket_client.add_comment(
            job_run.ticket_key, comments.agent_timed_out(minutes, self.config.trigger_label)
        )

    def _complete(self, job_run: JobRun, pr_url: str | None, summary: str | None) -> None:
        logger.info(f"Job run {job_run.id} completed (pr={pr_url or 'none'})")
        self.store.update(
            job_run.id,  # type: ignore[arg-type]
            status=JobRunStatus.COMPLETED,
            pr=PullRequestInfo(url=pr_url) if pr_url else None,
            agent_summary=summary,
        )
        self.ticket_client.add_comment(job_run.ticket_key, comments.agent_completed(pr_url, summary))

    def _fail(self, job_run: JobRun, error_message: str, comment: str) -> None:
        logger.info(f"Job run {job_run.id} failed: {error_message}")
        self.store.update(
            job_run.id,  # type: ignore[arg-type]
            status=JobRunStatus.FAILED,
            error_message=error_message,
        )
        self.ticket_client.add_comment(job_run.ticket_key, comment)
