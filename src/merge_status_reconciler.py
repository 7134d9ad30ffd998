"""Merge status reconciliation for completed job runs.

Completed job runs with an open pull request are finalized from the
tracker's development panel: MERGED marks the PR merged, DECLINED marks it
closed. Anything else leaves the PR open for the next cycle.
"""

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime

from src.config import Config
from src.database import JobRun, JobRunStore, PullRequestStatus
from src.interfaces import DevStatus, DevStatusPullRequest, TicketClient
from src.logger import get_logger
from src.polling import ItemResult, PollingResult, Query, execute_polling, run_as_job

logger = get_logger(__name__)

NO_DEV_STATUS_REASON = "no dev status found"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_pr_url(url: str) -> str:
    """Normalize a pull request URL for comparison (trim, drop trailing slash)."""
    return url.strip().removesuffix("/")


def find_pull_request(dev_status: DevStatus, pr_url: str) -> DevStatusPullRequest | None:
    """Find the dev-status entry for a pull request URL."""
    wanted = normalize_pr_url(pr_url)
    for pull_request in dev_status.pull_requests:
        if normalize_pr_url(pull_request.url) == wanted:
            return pull_request
    return None


class MergeStatusReconciler:
    """Finalizes completed job runs once their pull request merges or is declined."""

    name = "merge_status"

    def __init__(
        self,
        config: Config,
        store: JobRunStore,
        ticket_client: TicketClient,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self.store = store
        self.ticket_client = ticket_client
        self.clock = clock

    def build_query(self) -> Query[JobRun]:
        return Query(
            description="completed job runs with open pull requests",
            fetch=self.store.find_completed_with_open_pr,
        )

    def item_key(self, item: JobRun) -> str:
        return f"{item.ticket_key}@{item.target_repository}"

    def poll(self) -> PollingResult:
        return execute_polling(self)

    def run_as_job(self) -> int:
        return run_as_job(self, self.store, self.config)

    def process_item(self, item: JobRun) -> ItemResult:
        key = self.item_key(item)

        if item.pr is None or not item.pr.url:
            return ItemResult.skip(key, "Job run has no pull request URL")

        dev_status = self.ticket_client.get_dev_status(item.ticket_key)
        if dev_status is None:
            logger.debug(f"No dev status for {item.ticket_key}")
            return ItemResult.skip(key, NO_DEV_STATUS_REASON)

        pull_request = find_pull_request(dev_status, item.pr.url)
        if pull_request is None:
            logger.debug(f"Pull request {item.pr.url} not found in dev status")
            return ItemResult.skip(key, f"Pull request {item.pr.url} not found in dev status")

        external_status = pull_request.status.upper()
        now = self.clock()
        if external_status == "OPEN":
            return ItemResult.skip(key, "Pull request is still open")
        if external_status == "MERGED":
            updated = replace(item.pr, status=PullRequestStatus.MERGED, merged_at=now)
        elif external_status == "DECLINED":
            updated = replace(item.pr, status=PullRequestStatus.CLOSED, closed_at=now)
        else:
            logger.warning(
                f"Unrecognized pull request status '{pull_request.status}' for {item.pr.url}"
            )
            return ItemResult.skip(key, f"Unrecognized pull request status: {pull_request.status}")

        self.store.update(item.id, pr=updated)  # type: ignore[arg-type]
        logger.info(
            f"Pull request {item.pr.url} for job run {item.id} is now {updated.status.value}"
        )
        return ItemResult.ok(key)
