"""
Database module for persisting job runs in SQLite.

A job run is one attempt to execute a coding task against one
ticket/target-repository pair. The job_runs table is an append-only audit
log: records are created by ingestion, advanced by the reconcilers and never
deleted. At most one pending/running record may exist per
(ticket_key, target_repository) pair; callers check find_active() before
creating a new record.
"""

import json
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from src.logger import get_logger

logger = get_logger(__name__)


class JobRunStatus(Enum):
    """Lifecycle status of a job run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    FAILED_TIMEOUT = "failed_timeout"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({JobRunStatus.PENDING, JobRunStatus.RUNNING})
TERMINAL_STATUSES = frozenset(
    {
        JobRunStatus.COMPLETED,
        JobRunStatus.FAILED,
        JobRunStatus.FAILED_TIMEOUT,
        JobRunStatus.CANCELLED,
    }
)


class PullRequestStatus(Enum):
    """Merge state of the pull request produced by an agent."""

    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"


@dataclass
class PullRequestInfo:
    """
    Pull request produced by a finished agent run.

    Attributes:
        url: Pull request URL as reported by the agent
        status: open until the merge reconciler observes merged/declined
        merged_at: When the merge was observed
        closed_at: When the decline was observed
    """

    url: str
    status: PullRequestStatus = PullRequestStatus.OPEN
    merged_at: datetime | None = None
    closed_at: datetime | None = None


@dataclass
class JobRun:
    """
    Represents a single attempt to run a coding agent for a ticket target.

    Attributes:
        ticket_key: Issue tracker key (e.g., "PROJ-123"), not unique alone
        target_repository: Repository in 'org/repo' format
        initiated_by: Email of the user who applied the trigger label, or "unknown"
        status: Current lifecycle status
        created_at: When the record was created
        updated_at: When the record was last modified
        id: Auto-generated primary key
        target_ref: Branch/ref override from the target label
        assignee: Email of the ticket assignee (drives credentials and launch)
        agent_id: External agent correlation id, set once the agent launches
        pr: Pull request produced by the agent, if any
        started_at: Set once, on transition into RUNNING
        completed_at: Set once, on transition into any terminal status
        error_message: Failure reason for FAILED/FAILED_TIMEOUT runs
        agent_summary: Summary of the work reported by the agent
        metadata: Context captured at creation (summary, description, resolved target)
    """

    ticket_key: str
    target_repository: str
    initiated_by: str
    status: JobRunStatus
    created_at: datetime
    updated_at: datetime
    id: int | None = None
    target_ref: str | None = None
    assignee: str | None = None
    agent_id: str | None = None
    pr: PullRequestInfo | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    agent_summary: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def _now() -> datetime:
    return datetime.now(UTC)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


_JOB_RUN_COLUMNS = """
    id, ticket_key, target_repository, target_ref, initiated_by, assignee,
    status, agent_id, pr_url, pr_status, pr_merged_at, pr_closed_at,
    created_at, started_at, completed_at, updated_at, error_message,
    agent_summary, metadata
"""


class JobRunStore:
    """
    SQLite store for job run records.

    The connection is acquired with connect() (or by entering the store as a
    context manager) and released with close(). Scheduled invocations hold
    the connection only for the duration of one batch.
    """

    def __init__(self, db_path: str) -> None:
        """
        Initialize the store. No connection is opened until connect().

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._initialized = False

    def _get_conn(self) -> sqlite3.Connection:
        """Get the thread-local database connection, creating if needed."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self.db_path)
            self._local.conn.row_factory = sqlite3.Row
        return self._local.conn  # type: ignore[no-any-return]

    @property
    def conn(self) -> sqlite3.Connection:
        return self._get_conn()

    def connect(self) -> "JobRunStore":
        """Open the connection and make sure the schema exists."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_db()
        logger.debug(f"Connected to job run store at {self.db_path}")
        return self

    def init_db(self) -> None:
        """
        Create the job_runs table and its indexes if they don't exist.

        Indexes cover the lookups the polling loops repeat on every cycle:
        by ticket, by (ticket, repository), by status and by agent id.
        """
        with self._init_lock:
            if self._initialized:
                self._get_conn()
                return
            conn = self._get_conn()
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS job_runs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        ticket_key TEXT NOT NULL,
                        target_repository TEXT NOT NULL,
                        target_ref TEXT,
                        initiated_by TEXT NOT NULL,
                        assignee TEXT,
                        status TEXT NOT NULL,
                        agent_id TEXT,
                        pr_url TEXT,
                        pr_status TEXT,
                        pr_merged_at TIMESTAMP,
                        pr_closed_at TIMESTAMP,
                        created_at TIMESTAMP NOT NULL,
                        started_at TIMESTAMP,
                        completed_at TIMESTAMP,
                        updated_at TIMESTAMP NOT NULL,
                        error_message TEXT
                    )
                """)
                # Migration: add columns introduced after the first schema
                cursor = conn.execute("PRAGMA table_info(job_runs)")
                columns = [row[1] for row in cursor.fetchall()]
                if "agent_summary" not in columns:
                    conn.execute("ALTER TABLE job_runs ADD COLUMN agent_summary TEXT")
                if "metadata" not in columns:
                    conn.execute("ALTER TABLE job_runs ADD COLUMN metadata TEXT")

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_job_runs_ticket_key
                    ON job_runs (ticket_key)
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_job_runs_ticket_repo
                    ON job_runs (ticket_key, target_repository)
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_job_runs_status
                    ON job_runs (status)
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_job_runs_agent_id
                    ON job_runs (agent_id)
                """)
            self._initialized = True

    def _row_to_job_run(self, row: sqlite3.Row) -> JobRun:
        pr = None
        if row["pr_url"]:
            pr = PullRequestInfo(
                url=row["pr_url"],
                status=PullRequestStatus(row["pr_status"] or PullRequestStatus.OPEN.value),
                merged_at=_from_iso(row["pr_merged_at"]),
                closed_at=_from_iso(row["pr_closed_at"]),
            )
        return JobRun(
            id=row["id"],
            ticket_key=row["ticket_key"],
            target_repository=row["target_repository"],
            target_ref=row["target_ref"],
            initiated_by=row["initiated_by"],
            assignee=row["assignee"],
            status=JobRunStatus(row["status"]),
            agent_id=row["agent_id"],
            pr=pr,
            created_at=datetime.fromisoformat(row["created_at"]),
            started_at=_from_iso(row["started_at"]),
            completed_at=_from_iso(row["completed_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            error_message=row["error_message"],
            agent_summary=row["agent_summary"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )

    def _query(self, where: str, params: tuple[Any, ...], suffix: str = "") -> list[JobRun]:
        cursor = self._get_conn().execute(
            f"SELECT {_JOB_RUN_COLUMNS} FROM job_runs WHERE {where} {suffix}",
            params,
        )
        return [self._row_to_job_run(row) for row in cursor.fetchall()]

    def create(
        self,
        ticket_key: str,
        target_repository: str,
        initiated_by: str,
        assignee: str | None = None,
        target_ref: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> JobRun:
        """
        Insert a new PENDING job run.

        Args:
            ticket_key: Issue tracker key
            target_repository: Repository in 'org/repo' format
            initiated_by: Who applied the trigger label ("unknown" if not known)
            assignee: Ticket assignee email
            target_ref: Optional branch/ref override
            metadata: Free-form creation context

        Returns:
            The created JobRun with its id populated
        """
        now = _now()
        conn = self._get_conn()
        with conn:
            cursor = conn.execute(
                """
                INSERT INTO job_runs (
                    ticket_key, target_repository, target_ref, initiated_by, assignee,
                    status, created_at, updated_at, metadata
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ticket_key,
                    target_repository,
                    target_ref,
                    initiated_by,
                    assignee,
                    JobRunStatus.PENDING.value,
                    now.isoformat(),
                    now.isoformat(),
                    json.dumps(metadata or {}),
                ),
            )
            job_run_id = cursor.lastrowid

        logger.debug(f"Created job run {job_run_id} for {ticket_key} -> {target_repository}")
        return JobRun(
            id=job_run_id,
            ticket_key=ticket_key,
            target_repository=target_repository,
            target_ref=target_ref,
            initiated_by=initiated_by,
            assignee=assignee,
            status=JobRunStatus.PENDING,
            created_at=now,
            updated_at=now,
            metadata=dict(metadata or {}),
        )

    def get(self, job_run_id: int) -> JobRun | None:
        """Get a job run by id, or None if it doesn't exist."""
        runs = self._query("id = ?", (job_run_id,))
        return runs[0] if runs else None

    def find_active(self, ticket_key: str, target_repository: str) -> JobRun | None:
        """
        Find the pending or running job run for a ticket/repository pair.

        Args:
            ticket_key: Issue tracker key
            target_repository: Repository in 'org/repo' format

        Returns:
            The active JobRun, or None if the pair has no active record
        """
        runs = self._query(
            "ticket_key = ? AND target_repository = ? AND status IN (?, ?)",
            (
                ticket_key,
                target_repository,
                JobRunStatus.PENDING.value,
                JobRunStatus.RUNNING.value,
            ),
            "ORDER BY created_at DESC, id DESC LIMIT 1",
        )
        return runs[0] if runs else None

    def find_by_ticket_key(self, ticket_key: str) -> JobRun | None:
        """Most recent job run for a ticket regardless of target (single-target lookup)."""
        runs = self._query(
            "ticket_key = ?", (ticket_key,), "ORDER BY created_at DESC, id DESC LIMIT 1"
        )
        return runs[0] if runs else None

    def find_by_agent_id(self, agent_id: str) -> JobRun | None:
        """Find the job run correlated with an external agent id."""
        runs = self._query("agent_id = ?", (agent_id,), "LIMIT 1")
        return runs[0] if runs else None

    def list_for_ticket(self, ticket_key: str, limit: int = 50) -> list[JobRun]:
        """
        Get the job run history for a ticket, newest first.

        Args:
            ticket_key: Issue tracker key
            limit: Maximum number of records to return (default 50)
        """
        return self._query(
            "ticket_key = ?", (ticket_key, limit), "ORDER BY created_at DESC, id DESC LIMIT ?"
        )

    def find_running(self) -> list[JobRun]:
        """Get all RUNNING job runs, oldest first."""
        return self._query(
            "status = ?", (JobRunStatus.RUNNING.value,), "ORDER BY created_at ASC, id ASC"
        )

    def find_completed_with_open_pr(self) -> list[JobRun]:
        """Get COMPLETED job runs whose pull request is still open, oldest first."""
        return self._query(
            "status = ? AND pr_url IS NOT NULL AND pr_status = ?",
            (JobRunStatus.COMPLETED.value, PullRequestStatus.OPEN.value),
            "ORDER BY created_at ASC, id ASC",
        )

    def update(
        self,
        job_run_id: int,
        status: JobRunStatus | None = None,
        agent_id: str | None = None,
        pr: PullRequestInfo | None = None,
        error_message: str | None = None,
        agent_summary: str | None = None,
        target_ref: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> JobRun | None:
        """
        Partially update a job run. Only non-None fields are written.

        updated_at is always refreshed. started_at is stamped the first time
        the run enters RUNNING and completed_at the first time it enters a
        terminal status; neither is ever overwritten afterwards.

        Args:
            job_run_id: The job run ID
            status: New lifecycle status
            agent_id: External agent correlation id
            pr: Pull request info (replaces all pr_* columns)
            error_message: Failure reason
            agent_summary: Agent-reported summary
            target_ref: Resolved branch/ref
            metadata: Keys merged into the existing metadata

        Returns:
            The updated JobRun, or None if no record has that id
        """
        conn = self._get_conn()
        with conn:
            row = conn.execute(
                "SELECT started_at, completed_at, metadata FROM job_runs WHERE id = ?",
                (job_run_id,),
            ).fetchone()
            if row is None:
                logger.warning(f"Job run {job_run_id} not found for update")
                return None

            now = _now()
            # Build dynamic UPDATE query for non-None fields
            updates = ["updated_at = ?"]
            params: list[Any] = [now.isoformat()]

            if status is not None:
                updates.append("status = ?")
                params.append(status.value)
                if status == JobRunStatus.RUNNING and row["started_at"] is None:
                    updates.append("started_at = ?")
                    params.append(now.isoformat())
                if status.is_terminal and row["completed_at"] is None:
                    updates.append("completed_at = ?")
                    params.append(now.isoformat())
            if agent_id is not None:
                updates.append("agent_id = ?")
                params.append(agent_id)
            if pr is not None:
                updates.extend(
                    ["pr_url = ?", "pr_status = ?", "pr_merged_at = ?", "pr_closed_at = ?"]
                )
                params.extend(
                    [pr.url, pr.status.value, _to_iso(pr.merged_at), _to_iso(pr.closed_at)]
                )
            if error_message is not None:
                updates.append("error_message = ?")
                params.append(error_message)
            if agent_summary is not None:
                updates.append("agent_summary = ?")
                params.append(agent_summary)
            if target_ref is not None:
                updates.append("target_ref = ?")
                params.append(target_ref)
            if metadata is not None:
                merged = json.loads(row["metadata"]) if row["metadata"] else {}
                merged.update(metadata)
                updates.append("metadata = ?")
                params.append(json.dumps(merged))

            params.append(job_run_id)
            conn.execute(
                f"UPDATE job_runs SET {', '.join(updates)} WHERE id = ?",
                params,
            )

        return self.get(job_run_id)

    def close(self) -> None:
        """
        Close the current thread's database connection.

        Should be called when done with the store to free resources.
        Can also be used via context manager pattern.
        """
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None
            self._initialized = False
            logger.debug(f"Closed job run store at {self.db_path}")

    def __enter__(self) -> "JobRunStore":
        """Context manager entry point - acquires the connection."""
        return self.connect()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit point - ensures connection is closed."""
        self.close()
