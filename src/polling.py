"""Generic polling engine shared by the autopr services.

Each service is a small strategy object: build_query() says which candidates
to fetch, process_item() handles one candidate. execute_polling() runs the
fetch once and then processes the candidates strictly one after another.
Items are never processed in parallel; the tracker and agent APIs are rate
limited and every item makes several calls to them.

Outcome classification:
- fetch failure: the whole batch fails and the exception propagates
- item raised: recorded as errored, the batch continues
- item skipped: normal operation (validation failures, transient API errors)
"""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

from src.config import Config
from src.database import JobRunStore
from src.logger import clear_ticket_context, get_logger, set_ticket_context
from src.telemetry import get_tracer, record_polling_metrics

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class Query(Generic[T]):
    """A candidate query: a description for logs and the callable that runs it."""

    description: str
    fetch: Callable[[], Sequence[T]]


@dataclass
class ItemResult:
    """Outcome of processing one candidate.

    Attributes:
        key: Identifier of the item (ticket key, job run id)
        success: False when the item failed with a system error
        skipped: True when the item was deliberately left for later or for a human
        skip_reason: Why the item was skipped
        error: Error message when success is False
        partial_failures: Errors of sub-units that failed while the item as a
            whole has its own outcome (e.g. one launch of several failing).
            Each one is counted as errored.
    """

    key: str
    success: bool
    skipped: bool = False
    skip_reason: str | None = None
    error: str | None = None
    partial_failures: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, key: str) -> "ItemResult":
        return cls(key=key, success=True)

    @classmethod
    def skip(cls, key: str, reason: str) -> "ItemResult":
        return cls(key=key, success=True, skipped=True, skip_reason=reason)

    @classmethod
    def failed(cls, key: str, error: str) -> "ItemResult":
        return cls(key=key, success=False, error=error)


@dataclass
class PollingResult:
    """Aggregated counts for one polling batch."""

    found: int = 0
    processed: int = 0
    skipped: int = 0
    errored: int = 0
    results: list[ItemResult] = field(default_factory=list)

    def add(self, result: ItemResult) -> None:
        self.results.append(result)
        if result.skipped:
            self.skipped += 1
        elif result.success:
            self.processed += 1
        else:
            self.errored += 1
        self.errored += len(result.partial_failures)


class PollingStrategy(Protocol[T]):
    """What a polling service supplies to the engine."""

    name: str

    def build_query(self) -> Query[T]: ...

    def item_key(self, item: T) -> str: ...

    def process_item(self, item: T) -> ItemResult: ...


def execute_polling(strategy: PollingStrategy[T]) -> PollingResult:
    """Fetch candidates once and process them sequentially.

    Args:
        strategy: The service's query and per-item processor

    Returns:
        Aggregated PollingResult

    Raises:
        Exception: Whatever the candidate query raised; no partial result exists
    """
    tracer = get_tracer()
    started = time.monotonic()
    result = PollingResult()

    with tracer.start_as_current_span(f"polling.{strategy.name}") as span:
        query = strategy.build_query()
        logger.debug(f"Fetching candidates for {strategy.name}: {query.description}")
        try:
            items = list(query.fetch())
        except Exception:
            logger.error(f"Polling run for {strategy.name} failed while fetching candidates")
            raise

        result.found = len(items)
        if not items:
            logger.info(f"No items found for {strategy.name}")
        else:
            logger.info(f"Found {len(items)} item(s) for {strategy.name}")

        # Intentionally sequential: one item completes before the next starts
        for item in items:
            key = strategy.item_key(item)
            set_ticket_context(key)
            try:
                item_result = strategy.process_item(item)
            except Exception as e:
                logger.exception(f"Unexpected error processing {key}")
                item_result = ItemResult.failed(key, str(e) or type(e).__name__)
            finally:
                clear_ticket_context()
            result.add(item_result)

        span.set_attribute("polling.found", result.found)
        span.set_attribute("polling.processed", result.processed)
        span.set_attribute("polling.skipped", result.skipped)
        span.set_attribute("polling.errored", result.errored)

    duration_ms = (time.monotonic() - started) * 1000
    record_polling_metrics(
        strategy.name, result.processed, result.skipped, result.errored, duration_ms
    )
    logger.info(
        f"Completed {strategy.name} polling run: found={result.found}, "
        f"processed={result.processed}, skipped={result.skipped}, errored={result.errored}"
    )
    return result


def run_as_job(strategy: PollingStrategy[T], store: JobRunStore, config: Config) -> int:
    """Run one scheduled polling invocation.

    Validates configuration before touching the store, holds the store
    connection only for the duration of the batch, and reports failure only
    for system errors. Skipped items never affect the exit code.

    Args:
        strategy: The polling service
        store: Job run store, connected and closed around the batch
        config: Configuration validated before the batch

    Returns:
        Process exit code: 0 on success, 1 on configuration or system errors

    Raises:
        Exception: If fetching candidates fails (the store is still closed)
    """
    logger.info(f"Starting {strategy.name} job")
    try:
        config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    with store:
        result = execute_polling(strategy)

    if result.errored > 0:
        logger.error(f"{strategy.name} completed with {result.errored} system error(s)")
        return 1
    return 0
