"""
Refetch blocks with wrongly collated internal transactions.

Reads `blocks_to_invalidate_wrong_int_txs_collation` for block numbers that
were not corrected yet, removes consensus from those blocks so the block
fetcher imports them again, and marks the entries as corrected.
"""

from typing import Any, Callable, Dict, List, Tuple

import structlog
from sqlalchemy.orm import Session

from src.config import settings
from src.utils.exceptions import EnumerationError

from .batch_invalidator import BatchInvalidator
from .bootstrap_guard import BootstrapGuard, BootstrapStatus
from .buffered_task import BufferedTask, TaskOutcome
from .candidate_enumerator import CandidateEnumerator
from .retry_controller import RetryController

DEFAULTS: Dict[str, Any] = {
    "flush_interval": 3.0,
    "max_batch_size": 50,
    "max_concurrency": 2,
    "task_supervisor": "InternalTransactionsBlockNumber.TaskSupervisor",
    "metadata": {"fetcher": "internal_transactions_block_number"},
}


class InternalTransactionsBlockNumber:
    """Buffered task callback for the wrong collation correction"""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        retry_controller: RetryController = None,
        guard: BootstrapGuard = None,
    ):
        """
        Args:
            session_factory: Returns a new Session; one is opened per batch
            retry_controller: Defaults to one capped by settings.MAX_RETRIES
            guard: Classifies enumeration failures
        """
        self.session_factory = session_factory
        self.retry_controller = retry_controller or RetryController(settings.MAX_RETRIES)
        self.guard = guard or BootstrapGuard()
        self.logger = structlog.get_logger()

    def init(self, initial: Tuple[int, List[int]], reducer, state) -> Any:
        with self.session_factory() as db:
            enumerator = CandidateEnumerator(db)
            result = self.guard.run(lambda: enumerator.stream_reduce(initial, reducer))

        if result.status is BootstrapStatus.EMPTY:
            return initial
        if result.status is BootstrapStatus.FATAL:
            self.logger.error("Failed to enumerate control entries", error=str(result.error))
            raise EnumerationError(
                f"Failed to enumerate control entries: {result.error}"
            ) from result.error
        return result.accumulator

    def run(self, block_numbers: List[int], state) -> TaskOutcome:
        with self.session_factory() as db:
            invalidator = BatchInvalidator(db)
            return self.retry_controller.execute(
                block_numbers, lambda: invalidator.invalidate(block_numbers)
            )


def build_buffered_task(session_factory: Callable[[], Session], **init_options) -> BufferedTask:
    """
    Configure the buffered task running the correction.

    Options are merged over DEFAULTS and the FETCHER_* settings; state is
    always reset to an empty dict.

    Args:
        session_factory: Returns a new Session
        **init_options: Any BufferedTask option, plus retry_controller

    Returns:
        A BufferedTask ready to run()
    """
    options = dict(DEFAULTS)
    options.update(
        flush_interval=settings.FETCHER_FLUSH_INTERVAL,
        max_batch_size=settings.FETCHER_MAX_BATCH_SIZE,
        max_concurrency=settings.FETCHER_MAX_CONCURRENCY,
        task_supervisor=settings.FETCHER_TASK_SUPERVISOR,
    )
    options.update({k: v for k, v in init_options.items() if v is not None})
    options["state"] = {}

    retry_controller = options.pop("retry_controller", None)
    callback = InternalTransactionsBlockNumber(session_factory, retry_controller=retry_controller)
    return BufferedTask(callback, **options)
