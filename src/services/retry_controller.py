"""
Retry handling for batch invalidation.

Decides what happens to a batch after its transaction: done, or handed back
to the batch engine in full for another attempt.
"""

import threading
from collections import Counter
from typing import Any, Callable, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from src.utils.exceptions import RetriesExhaustedError

from .buffered_task import TaskOutcome


class RetryController:
    """Run batch transactions and turn storage failures into retries"""

    def __init__(self, max_retries: Optional[int] = None):
        """
        Initialize the retry controller.

        Args:
            max_retries: Failures tolerated per block number before giving up;
                None retries forever and leaves pacing to the batch engine
        """
        self.max_retries = max_retries
        self.logger = structlog.get_logger()
        self._failures = Counter()
        self._lock = threading.Lock()

    def execute(self, block_numbers: Sequence[int], transaction: Callable[[], Any]) -> TaskOutcome:
        """
        Run a batch transaction and interpret its outcome.

        Args:
            block_numbers: The batch as received from the batch engine
            transaction: Zero-argument callable performing the atomic work

        Returns:
            TaskOutcome.ok with the transaction result, or a retry carrying
            the whole original batch
        """
        try:
            result = transaction()
        except SQLAlchemyError as e:
            return self.handle_failure(block_numbers, e)

        self._forget(block_numbers)
        return TaskOutcome.ok(result)

    def handle_failure(self, block_numbers: Sequence[int], error: Exception) -> TaskOutcome:
        self.logger.error(
            "Error while handling internal_transactions with wrong block number",
            error=str(error),
            error_type=type(error).__name__,
            block_numbers=list(block_numbers),
        )

        if not self.should_retry(block_numbers):
            raise RetriesExhaustedError(
                f"Giving up on batch after {self.max_retries} retries: {error}",
                block_numbers=block_numbers,
            ) from error

        return TaskOutcome.retry_with(block_numbers)

    def should_retry(self, block_numbers: Sequence[int]) -> bool:
        """
        Record one failure for every block number in the batch.

        Args:
            block_numbers: The failed batch

        Returns:
            False once any block number failed more than max_retries times
        """
        if self.max_retries is None:
            return True

        with self._lock:
            self._failures.update(set(block_numbers))
            return all(self._failures[n] <= self.max_retries for n in block_numbers)

    def _forget(self, block_numbers: Sequence[int]) -> None:
        with self._lock:
            for n in block_numbers:
                self._failures.pop(n, None)
