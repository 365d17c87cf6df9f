"""
Bootstrap guard for candidate enumeration.

A control table that was never created means there is nothing to correct.
Any other storage failure while reading it is fatal.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import structlog
from psycopg2 import errorcodes
from sqlalchemy.exc import DBAPIError


class BootstrapStatus(Enum):

    COMPLETED = "completed"
    EMPTY = "empty"
    FATAL = "fatal"


@dataclass
class BootstrapResult:

    status: BootstrapStatus
    accumulator: Any = None
    error: Optional[Exception] = None


def is_undefined_table(error: Exception) -> bool:
    """
    Check whether a storage error reports a missing relation.

    Args:
        error: Exception raised by the storage layer

    Returns:
        True for PostgreSQL SQLSTATE 42P01 or SQLite "no such table"
    """
    if not isinstance(error, DBAPIError):
        return False

    orig = error.orig
    if getattr(orig, "pgcode", None) == errorcodes.UNDEFINED_TABLE:
        return True

    return "no such table" in str(orig)


class BootstrapGuard:
    """Classify the outcome of reading the control table"""

    def __init__(self):
        self.logger = structlog.get_logger()

    def classify(self, error: Exception) -> BootstrapResult:
        if is_undefined_table(error):
            self.logger.info("Control table does not exist, nothing to invalidate")
            return BootstrapResult(BootstrapStatus.EMPTY)
        return BootstrapResult(BootstrapStatus.FATAL, error=error)

    def run(self, enumerate_fn: Callable[[], Any]) -> BootstrapResult:
        """
        Run the enumeration and map storage errors to a result.

        Args:
            enumerate_fn: Zero-argument callable returning the final accumulator

        Returns:
            BootstrapResult carrying the accumulator, or the classified error
        """
        try:
            accumulator = enumerate_fn()
        except DBAPIError as e:
            return self.classify(e)
        return BootstrapResult(BootstrapStatus.COMPLETED, accumulator=accumulator)
