"""Stream pending control entries into the batch engine's reducer."""

from typing import Any, Callable

import structlog
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from src.config import settings
from src.models.control_entry import ControlEntry


def pending_block_numbers_query():
    return (
        select(ControlEntry.block_number)
        .where(or_(ControlEntry.corrected.is_(None), ControlEntry.corrected.is_(False)))
        # most recent suspect blocks first
        .order_by(ControlEntry.block_number.desc())
    )


class CandidateEnumerator:
    """Enumerate block numbers whose control entry is not corrected yet"""

    def __init__(self, db_session: Session, chunk_size: int = None):
        self.db = db_session
        self.chunk_size = chunk_size or settings.FETCHER_STREAM_CHUNK_SIZE
        self.logger = structlog.get_logger()

    def stream_reduce(self, initial: Any, reducer: Callable[[int, Any], Any]) -> Any:
        """
        Fold every pending block number into an accumulator.

        Rows are fetched through a server-side cursor, so the control table
        is never loaded in full.

        Args:
            initial: Starting accumulator
            reducer: Called as reducer(block_number, accumulator)

        Returns:
            The final accumulator
        """
        accumulator = initial
        count = 0

        result = self.db.execute(
            pending_block_numbers_query().execution_options(yield_per=self.chunk_size)
        )
        for block_number in result.scalars():
            accumulator = reducer(block_number, accumulator)
            count += 1

        self.logger.info("Enumerated pending control entries", count=count)
        return accumulator
