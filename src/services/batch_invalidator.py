"""
Batch invalidation of blocks with wrongly collated internal transactions.

Lock order is global and must not change:
    1. blocks rows, FOR UPDATE, ordered by hash ascending
    2. control rows, FOR UPDATE, ordered by block_number descending
Every writer of these tables, here and in the rest of the indexer, takes
its locks in this order.
"""

from typing import List, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.models.block import Block
from src.models.control_entry import ControlEntry


def locked_blocks_query(block_numbers: Sequence[int]):
    return (
        select(Block.hash)
        .where(Block.number.in_(block_numbers))
        .order_by(Block.hash.asc())
        .with_for_update()
    )


def locked_control_entries_query(block_numbers: Sequence[int]):
    return (
        select(ControlEntry.block_number)
        .where(ControlEntry.block_number.in_(block_numbers))
        .order_by(ControlEntry.block_number.desc())
        .with_for_update()
    )


class BatchInvalidator:
    """Remove consensus from a batch of blocks and mark their control entries"""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.logger = structlog.get_logger()

    def invalidate(self, block_numbers: Sequence[int]) -> int:
        """
        Run one atomic invalidation for a batch.

        Both updates commit together or not at all. Storage errors are raised
        unchanged after the transaction has been rolled back.

        Args:
            block_numbers: Heights to invalidate; duplicates are allowed

        Returns:
            Number of control entries marked corrected
        """
        with self.db.begin():
            demoted = self._remove_block_consensus(block_numbers)
            corrected = self._mark_corrected(block_numbers)

        self.logger.debug(
            "Invalidated batch",
            block_numbers=list(block_numbers),
            demoted_blocks=demoted,
            corrected_entries=corrected,
        )
        return corrected

    def _remove_block_consensus(self, block_numbers: Sequence[int]) -> int:
        hashes: List[bytes] = list(
            self.db.execute(locked_blocks_query(block_numbers)).scalars()
        )
        if not hashes:
            return 0

        result = self.db.execute(
            update(Block)
            .where(Block.hash.in_(hashes))
            .values(consensus=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _mark_corrected(self, block_numbers: Sequence[int]) -> int:
        locked = list(
            self.db.execute(locked_control_entries_query(block_numbers)).scalars()
        )
        if not locked:
            return 0

        result = self.db.execute(
            update(ControlEntry)
            .where(ControlEntry.block_number.in_(locked))
            .values({ControlEntry.corrected: True})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
