"""
Tests for BatchInvalidator.

Tests cover:
- Consensus removal and control entry marking
- Lock clauses and lock order of both locking queries
- Rollback of both updates on failure
"""

from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from src.models.block import Block
from src.services.batch_invalidator import (
    BatchInvalidator,
    locked_blocks_query,
    locked_control_entries_query,
)


def compile_pg(query):
    return str(query.compile(dialect=postgresql.dialect()))


class TestLockOrder:
    """The lock order is shared with every other writer of these tables"""

    def test_blocks_locked_by_hash_ascending(self):
        sql = compile_pg(locked_blocks_query([1, 2]))

        assert "ORDER BY blocks.hash ASC" in sql
        assert sql.rstrip().endswith("FOR UPDATE")
        assert "blocks.number IN" in sql

    def test_control_entries_locked_by_block_number_descending(self):
        sql = compile_pg(locked_control_entries_query([1, 2]))

        assert "ORDER BY blocks_to_invalidate_wrong_int_txs_collation.block_number DESC" in sql
        assert sql.rstrip().endswith("FOR UPDATE")

    def test_blocks_locked_before_control_entries(self, seed, db_session):
        seed(blocks=[(10, True)], entries=[(10, None)])
        invalidator = BatchInvalidator(db_session)
        calls = []

        original_blocks = invalidator._remove_block_consensus
        original_entries = invalidator._mark_corrected

        def blocks(numbers):
            calls.append("blocks")
            return original_blocks(numbers)

        def entries(numbers):
            calls.append("entries")
            return original_entries(numbers)

        with patch.object(invalidator, "_remove_block_consensus", side_effect=blocks), patch.object(
            invalidator, "_mark_corrected", side_effect=entries
        ):
            invalidator.invalidate([10])

        assert calls == ["blocks", "entries"]


class TestBatchInvalidator:
    """Test BatchInvalidator functionality"""

    def test_invalidates_batch(self, seed, snapshot, db_session):
        seed(
            blocks=[(100, True), (101, True), (102, True)],
            entries=[(100, None), (101, False), (102, None)],
        )

        corrected = BatchInvalidator(db_session).invalidate([100, 101])

        blocks, entries = snapshot()
        assert corrected == 2
        assert blocks == {100: False, 101: False, 102: True}
        assert entries == {100: True, 101: True, 102: None}

    def test_all_blocks_at_height_lose_consensus(self, seed, session_factory, db_session):
        seed(blocks=[(50, True, 0), (50, False, 1), (51, True)], entries=[(50, None)])

        BatchInvalidator(db_session).invalidate([50])

        with session_factory() as db:
            rows = db.execute(select(Block.number, Block.consensus).order_by(Block.hash)).all()
        assert [tuple(row) for row in rows] == [(50, False), (51, True), (50, False)]

    def test_duplicates_and_gaps(self, seed, snapshot, db_session):
        seed(blocks=[(7, True)], entries=[(7, None)])

        corrected = BatchInvalidator(db_session).invalidate([7, 7, 8, 9])

        blocks, entries = snapshot()
        assert corrected == 1
        assert blocks == {7: False}
        assert entries == {7: True}

    def test_entry_without_block_is_marked(self, seed, snapshot, db_session):
        seed(entries=[(500, None)])

        assert BatchInvalidator(db_session).invalidate([500]) == 1
        assert snapshot()[1] == {500: True}

    def test_failure_rolls_back_block_update(self, seed, snapshot, db_session):
        seed(blocks=[(100, True)], entries=[(100, None)])
        invalidator = BatchInvalidator(db_session)
        error = OperationalError("UPDATE", {}, Exception("lock timeout"))

        with patch.object(invalidator, "_mark_corrected", side_effect=error):
            with pytest.raises(OperationalError):
                invalidator.invalidate([100])

        blocks, entries = snapshot()
        assert blocks == {100: True}
        assert entries == {100: None}
