"""
Main entry point for the wrong collation block invalidation.
"""

import structlog
from .database.connection import SessionLocal
from .services.internal_transactions_block_number import build_buffered_task
from .utils.logging import setup_logging
from .config import settings


def main(debug=False, max_concurrency=None, max_batch_size=None):
    """Main application entry point"""
    setup_logging("DEBUG" if debug else settings.LOG_LEVEL)

    logger = structlog.get_logger()
    logger.info(
        "Starting internal transactions block number invalidation",
        config=settings.model_dump(exclude={"DB_PASSWORD", "DATABASE_URL"}),
    )

    try:
        task = build_buffered_task(
            SessionLocal,
            max_concurrency=max_concurrency,
            max_batch_size=max_batch_size,
        )
        stats = task.run()
        logger.info(
            "Invalidation completed",
            enumerated=stats.enumerated,
            batches_succeeded=stats.batches_succeeded,
            retries=stats.retries,
        )
        return stats

    except Exception as e:
        logger.error("Unhandled exception", error=str(e))
        raise


if __name__ == "__main__":
    main()
