"""
Runnable script for the wrong collation block invalidation.
"""

import argparse
from src.main import main as run_invalidation


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Remove consensus from blocks with wrongly collated internal transactions"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--max-concurrency", type=int, help="Number of batches processed concurrently"
    )
    parser.add_argument(
        "--max-batch-size", type=int, help="Maximum block numbers per transaction"
    )
    args = parser.parse_args()

    run_invalidation(
        debug=args.debug,
        max_concurrency=args.max_concurrency,
        max_batch_size=args.max_batch_size,
    )
