"""
Worker entry point.

Usage: python -m app.workers <worker_name>
"""
import asyncio
import sys
import logging

from app.core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

WORKERS = ("receipts",)


def main():
    """Run the worker named on the command line."""
    if len(sys.argv) < 2:
        print("Usage: python -m app.workers <worker_name>")
        print(f"Available workers: {', '.join(WORKERS)}")
        sys.exit(1)

    worker_name = sys.argv[1]

    if worker_name == "receipts":
        from app.workers.receipt_worker import consume_receipts
        logger.info("Starting receipt worker...")
        asyncio.run(consume_receipts())
    else:
        logger.error(f"Unknown worker: {worker_name}")
        sys.exit(1)


if __name__ == "__main__":
    main()
