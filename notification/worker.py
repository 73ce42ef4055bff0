#!/usr/bin/env python3
"""
RQ worker for queued marketplace notifications.

Usage:
    python -m notification.worker
"""

import logging
from typing import Optional

from redis import Redis
from rq import Worker

from core.config_loader import load_config

logger = logging.getLogger(__name__)


def start_worker(redis_url: str, queue_name: str = 'notifications', burst: bool = False) -> None:
    """Run an RQ worker on ``queue_name`` until stopped (or drained, with burst)."""
    logger.info(f"Starting RQ worker on queue {queue_name}")

    redis_conn = Redis.from_url(redis_url)
    redis_conn.ping()

    worker = Worker([queue_name], connection=redis_conn)
    worker.work(burst=burst)


def main(config_path: Optional[str] = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    config = load_config(config_path or "config.yaml")
    notifications = config.notifications
    start_worker(
        redis_url=notifications.redis_url or 'redis://localhost:6379/0',
        queue_name=notifications.queue_name
    )


if __name__ == "__main__":
    main()
