#!/usr/bin/env python3
"""
Redis Queue (RQ) worker that runs similarity passes in the background.

Usage:
    python worker_rq.py
"""

import logging
import os
import sys
import time

from dotenv import load_dotenv
from rq import Queue, Worker

from jobs.redis_queue import QUEUE_NAME, get_redis_client

logger = logging.getLogger(__name__)


def main():
    """Main worker loop."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s'
    )
    # Include timestamp to avoid name conflicts on restart
    worker_id = os.environ.get("WORKER_ID", f"worker-{os.getpid()}-{int(time.time())}")
    logger.info(f"🚀 RQ Worker {worker_id} started")

    try:
        redis_client = get_redis_client()
        try:
            redis_client.ping()
            logger.info("✅ Connected to Redis successfully")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {e}")
            logger.error("   Make sure Redis is running and REDIS_URL is set correctly")
            sys.exit(1)

        queue = Queue(QUEUE_NAME, connection=redis_client)
        worker = Worker([queue], connection=redis_client, name=worker_id)
        logger.info(f"⏳ Listening for jobs on '{QUEUE_NAME}' queue...")
        worker.work()

    except KeyboardInterrupt:
        logger.info("🛑 Worker stopped by user")
    except Exception as e:
        logger.error(f"❌ Error starting worker: {e}")
        logger.debug("Worker startup failure", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
