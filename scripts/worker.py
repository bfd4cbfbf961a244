#!/usr/bin/env python3
"""
RQ worker for the 'match' queue.

Usage:
    python scripts/worker.py

Same as `rq worker match --url $REDIS_URL`, but with the app's logging setup
and circuit breakers registered before the first job runs.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rq import Queue, Worker

from skumatch.extensions import queue_connection, redis_client
from skumatch.logging_config import configure_logging
from skumatch.services.circuit_breaker import init_breakers


def main():
    configure_logging()
    init_breakers(redis_client)
    worker = Worker([Queue('match', connection=queue_connection)], connection=queue_connection)
    worker.work()


if __name__ == '__main__':
    main()
