"""
RQ Worker bootstrap
"""

from rq import Queue, Worker

from escrow_core.infrastructure.logging_config import setup_logging
from escrow_core.infrastructure.redis_client import get_redis
from escrow_core.infrastructure.settings import get_settings
from escrow_core.workers import jobs  # noqa: F401  (import jobs so RQ can resolve them)

settings = get_settings()
listen = [settings.NOTIFICATIONS_QUEUE, "default"]

if __name__ == "__main__":
    setup_logging()
    redis_conn = get_redis()
    worker = Worker([Queue(name, connection=redis_conn) for name in listen], connection=redis_conn)
    worker.work()
