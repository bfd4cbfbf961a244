"""
Shared client instances — Redis for circuit breaker state and the RQ queue.

redis.from_url() does not connect until the first command, so importing this
module is always safe (even when Redis is not running during tests).
"""
import redis

from skumatch.config import REDIS_URL

# ── Redis ─────────────────────────────────────────────────────────────────────
# decode_responses=True for breaker keys; RQ needs raw bytes (pickled payloads).
redis_client = redis.from_url(REDIS_URL, decode_responses=True)
queue_connection = redis.from_url(REDIS_URL)
