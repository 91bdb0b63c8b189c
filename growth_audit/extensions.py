"""
Shared client instances — Redis.

redis-py connects on first command, so importing this module is always safe
(even when Redis is not running during tests).
"""
import redis

from growth_audit.config import REDIS_URL

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)
