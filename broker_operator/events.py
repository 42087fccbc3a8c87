"""
Reconcile activity events on Redis Streams (optional — graceful degradation
if Redis is unavailable or REDIS_URL is unset).

  broker:events:<namespace>/<name>   per-Broker stream, capped at 100 entries
  broker:events                      pub/sub channel for all Brokers
"""
import json
import logging
from datetime import datetime, timezone

import redis

from broker_operator.config import settings

logger = logging.getLogger("events")

STREAM_MAXLEN = 100
CHANNEL = "broker:events"

_redis_client = None


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _get_redis():
    """Lazy-init Redis client. Returns None if unavailable."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    if not settings.REDIS_URL:
        return None
    try:
        _redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        _redis_client.ping()
        logger.info(f"Redis connected: {settings.REDIS_URL}")
        return _redis_client
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Redis unavailable (non-fatal): {e}")
        _redis_client = None
        return None


def publish_event(broker_key: str, event_type: str, message: str, step: str = ""):
    """Publish a reconcile event for dashboards and ops tooling."""
    r = _get_redis()
    if not r:
        return
    event = {
        "broker": broker_key,
        "type": event_type,
        "message": message,
        "step": step,
        "timestamp": _now(),
    }
    try:
        r.xadd(f"{CHANNEL}:{broker_key}", event, maxlen=STREAM_MAXLEN)
        r.publish(CHANNEL, json.dumps(event))
    except redis.RedisError as e:
        logger.debug(f"Redis publish failed (non-fatal): {e}")
