"""Progress event channel between job loops and subscribers."""
import json
import logging
from typing import Any, Protocol

import redis

logger = logging.getLogger(__name__)


def import_topic(job_id: str) -> str:
    return f"import:{job_id}"


def export_topic(export_id: str) -> str:
    return f"export:{export_id}"


class ProgressChannel(Protocol):
    """Anything a job loop can publish snapshots to."""

    def publish(self, topic: str, event: dict[str, Any]) -> None: ...


class RedisProgressChannel:
    """Publishes snapshots to Redis pub/sub for SSE streaming."""

    def __init__(self, redis_url: str) -> None:
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    def publish(self, topic: str, event: dict[str, Any]) -> None:
        try:
            self._client.publish(topic, json.dumps(event, default=str))
        except redis.RedisError as e:
            # Subscribers can still poll the job record
            logger.warning(f"Failed to publish progress on {topic}: {e}")
