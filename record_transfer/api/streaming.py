"""Server-Sent Events bridge from the Redis progress channel."""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable

import redis
import redis.asyncio as aioredis
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from record_transfer.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def sse_response(
    topic: str,
    load_snapshot: Callable[[], dict[str, Any]],
    terminal_statuses: tuple[str, ...],
) -> StreamingResponse:
    """
    Stream job snapshots as SSE until the job reaches a terminal status.

    The current snapshot is read only after subscribing, so an update
    published in between is delivered on the channel instead of lost.
    """

    async def event_generator() -> AsyncIterator[str]:
        client = aioredis.Redis.from_url(settings.redis_url, decode_responses=True)
        pubsub = client.pubsub()
        await pubsub.subscribe(topic)
        try:
            snapshot = await run_in_threadpool(load_snapshot)
            yield f"data: {json.dumps(snapshot)}\n\n"
            if snapshot.get("status") in terminal_statuses:
                return

            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message["type"] == "message":
                    data = json.loads(message["data"])
                    yield f"data: {json.dumps(data)}\n\n"
                    if data.get("status") in terminal_statuses:
                        break
                await asyncio.sleep(0.1)
        except redis.RedisError as e:
            logger.warning(f"SSE stream error on {topic}: {e}")
            yield f"data: {json.dumps({'status': 'error', 'error': 'Stream error'})}\n\n"
        finally:
            await pubsub.unsubscribe(topic)
            await client.aclose()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
