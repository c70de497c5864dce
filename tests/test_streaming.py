"""Tests for the SSE bridge over Redis pub/sub."""
import asyncio
import json
from types import SimpleNamespace

import record_transfer.api.streaming as streaming


class FakePubSub:
    def __init__(self, log, messages):
        self.log = log
        self.messages = list(messages)

    async def subscribe(self, topic):
        self.log.append(("subscribe", topic))

    async def unsubscribe(self, topic):
        self.log.append(("unsubscribe", topic))

    async def get_message(self, ignore_subscribe_messages=False, timeout=None):
        if self.messages:
            return {"type": "message", "data": json.dumps(self.messages.pop(0))}
        return None


class FakeRedis:
    def __init__(self, log, messages):
        self.log = log
        self.messages = messages

    def pubsub(self):
        return FakePubSub(self.log, self.messages)

    async def aclose(self):
        self.log.append(("close",))


def _use_fake_redis(monkeypatch, log, messages=()):
    fake = SimpleNamespace(from_url=lambda url, **kwargs: FakeRedis(log, messages))
    monkeypatch.setattr(streaming, "aioredis", SimpleNamespace(Redis=fake))


def _collect(response):
    async def consume():
        return [chunk async for chunk in response.body_iterator]

    return asyncio.run(consume())


def test_snapshot_read_after_subscribing(monkeypatch):
    """Test an update published while the snapshot loads is not lost."""
    log = []
    _use_fake_redis(monkeypatch, log)

    def load_snapshot():
        log.append(("load",))
        return {"status": "completed", "progress": 100}

    events = _collect(streaming.sse_response("import:imp-1", load_snapshot, ("completed",)))

    assert log[:2] == [("subscribe", "import:imp-1"), ("load",)]
    assert log[-2:] == [("unsubscribe", "import:imp-1"), ("close",)]
    assert events == [f"data: {json.dumps({'status': 'completed', 'progress': 100})}\n\n"]


def test_stream_ends_on_terminal_update(monkeypatch):
    log = []
    updates = [{"status": "processing", "progress": 50}, {"status": "failed", "progress": 50}]
    _use_fake_redis(monkeypatch, log, updates)

    events = _collect(
        streaming.sse_response(
            "export:exp-1", lambda: {"status": "processing", "progress": 0}, ("completed", "failed")
        )
    )

    statuses = [json.loads(e[len("data: "):])["status"] for e in events]
    assert statuses == ["processing", "processing", "failed"]
    assert ("close",) in log
