# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Tests for session status pub/sub over Redis."""
import json

from copilot_hub.services.redis import SessionEventPublisher, SessionEventSubscriber


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages
        self.subscribed = []
        self.closed = False

    async def subscribe(self, channel):
        self.subscribed.append(channel)

    async def unsubscribe(self, channel):
        self.subscribed.remove(channel)

    async def aclose(self):
        self.closed = True

    async def listen(self):
        for message in self.messages:
            yield message


class FakeRedis:
    def __init__(self, messages=()):
        self.published = []
        self.pubsub_instance = FakePubSub(list(messages))

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 1

    def pubsub(self):
        return self.pubsub_instance


def message(status):
    return {"type": "message", "data": json.dumps({"session_id": "s1", "status": status})}


class TestPublisher:
    async def test_finalized_payload(self):
        redis_client = FakeRedis()

        await SessionEventPublisher(redis_client).publish_finalized("s1", "copilot", "ENDED", 3, 2)

        channel, payload = redis_client.published[0]
        assert channel == "session:status:s1"
        assert payload == {
            "session_id": "s1",
            "kind": "copilot",
            "status": "ENDED",
            "event": "finalized",
            "billable_minutes": 3,
            "charged_minutes": 2,
            "insufficient_credits": False,
        }

    async def test_swept_payload(self):
        redis_client = FakeRedis()
        await SessionEventPublisher(redis_client).publish_swept("m1", "meeting", "EXPIRED")
        assert redis_client.published[0][1]["event"] == "swept"


class TestSubscriber:
    async def test_stops_after_terminal_status(self):
        redis_client = FakeRedis(
            [
                {"type": "subscribe", "data": 1},
                message("IN_PROGRESS"),
                message("COMPLETED"),
                message("IN_PROGRESS"),
            ]
        )

        updates = [u async for u in SessionEventSubscriber(redis_client).subscribe_to_session("s1")]

        assert [u["status"] for u in updates] == ["IN_PROGRESS", "COMPLETED"]
        assert redis_client.pubsub_instance.subscribed == []
        assert redis_client.pubsub_instance.closed is True

    async def test_malformed_payloads_are_skipped(self):
        redis_client = FakeRedis(
            [
                {"type": "message", "data": "not json"},
                {"type": "message", "data": "[1, 2]"},
                message("ENDED"),
            ]
        )

        updates = [u async for u in SessionEventSubscriber(redis_client).subscribe_to_session("s1")]

        assert [u["status"] for u in updates] == ["ENDED"]
