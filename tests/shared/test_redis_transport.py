"""Tests for the Redis Streams transport against a mocked client."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from shared.channel import Message, TransportError
from shared.channel.redis_adapter import RedisStreamTransport


@pytest.fixture()
def client():
    return AsyncMock()


@pytest.fixture()
def transport(client):
    return RedisStreamTransport("redis://localhost:6379/0", maxlen=1000, batch_size=2, client=client)


def _entry(entry_id, topic="sale.completed", **payload):
    message = Message(topic=topic, payload=payload, key="C-1")
    return entry_id, {"data": message.to_json()}


class TestSend:
    def test_appends_envelope_to_stream(self, transport, client):
        message = Message(topic="sale.completed", payload={"sale_id": "S-1"}, key="C-1")

        asyncio.run(transport.send(message))

        client.xadd.assert_awaited_once()
        args, kwargs = client.xadd.call_args
        assert args[0] == "sale.completed"
        envelope = json.loads(args[1]["data"])
        assert envelope["payload"] == {"sale_id": "S-1"}
        assert envelope["key"] == "C-1"
        assert envelope["message_id"] == message.message_id
        assert kwargs == {"maxlen": 1000, "approximate": True}

    def test_redis_errors_become_transport_errors(self, transport, client):
        client.xadd.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(TransportError):
            asyncio.run(transport.send(Message(topic="sale.completed", payload={})))

    def test_send_requires_connection(self):
        transport = RedisStreamTransport("redis://localhost:6379/0")

        with pytest.raises(TransportError):
            asyncio.run(transport.send(Message(topic="sale.completed", payload={})))


class TestConnect:
    def test_ping_failure(self, transport, client):
        client.ping.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(TransportError):
            asyncio.run(transport.connect())


class TestGroups:
    def test_creates_group_from_stream_start(self, transport, client):
        asyncio.run(transport.ensure_group("sale.completed", "customer-service"))

        client.xgroup_create.assert_awaited_once_with("sale.completed", "customer-service", id="0", mkstream=True)

    def test_existing_group_is_fine(self, transport, client):
        client.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")

        asyncio.run(transport.ensure_group("sale.completed", "customer-service"))

    def test_other_errors_surface(self, transport, client):
        client.xgroup_create.side_effect = ResponseError("WRONGTYPE Operation against a key")

        with pytest.raises(TransportError):
            asyncio.run(transport.ensure_group("sale.completed", "customer-service"))


class TestReceive:
    def test_drains_own_pending_entries_first(self, transport, client):
        client.xreadgroup.side_effect = [
            [["sale.completed", [_entry("1-0", sale_id="S-1")]]],
            [["sale.completed", [_entry("2-0", sale_id="S-2")]]],
        ]

        async def scenario():
            first = await transport.receive("sale.completed", "customer-service", "worker-1", 0.5)
            second = await transport.receive("sale.completed", "customer-service", "worker-1", 0.5)
            return first, second

        first, second = asyncio.run(scenario())

        assert [message.payload["sale_id"] for message in first] == ["S-1"]
        assert first[0].receipt == "1-0"
        assert [message.payload["sale_id"] for message in second] == ["S-2"]

        pending_call, new_call = client.xreadgroup.call_args_list
        assert pending_call.args[2] == {"sale.completed": "0"}
        assert pending_call.kwargs["block"] is None
        assert new_call.args[2] == {"sale.completed": ">"}
        assert new_call.kwargs["block"] == 500

    def test_keeps_draining_while_pending_batches_are_full(self, transport, client):
        client.xreadgroup.side_effect = [
            [["sale.completed", [_entry("1-0", n=1), _entry("2-0", n=2)]]],
            [],
        ]

        async def scenario():
            await transport.receive("sale.completed", "g", "c", 0.1)
            await transport.receive("sale.completed", "g", "c", 0.1)

        asyncio.run(scenario())

        assert [call.args[2] for call in client.xreadgroup.call_args_list] == [
            {"sale.completed": "0"},
            {"sale.completed": "2-0"},
        ]

    def test_replay_moves_past_returned_entries(self, transport, client):
        pending = [_entry("0-1", n=0), _entry("1-0", n=1), _entry("2-0", n=2)]

        async def xreadgroup(group, consumer, streams, count, block):
            cursor = streams["sale.completed"]
            if cursor == ">":
                return []
            after = [entry for entry in pending if cursor == "0" or entry[0] > cursor]
            return [["sale.completed", after[:count]]]

        client.xreadgroup.side_effect = xreadgroup

        async def scenario():
            batches = []
            for _ in range(3):
                batches.append(await transport.receive("sale.completed", "g", "c", 0.1))
            return batches

        batches = asyncio.run(scenario())

        assert [[message.receipt for message in batch] for batch in batches] == [["0-1", "1-0"], ["2-0"], []]
        assert client.xreadgroup.call_args_list[2].args[2] == {"sale.completed": ">"}

    def test_trimmed_pending_entries_are_acknowledged(self, transport, client):
        client.xreadgroup.return_value = [["sale.completed", [("1-0", {})]]]

        messages = asyncio.run(transport.receive("sale.completed", "g", "c", 0.1))

        assert messages == []
        client.xack.assert_awaited_once_with("sale.completed", "g", "1-0")

    def test_undecodable_entry_is_still_delivered(self, transport, client):
        client.xreadgroup.return_value = [["sale.completed", [("1-0", {"data": "not json"})]]]

        [message] = asyncio.run(transport.receive("sale.completed", "g", "c", 0.1))

        assert message.payload == {"raw": "not json"}
        assert "x-decode-error" in message.headers
        assert message.receipt == "1-0"

    def test_ack_uses_receipt(self, transport, client):
        message = Message(topic="sale.completed", payload={}, receipt="7-0")

        asyncio.run(transport.ack(message, "customer-service"))

        client.xack.assert_awaited_once_with("sale.completed", "customer-service", "7-0")
