import asyncio
import dataclasses
import socket

import pytest
from aiohttp import WSMsgType

from lanplay_launcher.channel import ControlChannel
from lanplay_launcher.exceptions import PortInUseError

from .conftest import RELAY


@pytest.fixture
def channel(context):
    return ControlChannel(context)


@pytest.fixture
async def client(aiohttp_client, channel):
    return await aiohttp_client(channel.build_app())


def expected_status(running=False):
    return {
        "type": "status",
        "data": {"running": running, "relay": RELAY, "platform": "linux", "version": "0.2.3"},
    }


class TestConnect:

    async def test_status_sent_on_connect(self, client, context, fake_time):
        fake_time.advance(30)
        ws = await client.ws_connect("/")
        assert await ws.receive_json() == expected_status()
        assert len(context.connections) == 1
        assert context.clock.last_activity_at == fake_time.value
        await ws.close()

    async def test_disconnect_removes_connection(self, client, context):
        ws = await client.ws_connect("/")
        await ws.receive_json()
        await ws.close()
        await asyncio.sleep(0.05)
        assert context.connections == set()

    @pytest.mark.parametrize("header", ["X-Forwarded-For", "Forwarded"])
    async def test_forwarded_connection_rejected(self, client, context, fake_time, header):
        before = context.clock.last_activity_at
        fake_time.advance(60)

        ws = await client.ws_connect("/", headers={header: "203.0.113.7"})
        msg = await ws.receive()

        assert msg.type == WSMsgType.CLOSE
        assert ws.close_code == 4003
        assert context.connections == set()
        assert context.clock.last_activity_at == before

    async def test_plain_get_on_root_is_404(self, client):
        resp = await client.get("/")
        assert resp.status == 404


class TestMessages:

    async def test_heartbeat_is_acknowledged(self, client, context, fake_time):
        ws = await client.ws_connect("/")
        await ws.receive_json()
        fake_time.advance(4)

        await ws.send_json({"type": "heartbeat"})
        assert await ws.receive_json() == {"type": "heartbeat-ack"}
        assert context.clock.ever_received_heartbeat is True
        assert context.clock.last_heartbeat_at == fake_time.value
        await ws.close()

    async def test_status_request(self, client, context):
        ws = await client.ws_connect("/")
        await ws.receive_json()
        context.process.running = True

        await ws.send_json({"type": "status"})
        assert await ws.receive_json() == expected_status(running=True)
        await ws.close()

    async def test_malformed_messages_are_dropped(self, client, context, fake_time):
        ws = await client.ws_connect("/")
        await ws.receive_json()
        fake_time.advance(8)

        await ws.send_str("this is not json")
        await ws.send_str("[1, 2, 3]")
        await ws.send_json({"type": "launch-missiles"})
        await ws.send_json({"type": "heartbeat"})

        # the first reply is the ack: nothing was sent for the junk
        assert await ws.receive_json() == {"type": "heartbeat-ack"}
        assert context.clock.last_activity_at == fake_time.value
        assert len(context.connections) == 1
        await ws.close()

    async def test_unrecognized_message_counts_as_activity_only(self, client, context, fake_time):
        ws = await client.ws_connect("/")
        await ws.receive_json()
        fake_time.advance(8)

        await ws.send_str("{broken")
        await ws.send_json({"type": "status"})
        await ws.receive_json()
        assert context.clock.last_activity_at == fake_time.value
        assert context.clock.ever_received_heartbeat is False
        await ws.close()


class TestBroadcast:

    async def test_status_fans_out_to_every_connection(self, client, channel, context):
        first = await client.ws_connect("/")
        second = await client.ws_connect("/")
        await first.receive_json()
        await second.receive_json()

        context.process.running = True
        await channel.broadcast_status()

        assert await first.receive_json() == expected_status(running=True)
        assert await second.receive_json() == expected_status(running=True)
        await first.close()
        await second.close()

    async def test_closed_connections_are_skipped(self, channel, context):
        class Closed:
            closed = True

            async def send_json(self, data):
                pytest.fail("must not send to a closed connection")

        context.connections.add(Closed())
        await channel.broadcast_status()

    async def test_close_all_announces_shutdown(self, client, channel, context):
        ws = await client.ws_connect("/")
        await ws.receive_json()

        closing = asyncio.create_task(channel.close_all("timeout"))
        assert await ws.receive_json() == {"type": "shutdown", "reason": "timeout"}
        msg = await ws.receive()
        assert msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSED)
        await closing
        assert context.connections == set()


class TestHealth:

    async def test_health_reports_status(self, client, context):
        context.process.running = True
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == expected_status(running=True)["data"]

    async def test_health_allows_cross_origin(self, client):
        resp = await client.get("/health", headers={"Origin": "https://bridge.example.com"})
        assert resp.status == 200
        assert resp.headers.get("Access-Control-Allow-Origin") in ("*", "https://bridge.example.com")


class TestBind:

    async def test_port_in_use(self, context):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen()
            port = blocker.getsockname()[1]
            context.config = dataclasses.replace(context.config, port=port)

            with pytest.raises(PortInUseError):
                await ControlChannel(context).start()
