import asyncio
import time

from common import protocol as proto
from common.net import read_json, send_json
from common.transport import AsyncRunner, TcpTransport
from game.session import ConnectionState, SessionManager
from server import RelayServer, start_relay


async def _client(port, name="Player"):
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await send_json(writer, {"type": proto.HELLO, "name": name})
    welcome = await asyncio.wait_for(read_json(reader), 2.0)
    assert welcome["type"] == proto.WELCOME
    return reader, writer, welcome["playerId"]


async def _next(reader):
    return await asyncio.wait_for(read_json(reader), 2.0)


def test_player_ids_are_short_hex():
    pid = RelayServer.new_player_id()
    assert len(pid) == 8
    int(pid, 16)


def test_relay_over_tcp():
    async def scenario():
        server, srv = await start_relay("127.0.0.1", 0)
        port = srv.sockets[0].getsockname()[1]
        async with srv:
            ra, wa, a_id = await _client(port, "Ada")
            rb, wb, b_id = await _client(port, "Bea")
            assert a_id != b_id

            await send_json(wa, {"type": proto.CREATE_ROOM, "ack": 1, "gameState": {"characterName": "lucy"}})
            created = await _next(ra)
            assert created["success"] and created["ack"] == 1

            await send_json(wb, {"type": proto.JOIN_ROOM, "ack": 1, "roomCode": created["roomCode"]})
            joined = await _next(rb)
            assert joined["existingPlayers"][0]["playerId"] == a_id
            assert (await _next(ra)) == {"type": proto.PLAYER_JOINED, "playerId": b_id, "gameState": {}}

            await send_json(wa, {"type": proto.PLAYER_STATE, "x": 1, "y": 0.6, "z": 0})
            relayed = await _next(rb)
            assert relayed["playerId"] == a_id
            assert relayed["state"]["x"] == 1

            wa.close()
            assert (await _next(rb)) == {"type": proto.PLAYER_LEFT, "playerId": a_id}
            wb.close()
            for _ in range(50):
                if not server.clients:
                    break
                await asyncio.sleep(0.02)
            assert server.clients == {}

    asyncio.run(scenario())


def test_handshake_is_required():
    async def scenario():
        server, srv = await start_relay("127.0.0.1", 0)
        port = srv.sockets[0].getsockname()[1]
        async with srv:
            reader, writer = await asyncio.open_connection("127.0.0.1", port)
            await send_json(writer, {"type": proto.CREATE_ROOM, "ack": 1})
            reply = await _next(reader)
            writer.close()
        return reply, server.clients

    reply, clients = asyncio.run(scenario())
    assert reply == {}
    assert clients == {}


def _wait_until(pred, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return False


def test_sessions_over_tcp_transport():
    runner = AsyncRunner()
    _, srv = runner.run_coro(start_relay("127.0.0.1", 0)).result(timeout=2)
    port = srv.sockets[0].getsockname()[1]
    a = SessionManager(TcpTransport("127.0.0.1", port, name="Ada", runner=runner))
    b = SessionManager(TcpTransport("127.0.0.1", port, name="Bea", runner=runner))
    try:
        a.connect()
        b.connect()
        assert _wait_until(lambda: a.state is ConnectionState.CONNECTED and b.state is ConnectionState.CONNECTED)

        code = a.create_room({"characterName": "lucy"}).result(timeout=2)
        b.join_room(code, {"characterName": "herald"}).result(timeout=2)

        events = []
        assert _wait_until(lambda: events.extend(a.drain()) or events)
        assert events[0].kind == proto.PLAYER_JOINED
        assert events[0].player_id == b.local_id
        assert a.peers[b.local_id].character == "herald"
    finally:
        a.disconnect()
        b.disconnect()
        runner.loop.call_soon_threadsafe(srv.close)
        runner.stop()
