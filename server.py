# server.py: room relay. Clients create/join rooms by code; the relay forwards
# player state, projectiles and damage between room members. It simulates nothing.
import asyncio, argparse, logging, signal, uuid
from typing import Dict, Any, Optional

from common.net import STREAM_LIMIT, read_json, send_json
from common import protocol as proto
from common.rooms import RoomRelay, Outbound
from engine import config
from game.constants import DEFAULT_PORT

log = logging.getLogger("relay")


# ---------- Relay ----------
class RelayServer:
    def __init__(self, relay: Optional[RoomRelay] = None):
        self.relay = relay or RoomRelay()
        self.clients: Dict[str, asyncio.StreamWriter] = {}

    @staticmethod
    def new_player_id() -> str:
        return uuid.uuid4().hex[:8]

    async def deliver(self, outbound: Outbound):
        for pid, msg in outbound:
            w = self.clients.get(pid)
            if w is None or w.is_closing():
                continue
            try:
                await send_json(w, msg)
            except (ConnectionError, OSError) as e:
                log.warning("send to %s failed: %s", pid, e)

    # ---------- Networking ----------
    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        addr = writer.get_extra_info("peername")
        try:
            hello = await read_json(reader)
        except (ValueError, ConnectionError) as e:
            log.info("%s bad handshake: %s", addr, e)
            hello = {}
        if hello.get("type") != proto.HELLO:
            writer.close()
            await writer.wait_closed()
            return

        pid = self.new_player_id()
        while pid in self.clients:
            pid = self.new_player_id()
        self.clients[pid] = writer
        log.info("%s connected as %s (%s)", addr, pid, hello.get("name", "Player"))
        await send_json(writer, {"type": proto.WELCOME, "playerId": pid})

        try:
            while True:
                msg = await read_json(reader)
                if not msg:
                    break
                await self.deliver(self.relay.handle(pid, msg))
        except (ValueError, ConnectionError, OSError) as e:
            log.warning("client %s error: %s", pid, e)
        finally:
            self.clients.pop(pid, None)
            await self.deliver(self.relay.disconnect(pid))
            log.info("%s disconnected", pid)
            try:
                writer.close()
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass


# ---------- Entrypoint ----------
async def start_relay(host: str, port: int, relay: Optional[RoomRelay] = None):
    """Start listening; returns (RelayServer, asyncio.Server). Port 0 picks a free port."""
    server = RelayServer(relay)
    srv = await asyncio.start_server(server.handle_client, host, port, limit=STREAM_LIMIT)
    return server, srv


async def main_async(args):
    cfg = config.load(args.config)
    server_cfg: Dict[str, Any] = cfg.get("server", {})
    host = args.host or server_cfg.get("host", "0.0.0.0")
    port = int(args.port if args.port is not None else server_cfg.get("port", DEFAULT_PORT))

    _, srv = await start_relay(host, port)
    log.info("listening on %s:%d", host, port)

    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (getattr(signal, "SIGINT", None), getattr(signal, "SIGTERM", None)):
        if sig is not None:
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass  # e.g., Windows

    def _report_done(t: asyncio.Task):
        if t.cancelled():
            return
        exc = t.exception()
        if exc:
            log.error("task %s crashed: %r", t.get_name(), exc)
            stop.set()

    async with srv:
        tcp_task = asyncio.create_task(srv.serve_forever(), name="tcp_server")
        tcp_task.add_done_callback(_report_done)
        try:
            await stop.wait()          # run until a signal or the listener fails
        finally:
            tcp_task.cancel()
            await asyncio.gather(tcp_task, return_exceptions=True)


def main():
    ap = argparse.ArgumentParser(description="SpriteArena room relay")
    ap.add_argument("--config", default="configs/defaults.json")
    ap.add_argument("--host", default=None)
    ap.add_argument("--port", type=int, default=None)
    ap.add_argument("--log-level", default="INFO")
    args = ap.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="[%(name)s] %(message)s")
    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    main()
