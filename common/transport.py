# common/transport.py
"""Message channels used by the client session.

A Transport delivers dict messages in order and reports link status through
two callbacks. Callbacks may fire on a background thread; receivers must
hand work to their own thread (SessionManager queues it into an inbox).
"""
from __future__ import annotations

import asyncio
import copy
import itertools
import json
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional

from game.constants import RECONNECT_BASE, RECONNECT_CAP

from . import protocol as proto
from .net import STREAM_LIMIT, encode_line, read_json, send_json
from .rooms import RoomRelay

log = logging.getLogger(__name__)


class LinkStatus(str, Enum):
    CONNECTED = "connected"   # handshake done, peer_id assigned
    FAILED = "failed"         # a connect attempt failed; retrying
    LOST = "lost"             # an established link dropped; retrying
    CLOSED = "closed"         # caller closed the transport; no retries


def reconnect_delay(attempt: int, base: float = RECONNECT_BASE, cap: float = RECONNECT_CAP) -> float:
    """Exponential backoff: base, 2*base, 4*base ... capped at `cap`."""
    return min(cap, base * (2 ** max(0, attempt)))


class Transport(ABC):
    """Base for message channels; subclasses supply connect, close and send."""

    def __init__(self) -> None:
        self.on_message: Optional[Callable[[Dict[str, Any]], None]] = None
        self.on_status: Optional[Callable[[LinkStatus], None]] = None
        self.peer_id: Optional[str] = None

    @abstractmethod
    def connect(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    @abstractmethod
    def send(self, msg: Dict[str, Any]) -> None:
        ...

    def _emit_message(self, msg: Dict[str, Any]) -> None:
        if self.on_message is not None:
            self.on_message(msg)

    def _emit_status(self, status: LinkStatus) -> None:
        if self.on_status is not None:
            self.on_status(status)


class AsyncRunner:
    """Runs an asyncio loop on a daemon thread for the (synchronous) game loop."""
    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run, daemon=True, name="net")
        self.thread.start()

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run_coro(self, coro):
        """Schedule a coroutine onto the background loop."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self):
        self.loop.call_soon_threadsafe(self.loop.stop)


class TcpTransport(Transport):
    """Newline-JSON over TCP to server.py, reconnecting with exponential backoff."""

    def __init__(self, host: str, port: int, *, name: str = "Player",
                 reconnect_base: float = RECONNECT_BASE, reconnect_cap: float = RECONNECT_CAP,
                 runner: Optional[AsyncRunner] = None) -> None:
        super().__init__()
        self.host = host
        self.port = port
        self.name = name
        self.reconnect_base = reconnect_base
        self.reconnect_cap = reconnect_cap
        self.runner = runner or AsyncRunner()
        self._writer: Optional[asyncio.StreamWriter] = None
        self._task = None
        self._closing = False

    def connect(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._closing = False
        self._task = self.runner.run_coro(self._run())

    def close(self) -> None:
        self._closing = True
        if self._task is not None:
            self._task.cancel()
            self._task = None
        writer = self._writer
        if writer is not None:
            self.runner.loop.call_soon_threadsafe(writer.close)
        self._writer = None
        self._emit_status(LinkStatus.CLOSED)

    def send(self, msg: Dict[str, Any]) -> None:
        writer = self._writer
        if writer is None:
            log.debug("send while offline; dropped %s", msg.get("type"))
            return
        self.runner.loop.call_soon_threadsafe(self._write, writer, encode_line(msg))

    @staticmethod
    def _write(writer: asyncio.StreamWriter, data: bytes) -> None:
        if not writer.is_closing():
            writer.write(data)

    async def _run(self) -> None:
        attempt = 0
        while not self._closing:
            established = False
            writer = None
            try:
                reader, writer = await asyncio.open_connection(self.host, self.port, limit=STREAM_LIMIT)
                await send_json(writer, {"type": proto.HELLO, "name": self.name})
                welcome = await read_json(reader)
                if welcome.get("type") != proto.WELCOME:
                    raise ConnectionError(f"unexpected handshake reply {welcome.get('type')!r}")
                self.peer_id = str(welcome["playerId"])
                self._writer = writer
                established = True
                attempt = 0
                log.info("connected to %s:%s as %s", self.host, self.port, self.peer_id)
                self._emit_status(LinkStatus.CONNECTED)
                while True:
                    msg = await read_json(reader)
                    if not msg:
                        raise ConnectionError("relay closed the connection")
                    self._emit_message(msg)
            except asyncio.CancelledError:
                raise
            except (OSError, ConnectionError, ValueError, KeyError) as e:
                log.warning("link to %s:%s failed: %s", self.host, self.port, e)
            finally:
                self._writer = None
                if writer is not None:
                    writer.close()
            if self._closing:
                break
            self._emit_status(LinkStatus.LOST if established else LinkStatus.FAILED)
            delay = reconnect_delay(attempt, self.reconnect_base, self.reconnect_cap)
            attempt += 1
            log.info("reconnecting in %.1fs (attempt %d)", delay, attempt)
            await asyncio.sleep(delay)


class LoopbackHub:
    """In-process relay: every attached LoopbackTransport talks to one RoomRelay."""

    def __init__(self, relay: Optional[RoomRelay] = None) -> None:
        self.relay = relay or RoomRelay()
        self._links: Dict[str, "LoopbackTransport"] = {}
        self._ids = itertools.count(1)

    def attach(self, link: "LoopbackTransport") -> str:
        pid = f"peer{next(self._ids)}"
        self._links[pid] = link
        return pid

    def detach(self, pid: str) -> None:
        if self._links.pop(pid, None) is not None:
            self._deliver(self.relay.disconnect(pid))

    def submit(self, pid: str, msg: Dict[str, Any]) -> None:
        self._deliver(self.relay.handle(pid, msg))

    def _deliver(self, outbound) -> None:
        for pid, msg in outbound:
            link = self._links.get(pid)
            if link is not None:
                link._emit_message(copy.deepcopy(msg))


class LoopbackTransport(Transport):
    """Synchronous transport for tests and local play; mirrors the wire through JSON."""

    def __init__(self, hub: LoopbackHub) -> None:
        super().__init__()
        self.hub = hub
        self.attached = False

    def connect(self) -> None:
        if self.attached:
            return
        self.peer_id = self.hub.attach(self)
        self.attached = True
        self._emit_status(LinkStatus.CONNECTED)

    def close(self) -> None:
        if self.attached:
            self.hub.detach(self.peer_id)
            self.attached = False
        self._emit_status(LinkStatus.CLOSED)

    def send(self, msg: Dict[str, Any]) -> None:
        if not self.attached:
            return
        self.hub.submit(self.peer_id, json.loads(json.dumps(msg)))

    def drop_link(self) -> None:
        """Simulate a network failure: the relay sees a disconnect."""
        if self.attached:
            self.hub.detach(self.peer_id)
            self.attached = False
        self._emit_status(LinkStatus.LOST)

    def restore_link(self) -> None:
        """Simulate a successful reconnect (a fresh peer id, as a real relay would assign)."""
        self.connect()
