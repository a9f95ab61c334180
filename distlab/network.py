"""A simulated network carrying RPCs between clients and servers.

The network can disable clients, drop or delay requests and replies, reorder
replies and notice servers that were deleted while a request was running.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Coroutine, Optional

from distlab.client import Client, Rpc
from distlab.errors import RpcError, RpcTimeoutError, StoppedError
from distlab.server import Server

logger = logging.getLogger(__name__)

_SERVER_CHECK_INTERVAL = 0.1


@dataclass(frozen=True)
class _EndInfo:
    enabled: bool
    reliable: bool
    long_reordering: bool
    server: Optional[Server]


class Network:
    """Routes requests from named clients to named servers.

    Requests queue up until :meth:`start` runs the poller on the running
    event loop; ``async with network:`` starts and stops it.
    """

    def __init__(self, *, rng: Optional[random.Random] = None) -> None:
        self._rng = rng if rng is not None else random.Random()
        self._reliable = True
        # pause a long time on send on a disabled connection
        self._long_delays = False
        # sometimes delay replies a long time
        self._long_reordering = False
        self._enabled: dict[str, bool] = {}
        self._servers: dict[str, Optional[Server]] = {}
        self._connections: dict[str, Optional[str]] = {}
        self._total = 0
        self._incoming: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._poller: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def create(cls) -> tuple[Network, asyncio.Queue]:
        """Return an unstarted network and the queue its requests arrive on."""
        network = cls()
        return network, network._incoming

    def start(self) -> None:
        """Start serving queued requests on the running event loop."""
        if self._closed:
            raise StoppedError()
        if self._poller is not None:
            raise RuntimeError("network already started")
        self._poller = asyncio.get_running_loop().create_task(self._poll())

    def stop(self) -> None:
        """Stop the network: refuse new requests and drop every pending reply."""
        self._closed = True
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None
        for task in list(self._tasks):
            task.cancel()
        while True:
            try:
                rpc = self._incoming.get_nowait()
            except asyncio.QueueEmpty:
                break
            resp = rpc.take_resp_sender()
            if resp is not None and not resp.done():
                resp.cancel()

    async def __aenter__(self) -> Network:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.stop()

    def add_server(self, server: Server) -> None:
        """Make a server reachable under its name."""
        self._servers[server.name] = server

    def delete_server(self, name: str) -> None:
        """Kill a server: requests running on it end with StoppedError."""
        if name in self._servers:
            self._servers[name] = None

    def create_client(self, name: str) -> Client:
        """Create a disabled, unconnected client end point."""
        self._enabled[name] = False
        self._connections[name] = None
        return Client(name, self._send)

    def connect(self, client_name: str, server_name: str) -> None:
        """Connect a client to a server."""
        self._connections[client_name] = server_name

    def enable(self, client_name: str, enabled: bool) -> None:
        """Enable or disable a client."""
        logger.debug("client %s is %s", client_name, "enabled" if enabled else "disabled")
        self._enabled[client_name] = enabled

    def set_reliable(self, yes: bool) -> None:
        self._reliable = yes

    def set_long_reordering(self, yes: bool) -> None:
        self._long_reordering = yes

    def set_long_delays(self, yes: bool) -> None:
        self._long_delays = yes

    def count(self, server_name: str) -> int:
        """Return how many requests the named server has dispatched."""
        server = self._servers.get(server_name)
        if server is None:
            raise KeyError(f"no server named {server_name}")
        return server.count()

    def total_count(self) -> int:
        """Return how many requests the network has processed."""
        return self._total

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run a coroutine as a task that stops with the network."""
        task = asyncio.get_running_loop().create_task(coro)
        self._track(task)
        return task

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _send(self, rpc: Rpc) -> None:
        if self._closed:
            raise StoppedError()
        self._incoming.put_nowait(rpc)

    async def _poll(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            rpc = await self._incoming.get()
            resp = rpc.take_resp_sender()
            self._track(loop.create_task(self._serve(rpc, resp)))

    async def _serve(self, rpc: Rpc, resp: Optional[asyncio.Future]) -> None:
        try:
            data = await self._process_rpc(rpc)
        except asyncio.CancelledError:
            if resp is not None and not resp.done():
                resp.cancel()
            raise
        except Exception as error:
            if resp is None or resp.done():
                logger.error("fail to send resp: %r", error)
            else:
                resp.set_exception(error)
        else:
            if resp is None or resp.done():
                logger.error("fail to send resp of %r", rpc)
            else:
                resp.set_result(data)

    def _end_info(self, client_name: str) -> _EndInfo:
        server = None
        server_name = self._connections.get(client_name)
        if server_name is not None:
            server = self._servers.get(server_name)
        return _EndInfo(
            enabled=self._enabled.get(client_name, False),
            reliable=self._reliable,
            long_reordering=self._long_reordering,
            server=server,
        )

    def _is_server_dead(self, client_name: str, server_name: str, server_id: int) -> bool:
        if not self._enabled.get(client_name, False):
            return True
        server = self._servers.get(server_name)
        return server is None or server.id != server_id

    async def _process_rpc(self, rpc: Rpc) -> bytes:
        self._total += 1
        info = self._end_info(rpc.client_name)
        logger.debug("%r process with %r", rpc, info)
        rng = self._rng

        if not (info.enabled and info.server is not None):
            # simulate no reply and eventual timeout
            ms = rng.randrange(7000) if self._long_delays else rng.randrange(100)
            logger.debug("%r delay %dms then timeout", rpc, ms)
            await asyncio.sleep(ms / 1000)
            raise RpcTimeoutError()

        short_delay = None if info.reliable else rng.randrange(27)
        if not info.reliable and rng.randrange(1000) < 100:
            # drop the request, return as if timeout
            await asyncio.sleep(short_delay / 1000)
            raise RpcTimeoutError()

        drop_reply = not info.reliable and rng.randrange(1000) < 100
        reordering = None
        if info.long_reordering and rng.randrange(900) < 600:
            upper_bound = 1 + rng.randrange(2000)
            reordering = 200 + rng.randrange(upper_bound)

        return await self._dispatch(short_delay, drop_reply, reordering, rpc, info.server)

    async def _dispatch(
        self,
        delay: Optional[int],
        drop_reply: bool,
        reordering: Optional[int],
        rpc: Rpc,
        server: Server,
    ) -> bytes:
        if delay is not None:
            await asyncio.sleep(delay / 1000)

        fq_name = rpc.fq_name
        request = rpc.req if rpc.req is not None else b""
        hooks = rpc.hooks
        if hooks is not None:
            hooks.before_dispatch(fq_name, request)

        # Watch the server while the handler runs, so that a killed server
        # gives a failure reply instead of a stale positive one.
        loop = asyncio.get_running_loop()
        dispatch = loop.create_task(server.dispatch(fq_name, request))
        watcher = loop.create_task(
            self._server_dead(_SERVER_CHECK_INTERVAL, rpc.client_name, server.name, server.id)
        )
        try:
            await asyncio.wait({dispatch, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            if not dispatch.done():
                dispatch.cancel()

        response: Any
        if dispatch.done() and not dispatch.cancelled():
            try:
                response = dispatch.result()
            except RpcError as error:
                response = error
        else:
            response = StoppedError()

        hooks = rpc.hooks
        if hooks is not None:
            response = hooks.after_dispatch(fq_name, response)
        elif isinstance(response, BaseException):
            raise response

        if self._is_server_dead(rpc.client_name, server.name, server.id):
            raise StoppedError()
        if drop_reply:
            raise RpcTimeoutError()
        if reordering is not None:
            logger.debug("%r next long reordering %dms", rpc, reordering)
            await asyncio.sleep(reordering / 1000)
        return response

    async def _server_dead(
        self, interval: float, client_name: str, server_name: str, server_id: int
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._is_server_dead(client_name, server_name, server_id):
                logger.debug("%r is dead", server_name)
                return