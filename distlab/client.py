"""RPC clients: requests are encoded, handed to a sender and the replies awaited."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Optional

from distlab import codec
from distlab.codec import DecodeError, EncodeError, Message
from distlab.errors import DecodeFailedError, EncodeFailedError, RecvError, UnimplementedError
from distlab.server import ServiceDefinition


class RpcHooks:
    """Hooks run around the dispatch of each request of a client."""

    def before_dispatch(self, fq_name: str, request: bytes) -> None:
        """Called before dispatch; raise an RpcError to reject the request."""

    def after_dispatch(self, fq_name: str, response: Any) -> bytes:
        """Called with the reply bytes or the RpcError of dispatch; return bytes or raise."""
        if isinstance(response, BaseException):
            raise response
        return response


class _HookSlot:
    def __init__(self) -> None:
        self.current: Optional[RpcHooks] = None


class Rpc:
    """A request in flight: who sent it, what it calls, and where its reply goes.

    The reply goes into ``resp``, an asyncio future: set a result of bytes,
    set an RpcError as exception, or cancel it to drop the reply.
    """

    def __init__(
        self,
        client_name: str,
        fq_name: str,
        req: Optional[bytes],
        resp: Optional[asyncio.Future],
        hook_slot: Optional[_HookSlot] = None,
    ) -> None:
        self.client_name = client_name
        self.fq_name = fq_name
        self.req = req
        self.resp = resp
        self._hook_slot = hook_slot if hook_slot is not None else _HookSlot()

    @property
    def hooks(self) -> Optional[RpcHooks]:
        """The hooks of the sending client, as they are now."""
        return self._hook_slot.current

    def take_resp_sender(self) -> Optional[asyncio.Future]:
        """Take the reply future out of the request; later calls return None."""
        resp, self.resp = self.resp, None
        return resp

    def __repr__(self) -> str:
        return f"Rpc(client_name={self.client_name!r}, fq_name={self.fq_name!r})"


class Client:
    """One end point of a network.

    ``sender`` receives every :class:`Rpc`; it raises StoppedError when
    the network no longer takes requests.
    """

    def __init__(self, name: str, sender: Callable[[Rpc], Any]) -> None:
        self.name = name
        self._sender = sender
        self._hooks = _HookSlot()
        self._tasks: set[asyncio.Task] = set()

    async def call(self, fq_name: str, request: Message, response_type: type) -> Any:
        """Send a request to ``service.method`` and return the decoded reply."""
        try:
            payload = codec.encode(request)
        except EncodeError as error:
            raise EncodeFailedError(error) from error
        reply = asyncio.get_running_loop().create_future()
        self._sender(Rpc(self.name, fq_name, payload, reply, self._hooks))
        await asyncio.wait({reply})
        if reply.cancelled():
            raise RecvError()
        data = reply.result()
        try:
            return codec.decode(response_type, data)
        except DecodeError as error:
            raise DecodeFailedError(error) from error

    def set_hooks(self, hooks: RpcHooks) -> None:
        """Install hooks; they apply to requests already sent as well."""
        self._hooks.current = hooks

    def clear_hooks(self) -> None:
        """Remove the installed hooks."""
        self._hooks.current = None

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run a coroutine as a task on the running loop."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


class ServiceClient:
    """Calls the methods of one service through a :class:`Client`."""

    def __init__(self, definition: ServiceDefinition, client: Client) -> None:
        self.definition = definition
        self.client = client

    async def call(self, method: str, request: Message) -> Any:
        """Call a method of the service and return its reply."""
        signature = self.definition.methods.get(method)
        if signature is None:
            raise UnimplementedError(f"unknown {method} in {self.definition.name}")
        input_type, output_type = signature
        if not isinstance(request, input_type):
            raise TypeError(f"{method} takes {input_type.__name__}, got {type(request).__name__}")
        return await self.client.call(f"{self.definition.name}.{method}", request, output_type)

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run a coroutine as a task on the running loop."""
        return self.client.spawn(coro)