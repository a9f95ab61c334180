"""RPC servers: services are registered on a builder and dispatched by name."""

from __future__ import annotations

import functools
import itertools
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping

from distlab import codec
from distlab.codec import DecodeError, EncodeError
from distlab.errors import DecodeFailedError, EncodeFailedError, OtherError, UnimplementedError

Handler = Callable[[bytes], Awaitable[bytes]]
HandlerFactory = Callable[[str], Handler]

_server_ids = itertools.count()


@dataclass(frozen=True, eq=False)
class ServiceDefinition:
    """A named service and its methods, each mapped to (request type, reply type).

    An implementation of the service is any object with an async method of the
    same name for every method listed here.
    """

    name: str
    methods: Mapping[str, tuple[type, type]]

    def __post_init__(self) -> None:
        if not self.methods:
            raise ValueError("empty service is not allowed")
        object.__setattr__(self, "methods", MappingProxyType(dict(self.methods)))

    def handler(self, implementation: Any, method: str) -> Handler:
        """Return an async handler running ``method`` of ``implementation`` on raw bytes."""
        signature = self.methods.get(method)
        if signature is None:
            service_name = self.name

            async def unknown(request: bytes) -> bytes:
                raise UnimplementedError(f"unknown {method} in {service_name}")

            return unknown

        input_type, _ = signature

        async def handle(request: bytes) -> bytes:
            try:
                args = codec.decode(input_type, request)
            except DecodeError as error:
                raise DecodeFailedError(error) from error
            reply = await getattr(implementation, method)(args)
            try:
                return codec.encode(reply)
            except EncodeError as error:
                raise EncodeFailedError(error) from error

        return handle


def add_service(definition: ServiceDefinition, implementation: Any, builder: ServerBuilder) -> None:
    """Register an implementation of a service definition on a builder."""
    builder.add_service(definition.name, functools.partial(definition.handler, implementation))


class ServerBuilder:
    """Collects services before a :class:`Server` is built."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.services: dict[str, HandlerFactory] = {}

    def add_service(self, service_name: str, factory: HandlerFactory) -> None:
        """Register a handler factory; a service name may be registered once only."""
        if service_name in self.services:
            raise OtherError(f"{service_name} has already registered")
        self.services[service_name] = factory

    def build(self) -> Server:
        """Build a server holding the registered services."""
        return Server(self.name, self.services)


class Server:
    """A named set of services, each with a unique id."""

    def __init__(self, name: str, services: Mapping[str, HandlerFactory]) -> None:
        self._name = name
        self._id = next(_server_ids)
        self._services = dict(services)
        self._count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def id(self) -> int:
        return self._id

    def count(self) -> int:
        """Return how many requests have been dispatched to this server."""
        return self._count

    async def dispatch(self, fq_name: str, request: bytes) -> bytes:
        """Run the method named ``service.method`` on the request bytes."""
        self._count += 1
        parts = fq_name.split(".")
        if len(parts) < 2:
            raise UnimplementedError(f"unknown {fq_name}")
        service_name, method = parts[0], parts[1]
        factory = self._services.get(service_name)
        if factory is None:
            raise UnimplementedError(f"unknown {fq_name}")
        return await factory(method)(bytes(request))

    def __repr__(self) -> str:
        return f"Server(name={self._name!r}, id={self._id})"