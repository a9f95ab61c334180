# distlab

Tools for testing distributed systems inside one Python process:

- **`distlab.codec`** provides protobuf-compatible messages. You declare a dataclass that derives from `Message` and build its fields with `field(tag, kind, repeated, enum)` and a `FieldKind`. `encode(message)` turns a message into bytes and `decode(message_type, data)` turns bytes back into a message. Encoding follows proto3 rules: fields that hold their default value are omitted, repeated numeric fields are packed, and unknown fields are skipped when decoding. Failures raise `EncodeError` or `DecodeError`.
- **`distlab.fixture`** holds a sample message, `Msg`, with its enum `MsgType`.
- **`distlab.server`** handles the server side. A `ServiceDefinition` maps method names to request and reply types. `add_service(definition, implementation, builder)` registers an object that has one async method for each method of the definition. `ServerBuilder.build()` returns a `Server`, and `Server.dispatch(fq_name, request)` runs `"service.method"` on raw bytes.
- **`distlab.client`** handles the client side. `Client.call(fq_name, request, response_type)` sends a request and returns the reply. `ServiceClient(definition, client).call(method, request)` calls a method by name. You can install `RpcHooks` with `Client.set_hooks` to reject a request before dispatch or to replace the reply after dispatch.
- **`distlab.network`** provides `Network`, which routes requests from named clients to named servers on an asyncio event loop. With it you can:
  - enable or disable clients with `enable`;
  - `connect` a client to a server;
  - kill servers with `delete_server`;
  - drop and delay traffic with `set_reliable(False)`;
  - delay replies for a long time with `set_long_reordering`;
  - lengthen the timeouts of disabled clients with `set_long_delays`;
  - read the request counts with `count` and `total_count`.

  The constructor takes an optional `rng` (a `random.Random`) so that runs can be reproduced. `Network.create()` returns an unstarted network together with the queue its requests arrive on. That lets a test handle `Rpc` objects by hand.
- **`distlab.errors`** defines the base class `RpcError` of every RPC failure. Its subclasses are `UnimplementedError`, `EncodeFailedError`, `DecodeFailedError`, `RecvError`, `RpcTimeoutError`, `StoppedError` and `OtherError`. Errors compare equal when they have the same kind and the same detail.
- **`distlab.checker`** checks histories for linearizability against a `distlab.model.Model`. `check_operations(model, history, timeout)` takes timed `Operation`s. `check_events(model, history, timeout)` takes ordered call and return `Event`s. In both, a timeout of 0 or None means no timeout. If a run times out it returns the result so far, so a false positive is possible.
- **`distlab.models`** provides `KvModel`, a key/value model that partitions histories by key. It also provides `parse_kv_log(lines)`, which reads key/value operation logs into events.
- **`distlab.bitset`** provides `Bitset`, the fixed-size bit set that the checker uses.

## Installation

```
pip install distlab
```

For the test suite:

```
pip install "distlab[test]"
```

## Example: an echo service

```python
import asyncio
from dataclasses import dataclass

from distlab.client import ServiceClient
from distlab.codec import FieldKind, Message, field
from distlab.network import Network
from distlab.server import ServerBuilder, ServiceDefinition, add_service


@dataclass
class Echo(Message):
    x: int = field(1, FieldKind.INT64)


class EchoService:
    async def ping(self, request: Echo) -> Echo:
        return request


echo = ServiceDefinition("echo", {"ping": (Echo, Echo)})


async def main():
    async with Network() as net:
        builder = ServerBuilder("echo_server")
        add_service(echo, EchoService(), builder)
        net.add_server(builder.build())

        client = ServiceClient(echo, net.create_client("client"))
        net.enable("client", True)
        net.connect("client", "echo_server")

        reply = await client.call("ping", Echo(x=777))
        assert reply == Echo(x=777)


asyncio.run(main())
```

A new client starts out disabled and unconnected. While it stays that way, its calls end with `RpcTimeoutError`.

## Example: checking a key/value history

```python
from distlab.checker import check_events
from distlab.models import KvModel, parse_kv_log

with open("history.txt") as log:
    events = parse_kv_log(log)

print("linearizable" if check_events(KvModel(), events) else "not linearizable")
```

## What it does not do

- The network is simulated. Requests never leave the process, and there is no transport over sockets.
- Servers keep no storage of their own.
- The package has no transactional key/value service and no timestamp service built on top of the RPC layer. Only the building blocks described above are included.
- There is no command-line program.