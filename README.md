# rpcwire

Asynchronous JSON-RPC 2.0 transports for asyncio.

Every transport has the same interface. `prepare(method, params)` returns a
request id and a call dict. `send(request_id, call)` sends the call and returns
an awaitable of its result. `execute(method, params)` does both in one step.

- `rpcwire.http.Http`: one POST per call or per batch, sent with httpx. Batch
  replies may come back in any order and are put back into request order.
- `rpcwire.ipc.Ipc`: a Unix domain socket (`Ipc.connect(path)`), or any pair of
  asyncio streams (`Ipc.from_streams(reader, writer)`). Supports batches and
  subscriptions.
- `rpcwire.ws.WebSocket`: a `ws://` or `wss://` endpoint
  (`WebSocket.connect(url)`). Supports batches and subscriptions.
- `rpcwire.batch.Batch`: wraps a batch-capable transport. Calls sent through it
  are held back until `submit_batch()` sends them together.
- `rpcwire.transport.Either`: holds any one transport behind a single type. It
  raises `TypeError` on `send_batch`, `subscribe` or `unsubscribe` when the
  wrapped transport cannot do that.
- `rpcwire.testing.TestTransport`: an in-memory transport that gives back
  queued responses and records every call, for unit tests.
- `rpcwire.jsonrpc`: helpers for building calls (`build_request`, `dumps`) and
  decoding outputs (`result_from_output`, `results_from_outputs`,
  `output_id`, `is_notification`, `is_response`).

## Installation

```
pip install rpcwire
```

## Usage

```python
import asyncio
from rpcwire.http import Http

async def main():
    async with Http("http://localhost:8545") as transport:
        accounts = await transport.execute("eth_accounts", [])
        print(accounts)

asyncio.run(main())
```

`Http(url, client=None)` accepts your own `httpx.AsyncClient`. A client you
pass in is not closed by `aclose()`. The client that `Http` creates itself sends
`User-Agent: rpcwire`.

### Batches

`send_batch(requests)` takes `(request_id, call)` pairs. It returns one entry per
call: the call's result, or the `RpcClientError` that call failed with. Errors
for single calls come back as values in this list and are not raised.

```python
import asyncio
from rpcwire.batch import Batch
from rpcwire.http import Http

async def balances(addresses):
    async with Http("http://localhost:8545") as http:
        batch = Batch(http)
        pending = [
            asyncio.ensure_future(batch.execute("eth_getBalance", [address, "latest"]))
            for address in addresses
        ]
        await asyncio.sleep(0)
        await batch.submit_batch()
        return [await item for item in pending]
```

After `submit_batch()`, each call queued through `Batch.send` is settled. A call
receives its own result or error. If the batch as a whole failed, every call
receives that error. A call with no matching entry in the reply receives
`InternalError`.

### Subscriptions

`subscribe(subscription_id)` returns a `NotificationStream`, which you read with
`async for`. The stream ends when you call `unsubscribe` for that id, or when
the connection closes.

```python
from rpcwire.ws import WebSocket

async def watch():
    async with await WebSocket.connect("ws://localhost:8546") as ws:
        subscription_id = await ws.execute("eth_subscribe", ["newHeads"])
        async for header in ws.subscribe(subscription_id):
            print(header)
```

A notification that arrives before `subscribe` is called for its id is dropped.

`rpcwire.ws.parse_endpoint(url)` checks a WebSocket URL and splits it into an
`Endpoint` with scheme, host, port, resource and an optional basic
`Authorization` value. The default ports are 80 for `ws` and 443 for `wss`.

## Errors

All failures raise subclasses of `rpcwire.errors.RpcClientError`:

- `TransportError`: the connection failed, the URL was rejected, the reply could
  not be decoded, or the server answered with a non-success HTTP status. The
  status is available as `.code`.
- `InvalidResponseError`: the reply was malformed, or could not be matched to
  its requests.
- `RpcError`: the server returned a JSON-RPC error object. Its fields are
  available as `.code`, `.message` and `.data`.
- `InternalError`: a batched call never received its result.
- `UnreachableError`: `TestTransport` had no response left to give.

## Testing your code

```python
from rpcwire.testing import TestTransport

async def test_block_number():
    transport = TestTransport()
    transport.add_response("0x1")
    assert await transport.execute("eth_blockNumber", []) == "0x1"
    transport.assert_request("eth_blockNumber", [])
    transport.assert_no_more_requests()
```

`assert_request` compares parameters as compact JSON texts. For example, write
`['"latest"']` for the single string parameter `"latest"`.
`set_response` replaces all queued responses with a single one.

## Limitations

- A dropped IPC or WebSocket connection is not re-established. Calls that are
  still waiting fail with `TransportError`, and later calls fail the same way.
- `Ipc.connect` needs a platform with Unix domain sockets.
- There is no command-line tool and no server side. The package contains
  client transports only.