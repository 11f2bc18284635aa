"""JSON-RPC over a Unix domain socket (IPC)."""

import asyncio
import codecs
import itertools
import json
import logging
import re

from .errors import InvalidResponseError, RpcClientError, TransportError
from .jsonrpc import build_request, dumps, is_notification, is_response, output_id, result_from_output
from .transport import BatchTransport, DuplexTransport, NotificationStream

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_READ_SIZE = 64 * 1024


def _failed_future(err):
    """Return a future that is already failed with the given error."""
    future = asyncio.get_running_loop().create_future()
    future.set_exception(err)
    return future


def _send_error(reason):
    return TransportError(f"Send Error: {reason}")


def _recv_error(reason):
    return TransportError(f"Recv Error: {reason}")


class Ipc(BatchTransport, DuplexTransport):
    """Sends calls over a stream socket and reads back responses and notifications.

    A background task reads the socket; responses are matched to calls by id
    and notifications are routed to their subscription streams.
    """

    def __init__(self, reader, writer):
        self._reader = reader
        self._writer = writer
        self._ids = itertools.count(1)
        self._pending = {}
        self._subscriptions = {}
        self._text = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._json = json.JSONDecoder()
        self._closing = False
        self._finished = False
        self._task = None

    @classmethod
    async def connect(cls, path):
        """Connect to the Unix socket at the given path."""
        try:
            reader, writer = await asyncio.open_unix_connection(str(path))
        except OSError as err:
            raise TransportError(f"failed to connect to {path}: {err}") from err
        return cls.from_streams(reader, writer)

    @classmethod
    def from_streams(cls, reader, writer):
        """Build a transport over connected asyncio streams; needs a running loop."""
        transport = cls(reader, writer)
        transport._task = asyncio.get_running_loop().create_task(transport._read_loop())
        return transport

    def __repr__(self):
        return f"Ipc(pending={len(self._pending)}, subscriptions={len(self._subscriptions)})"

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    @property
    def _accepting(self):
        return not (self._closing or self._finished)

    def prepare(self, method, params):
        request_id = next(self._ids)
        return request_id, build_request(request_id, method, params)

    def send(self, request_id, call):
        """Write the call now and return an awaitable of its result."""
        if not self._accepting:
            return _failed_future(_send_error("transport task finished"))
        future = self._register(request_id)
        self._write(dumps(call), [request_id])
        return self._await_single(request_id, future)

    def send_batch(self, requests):
        """Write the calls as one batch and return an awaitable of per-call outcomes."""
        if not self._accepting:
            return _failed_future(_send_error("transport task finished"))
        ids = []
        calls = []
        futures = []
        for request_id, call in requests:
            ids.append(request_id)
            calls.append(call)
            futures.append(self._register(request_id))
        self._write(dumps(calls), ids)
        return self._await_batch(ids, futures)

    def subscribe(self, subscription_id):
        if not self._accepting:
            raise _send_error("transport task finished")
        stream = NotificationStream()
        previous = self._subscriptions.get(subscription_id)
        if previous is not None:
            logger.warning("Replacing a subscription with id %r", subscription_id)
            previous.close()
        self._subscriptions[subscription_id] = stream
        return stream

    def unsubscribe(self, subscription_id):
        if not self._accepting:
            raise _send_error("transport task finished")
        stream = self._subscriptions.pop(subscription_id, None)
        if stream is None:
            logger.warning("Unsubscribing not subscribed id %r", subscription_id)
        else:
            stream.close()

    async def close(self):
        """Stop accepting calls, wait for outstanding ones, then close the socket."""
        if self._closing:
            return
        self._closing = True
        outstanding = list(self._pending.values())
        if outstanding:
            await asyncio.wait(outstanding)
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (OSError, ConnectionError):
            pass
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._shutdown("transport closed")

    def _register(self, request_id):
        future = asyncio.get_running_loop().create_future()
        previous = self._pending.get(request_id)
        if previous is not None:
            logger.warning("Replacing a pending request with id %r", request_id)
            if not previous.done():
                previous.set_exception(_recv_error("request replaced"))
        self._pending[request_id] = future
        return future

    def _write(self, text, ids):
        try:
            self._writer.write(text.encode("utf-8"))
        except (OSError, ConnectionError, RuntimeError) as err:
            self._fail_write(ids, err)

    async def _flush(self, ids):
        try:
            await self._writer.drain()
        except (OSError, ConnectionError, RuntimeError) as err:
            self._fail_write(ids, err)

    def _fail_write(self, ids, err):
        logger.error("IPC write error: %r", err)
        for request_id in ids:
            future = self._pending.pop(request_id, None)
            if future is not None and not future.done():
                future.set_exception(_recv_error(f"IPC write error: {err}"))

    async def _await_single(self, request_id, future):
        await self._flush([request_id])
        output = await future
        return result_from_output(output)

    async def _await_batch(self, ids, futures):
        await self._flush(ids)
        results = []
        for future in futures:
            try:
                results.append(result_from_output(await future))
            except RpcClientError as err:
                results.append(err)
        return results

    async def _read_loop(self):
        reason = "connection closed"
        try:
            while True:
                chunk = await self._reader.read(_READ_SIZE)
                if not chunk:
                    break
                self._text += self._utf8.decode(chunk)
                self._consume()
        except (OSError, ConnectionError) as err:
            logger.error("IPC read error: %r", err)
            reason = f"IPC read error: {err}"
        finally:
            self._shutdown(reason)

    def _consume(self):
        text = self._text
        pos = 0
        while True:
            pos = _WHITESPACE.match(text, pos).end()
            if pos >= len(text):
                break
            try:
                value, pos = self._json.raw_decode(text, pos)
            except json.JSONDecodeError:
                break
            self._dispatch(value)
        self._text = text[pos:]

    def _dispatch(self, value):
        if is_notification(value):
            self._notify(value)
        elif is_response(value):
            self._respond(value)
        else:
            logger.warning("JSON is not a response or notification")

    def _notify(self, notification):
        params = notification.get("params")
        if not isinstance(params, dict):
            return
        subscription_id = params.get("subscription")
        if not isinstance(subscription_id, str) or "result" not in params:
            logger.error("Got unsupported notification (id: %r)", subscription_id)
            return
        stream = self._subscriptions.get(subscription_id)
        if stream is None:
            logger.warning("Got notification for unknown subscription (id: %r)", subscription_id)
            return
        try:
            stream.push(params["result"])
        except TransportError as err:
            logger.error("Error sending notification: %s (id: %r)", err, subscription_id)

    def _respond(self, response):
        outputs = response if isinstance(response, list) else [response]
        for output in outputs:
            try:
                request_id = output_id(output)
            except InvalidResponseError:
                logger.warning("Got unsupported response (id: %r)", output.get("id"))
                continue
            future = self._pending.pop(request_id, None)
            if future is None:
                logger.warning("Got response for unknown request (id: %r)", request_id)
            elif future.done():
                logger.warning("Sending a response to deallocated channel (id: %r)", request_id)
            else:
                future.set_result(output)

    def _shutdown(self, reason):
        self._finished = True
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(_recv_error(reason))
        subscriptions, self._subscriptions = self._subscriptions, {}
        for stream in subscriptions.values():
            stream.close()