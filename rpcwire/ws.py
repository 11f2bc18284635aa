"""JSON-RPC over a WebSocket connection."""

import asyncio
import base64
import itertools
import json
import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from .errors import InvalidResponseError, TransportError
from .jsonrpc import build_request, dumps, is_notification, is_response, results_from_outputs
from .transport import BatchTransport, DuplexTransport, NotificationStream

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"ws": 80, "wss": 443}
_DROPPED_MESSAGE = "Cannot send request. Internal task finished."


def _dropped_error():
    return TransportError(_DROPPED_MESSAGE)


async def _raise(err):
    raise err


@dataclass(frozen=True)
class Endpoint:
    """Where a WebSocket transport connects to, taken apart from its URL."""

    scheme: str
    host: str
    port: int
    resource: str
    authorization: str | None = None

    @property
    def address(self):
        return f"{self.host}:{self.port}"


def parse_endpoint(url):
    """Check a ws:// or wss:// URL and split it into an Endpoint."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as err:
        raise TransportError(f"failed to parse url: {err}") from err
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise TransportError(f"Wrong scheme: {parts.scheme}")
    if not parts.hostname:
        raise TransportError("Wrong host name")
    if port is None:
        port = _DEFAULT_PORTS[scheme]
    path = parts.path or "/"
    resource = f"{path}?{parts.query}" if parts.query else path
    authorization = None
    if parts.password is not None:
        credentials = f"{parts.username or ''}:{parts.password}".encode("utf-8")
        authorization = "Basic " + base64.b64encode(credentials).decode("ascii")
    return Endpoint(scheme, parts.hostname, port, resource, authorization)


def _numeric_id(value):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def _notify(notification, subscriptions):
    params = notification.get("params")
    if not isinstance(params, dict):
        return
    subscription_id = params.get("subscription")
    if not isinstance(subscription_id, str) or "result" not in params:
        logger.error("Got unsupported notification (id: %r)", subscription_id)
        return
    stream = subscriptions.get(subscription_id)
    if stream is None:
        logger.warning("Got notification for unknown subscription (id: %r)", subscription_id)
        return
    try:
        stream.push(params["result"])
    except TransportError as err:
        logger.error("Error sending notification: %s (id: %r)", err, subscription_id)


def handle_message(data, subscriptions, pending):
    """Route one incoming message.

    Notifications are pushed to the matching stream in ``subscriptions``;
    responses resolve the future in ``pending`` registered under the id of
    their first output, with the list of per-call outcomes.
    """
    logger.debug("Message received: %r", data)
    try:
        value = json.loads(data)
    except (ValueError, TypeError):
        value = None
    if is_notification(value):
        _notify(value, subscriptions)
        return
    if is_response(value):
        outputs = value if isinstance(value, list) else [value]
    else:
        outputs = []
    raw_id = outputs[0]["id"] if outputs else 0
    request_id = _numeric_id(raw_id)
    if request_id is None:
        logger.warning("Got unsupported response (id: %r)", raw_id)
        return
    future = pending.pop(request_id, None)
    if future is None:
        logger.warning("Got response for unknown request (id: %r)", request_id)
        return
    if future.done():
        logger.warning("Sending a response to deallocated channel (id: %r)", request_id)
        return
    logger.debug("Responding to (id: %r) with %r", request_id, outputs)
    future.set_result(results_from_outputs(outputs))


def _batch_to_single(results):
    if not results:
        raise InvalidResponseError("Expected single, got batch.")
    first = results[0]
    if isinstance(first, BaseException):
        raise first
    return first


def _batch_to_batch(results):
    return results


def _handshake_error(err):
    code = getattr(err, "status_code", None)
    if code is None:
        code = getattr(getattr(err, "response", None), "status_code", None)
    if isinstance(code, int):
        return TransportError(code=code)
    return TransportError(f"Handshake Error: {err!r}")


class WebSocket(BatchTransport, DuplexTransport):
    """Sends calls over a WebSocket and routes responses and notifications back.

    One background task writes queued requests, another reads incoming
    messages; once the connection ends every waiting call fails.
    """

    def __init__(self, connection):
        self._connection = connection
        self._ids = itertools.count(1)
        self._pending = {}
        self._subscriptions = {}
        self._outgoing = asyncio.Queue()
        self._finished = False
        loop = asyncio.get_running_loop()
        self._writer_task = loop.create_task(self._write_loop())
        self._reader_task = loop.create_task(self._read_loop())

    @classmethod
    async def connect(cls, url):
        """Open a WebSocket connection to a ws:// or wss:// URL."""
        endpoint = parse_endpoint(url)
        logger.debug(
            "Connecting websocket client with host: %s and resource: %s",
            endpoint.host,
            endpoint.resource,
        )
        try:
            connection = await websockets.connect(url, max_size=None)
        except WebSocketException as err:
            raise _handshake_error(err) from err
        except (OSError, asyncio.TimeoutError) as err:
            raise TransportError(f"Connection Error: {err!r}") from err
        return cls(connection)

    def __repr__(self):
        return f"WebSocket(pending={len(self._pending)}, subscriptions={len(self._subscriptions)})"

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def prepare(self, method, params):
        request_id = next(self._ids)
        return request_id, build_request(request_id, method, params)

    def send(self, request_id, call):
        """Queue the call now and return an awaitable of its result."""
        return self._request(request_id, call, _batch_to_single)

    def send_batch(self, requests):
        """Queue the calls as one batch and return an awaitable of per-call outcomes."""
        pairs = list(requests)
        request_id = pairs[0][0] if pairs else 0
        calls = [call for _, call in pairs]
        return self._request(request_id, calls, _batch_to_batch)

    def subscribe(self, subscription_id):
        if self._finished:
            raise _dropped_error()
        stream = NotificationStream()
        previous = self._subscriptions.get(subscription_id)
        if previous is not None:
            logger.warning("Replacing already-registered subscription with id %r", subscription_id)
            previous.close()
        self._subscriptions[subscription_id] = stream
        return stream

    def unsubscribe(self, subscription_id):
        if self._finished:
            raise _dropped_error()
        stream = self._subscriptions.pop(subscription_id, None)
        if stream is None:
            logger.warning("Unsubscribing from non-existent subscription with id %r", subscription_id)
        else:
            stream.close()

    async def close(self):
        """Close the connection and fail every call still waiting."""
        self._finished = True
        try:
            await self._connection.close()
        except (OSError, ConnectionClosed):
            pass
        for task in (self._reader_task, self._writer_task):
            task.cancel()
        await asyncio.gather(self._reader_task, self._writer_task, return_exceptions=True)
        self._shutdown()

    def _request(self, request_id, request, extract):
        text = dumps(request)
        logger.debug("[%s] Calling: %s", request_id, text)
        if self._finished:
            return _raise(_dropped_error())
        future = asyncio.get_running_loop().create_future()
        previous = self._pending.get(request_id)
        if previous is not None:
            logger.warning("Replacing a pending request with id %r", request_id)
            if not previous.done():
                previous.set_exception(_dropped_error())
        self._pending[request_id] = future
        self._outgoing.put_nowait((request_id, text, future))
        return self._wait(future, extract)

    @staticmethod
    async def _wait(future, extract):
        return extract(await future)

    async def _write_loop(self):
        while True:
            request_id, text, future = await self._outgoing.get()
            if future.done():
                continue
            try:
                await self._connection.send(text)
            except (ConnectionClosed, OSError) as err:
                logger.error("WS connection error: %r", err)
                if self._pending.get(request_id) is future:
                    del self._pending[request_id]
                if not future.done():
                    future.set_exception(_dropped_error())

    async def _read_loop(self):
        try:
            while True:
                data = await self._connection.recv()
                handle_message(data, self._subscriptions, self._pending)
        except ConnectionClosedOK:
            pass
        except (ConnectionClosed, OSError) as err:
            logger.error("WS connection error: %r", err)
        finally:
            self._shutdown()

    def _shutdown(self):
        self._finished = True
        if not self._writer_task.done():
            self._writer_task.cancel()
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(_dropped_error())
        subscriptions, self._subscriptions = self._subscriptions, {}
        for stream in subscriptions.values():
            stream.close()