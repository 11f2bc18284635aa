"""Transport interfaces and the Either wrapper."""

import asyncio
from abc import ABC, abstractmethod

from .errors import TransportError

_CLOSED = object()


class Transport(ABC):
    """Something that can carry JSON-RPC calls to a node."""

    @abstractmethod
    def prepare(self, method, params):
        """Assign an id to a call and build it; return (request_id, call)."""

    @abstractmethod
    def send(self, request_id, call):
        """Send a prepared call and return an awaitable of its result."""

    async def execute(self, method, params=()):
        """Prepare and send a call, returning its result."""
        request_id, call = self.prepare(method, list(params))
        return await self.send(request_id, call)


class BatchTransport(Transport):
    """A transport that can send several calls in one request."""

    @abstractmethod
    def send_batch(self, requests):
        """Send (request_id, call) pairs together.

        Returns an awaitable of a list holding, per call, either its result
        or the RpcClientError it failed with.
        """


class DuplexTransport(Transport):
    """A transport that can deliver subscription notifications."""

    @abstractmethod
    def subscribe(self, subscription_id):
        """Return a NotificationStream for the given subscription."""

    @abstractmethod
    def unsubscribe(self, subscription_id):
        """Stop delivering notifications for the given subscription."""


class NotificationStream:
    """An unbounded asynchronous stream of notification values."""

    def __init__(self):
        self._queue = asyncio.Queue()
        self._closed = False
        self._finished = False

    @property
    def closed(self):
        return self._closed

    def push(self, value):
        """Queue a value for the consumer."""
        if self._closed:
            raise TransportError("notification stream is closed")
        self._queue.put_nowait(value)

    def close(self):
        """End the stream once the queued values have been consumed."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        return item


class Either(BatchTransport, DuplexTransport):
    """Wraps one of several possible transports behind a single type."""

    def __init__(self, transport):
        self.transport = transport

    def __repr__(self):
        return f"Either({self.transport!r})"

    def prepare(self, method, params):
        return self.transport.prepare(method, params)

    def send(self, request_id, call):
        return self.transport.send(request_id, call)

    def send_batch(self, requests):
        if not isinstance(self.transport, BatchTransport):
            raise TypeError(f"{type(self.transport).__name__} does not support batches")
        return self.transport.send_batch(requests)

    def subscribe(self, subscription_id):
        if not isinstance(self.transport, DuplexTransport):
            raise TypeError(f"{type(self.transport).__name__} does not support subscriptions")
        return self.transport.subscribe(subscription_id)

    def unsubscribe(self, subscription_id):
        if not isinstance(self.transport, DuplexTransport):
            raise TypeError(f"{type(self.transport).__name__} does not support subscriptions")
        return self.transport.unsubscribe(subscription_id)