"""A transport that collects calls and sends them as one batch."""

import asyncio

from .errors import InternalError, RpcClientError
from .transport import Transport


class Batch(Transport):
    """Queues calls until submit_batch sends them through a batch transport."""

    def __init__(self, transport):
        self.transport = transport
        self._pending = {}
        self._batch = []

    def prepare(self, method, params):
        return self.transport.prepare(method, params)

    def send(self, request_id, call):
        """Queue a call; the returned future resolves when the batch is submitted.

        Must be called while an event loop is running.
        """
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        self._batch.append((request_id, call))
        return future

    async def submit_batch(self):
        """Send every queued call as one batch and return the per-call results."""
        batch, self._batch = self._batch, []
        ids = [request_id for request_id, _ in batch]
        try:
            results = await self.transport.send_batch(batch)
        except RpcClientError as err:
            for request_id in ids:
                self._settle(request_id, err)
            raise
        for idx, request_id in enumerate(ids):
            outcome = results[idx] if idx < len(results) else InternalError()
            self._settle(request_id, outcome)
        return results

    def _settle(self, request_id, outcome):
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return
        if isinstance(outcome, BaseException):
            future.set_exception(outcome)
        else:
            future.set_result(outcome)