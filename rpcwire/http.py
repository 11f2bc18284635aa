"""JSON-RPC over HTTP POST requests."""

import itertools
import json
import logging

import httpx

from .errors import InvalidResponseError, TransportError
from .jsonrpc import (
    build_request,
    dumps,
    is_response,
    output_id,
    result_from_output,
)
from .transport import BatchTransport

logger = logging.getLogger(__name__)

USER_AGENT = "rpcwire"


def _parse_url(url):
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as err:
        raise TransportError(f"failed to parse url: {err}") from err
    if not parsed.scheme or not parsed.host:
        raise TransportError(f"failed to parse url: {url!r} is not an absolute URL")
    return parsed


def handle_batch_response(ids, outputs):
    """Match batch outputs to the request ids, restoring the order of the ids.

    Batch responses may come back in any order. Each entry of the returned
    list is either the result value or the error that call failed with.
    """
    ids = list(ids)
    outputs = list(outputs)
    if len(ids) != len(outputs):
        raise InvalidResponseError("unexpected number of responses")
    by_id = {}
    for output in outputs:
        try:
            outcome = result_from_output(output)
        except (InvalidResponseError, TransportError) as err:
            outcome = err
        except Exception as err:  # RpcError and friends travel as values
            outcome = err
        by_id[output_id(output)] = outcome
    results = []
    for request_id in ids:
        if request_id not in by_id:
            raise InvalidResponseError(f"batch response is missing id {request_id}")
        results.append(by_id.pop(request_id))
    return results


class Http(BatchTransport):
    """Sends each call, or each batch of calls, as one HTTP POST request."""

    def __init__(self, url, client=None):
        self.url = _parse_url(url)
        self._owns_client = client is None
        self.client = (
            client if client is not None else httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        )
        self._ids = itertools.count()

    def __repr__(self):
        return f"Http({str(self.url)!r})"

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def _next_id(self):
        return next(self._ids)

    def prepare(self, method, params):
        request_id = self._next_id()
        return request_id, build_request(request_id, method, params)

    def send(self, request_id, call):
        return self._send_single(request_id, call)

    def send_batch(self, requests):
        # The id only ties the response log line to the request log line.
        log_id = self._next_id()
        pairs = list(requests)
        ids = [request_id for request_id, _ in pairs]
        calls = [call for _, call in pairs]
        return self._send_batch(log_id, ids, calls)

    async def aclose(self):
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self.client.aclose()

    async def _send_single(self, request_id, call):
        output = await self._execute(call, request_id)
        if isinstance(output, list) or not is_response(output):
            raise self._undecodable("not a response output", output)
        return result_from_output(output)

    async def _send_batch(self, log_id, ids, calls):
        outputs = await self._execute(calls, log_id)
        if not isinstance(outputs, list) or not is_response(outputs):
            raise self._undecodable("not a list of response outputs", outputs)
        return handle_batch_response(ids, outputs)

    @staticmethod
    def _undecodable(reason, value):
        return TransportError(f"failed to deserialize response: {reason}: {json.dumps(value)}")

    async def _execute(self, request, log_id):
        body = dumps(request)
        logger.debug("[id:%s] sending request: %s", log_id, body)
        try:
            response = await self.client.post(
                self.url,
                content=body.encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as err:
            raise TransportError(f"failed to send request: {err}") from err
        try:
            raw = response.content
        except httpx.HTTPError as err:
            raise TransportError(f"failed to read response bytes: {err}") from err
        text = raw.decode("utf-8", errors="replace")
        logger.debug("[id:%s] received response: %s", log_id, text)
        if not response.is_success:
            raise TransportError(code=response.status_code)
        try:
            return json.loads(raw)
        except ValueError as err:
            raise TransportError(f"failed to deserialize response: {err}: {text}") from err