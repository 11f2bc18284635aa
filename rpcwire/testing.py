"""A scripted transport for unit tests of code built on transports."""

import json
from collections import deque

from .errors import UnreachableError
from .jsonrpc import build_request, dumps
from .transport import Transport


async def _ready(outcome):
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


class TestTransport(Transport):
    """Records every call made and answers with queued responses."""

    __test__ = False

    def __init__(self):
        self.asserted = 0
        self.requests = []
        self.responses = deque()

    def prepare(self, method, params):
        params = list(params)
        request = build_request(1, method, params)
        self.requests.append((method, params))
        return len(self.requests), request

    def send(self, request_id, call):
        """Take the next queued response now and return an awaitable of it."""
        try:
            outcome = self.responses.popleft()
        except IndexError:
            outcome = UnreachableError(f"unexpected request (id: {request_id}): {dumps(call)}")
        return _ready(outcome)

    def set_response(self, value):
        """Replace all queued responses with a single one."""
        self.responses = deque([value])

    def add_response(self, value):
        """Queue another response."""
        self.responses.append(value)

    def assert_request(self, method, params):
        """Check the next unchecked call; params are given as JSON texts."""
        idx = self.asserted
        self.asserted += 1
        if idx >= len(self.requests):
            raise AssertionError("Expected result.")
        recorded_method, recorded_params = self.requests[idx]
        if recorded_method != method:
            raise AssertionError(f"method {recorded_method!r} != {method!r}")
        encoded = [json.dumps(p, separators=(",", ":")) for p in recorded_params]
        if encoded != list(params):
            raise AssertionError(f"params {encoded!r} != {list(params)!r}")

    def assert_no_more_requests(self):
        """Check that every recorded call has been asserted."""
        if self.asserted != len(self.requests):
            raise AssertionError(
                f"Expected no more requests, got: {self.requests[self.asserted:]!r}"
            )