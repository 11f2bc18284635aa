"""Exceptions raised by the JSON-RPC transports."""


class RpcClientError(Exception):
    """Base class of every error raised by this package."""


class TransportError(RpcClientError):
    """The transport failed: a message describing why, or an HTTP status code."""

    def __init__(self, message=None, code=None):
        if message is None and code is None:
            raise ValueError("a transport error needs a message or a status code")
        self.message = message
        self.code = code
        super().__init__(message if message is not None else f"status code {code}")


class InvalidResponseError(RpcClientError):
    """The remote side answered with something that is not a valid response."""


class RpcError(RpcClientError):
    """The remote side answered with a JSON-RPC error object."""

    def __init__(self, code, message, data=None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC error {code}: {message}")


class InternalError(RpcClientError):
    """A request was dropped before any response could be delivered to it."""

    def __init__(self, message="internal error"):
        super().__init__(message)


class UnreachableError(RpcClientError):
    """A request was made that should never have happened."""

    def __init__(self, message="unreachable"):
        super().__init__(message)