"""Asynchronous JSON-RPC transports over HTTP, Unix sockets and WebSockets, with batching and a test double."""

__version__ = "0.1.0"

__all__ = ["batch", "errors", "http", "ipc", "jsonrpc", "testing", "transport", "ws"]