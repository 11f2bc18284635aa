"""JSON-RPC 2.0 request building and response decoding."""

import json

from .errors import InvalidResponseError, RpcError

_OUTPUT_KEYS = frozenset({"jsonrpc", "id", "result", "error"})
_NOTIFICATION_KEYS = frozenset({"jsonrpc", "method", "params"})


def build_request(request_id, method, params):
    """Build a JSON-RPC 2.0 method call."""
    return {"jsonrpc": "2.0", "method": method, "params": list(params), "id": request_id}


def dumps(request):
    """Serialise a call or a list of calls to compact JSON text."""
    return json.dumps(request, separators=(",", ":"))


def _is_output(value):
    if not isinstance(value, dict) or "id" not in value:
        return False
    if not set(value) <= _OUTPUT_KEYS:
        return False
    return ("result" in value) != ("error" in value)


def _raise_rpc_error(error):
    if (
        not isinstance(error, dict)
        or not isinstance(error.get("code"), int)
        or isinstance(error.get("code"), bool)
        or not isinstance(error.get("message"), str)
    ):
        raise InvalidResponseError(f"malformed error object: {error!r}")
    raise RpcError(error["code"], error["message"], error.get("data"))


def result_from_output(output):
    """Return the result of a response output, or raise the error it carries."""
    if not _is_output(output):
        raise InvalidResponseError(f"malformed response output: {output!r}")
    if "result" in output:
        return output["result"]
    _raise_rpc_error(output["error"])


def results_from_outputs(outputs):
    """Decode a batch of outputs.

    Each entry of the returned list is either the result value or the
    RpcClientError describing why that call failed.
    """
    results = []
    for output in outputs:
        try:
            results.append(result_from_output(output))
        except (RpcError, InvalidResponseError) as err:
            results.append(err)
    return results


def output_id(output):
    """Return the numeric id of a response output."""
    request_id = output.get("id") if isinstance(output, dict) else None
    if isinstance(request_id, bool) or not isinstance(request_id, int) or request_id < 0:
        raise InvalidResponseError("response id is not u64")
    return request_id


def is_notification(value):
    """Tell whether a decoded JSON value is a JSON-RPC notification."""
    if not isinstance(value, dict) or not set(value) <= _NOTIFICATION_KEYS:
        return False
    if not isinstance(value.get("method"), str):
        return False
    return "params" not in value or isinstance(value["params"], (list, dict))


def is_response(value):
    """Tell whether a decoded JSON value is a single or batch JSON-RPC response."""
    if isinstance(value, list):
        return all(_is_output(item) for item in value)
    return _is_output(value)