from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
import requests

from assetchain.errors import TransactionRejected, TransportFailure
from assetchain.ledger.rpc import JsonRpcClient


class _Response:
    def __init__(self, status_code: int, body: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class _Session:
    def __init__(self, response: Optional[_Response] = None, error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error
        self.posts: List[Dict[str, Any]] = []

    def post(self, url: str, json: Dict[str, Any], timeout: float) -> _Response:
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response


def _client(session: _Session) -> JsonRpcClient:
    return JsonRpcClient("http://node.test", timeout_s=2.5, session=session)  # type: ignore[arg-type]


def test_call_posts_jsonrpc_envelope_and_returns_result() -> None:
    session = _Session(_Response(200, {"jsonrpc": "2.0", "id": 1, "result": "1000"}))
    client = _client(session)

    assert client.call("suix_getReferenceGasPrice", []) == "1000"
    post = session.posts[0]
    assert post["url"] == "http://node.test"
    assert post["timeout"] == 2.5
    assert post["json"]["jsonrpc"] == "2.0"
    assert post["json"]["method"] == "suix_getReferenceGasPrice"
    assert post["json"]["params"] == []

    client.call("suix_getReferenceGasPrice", [])
    assert session.posts[1]["json"]["id"] == post["json"]["id"] + 1


def test_network_errors_are_transport_failures() -> None:
    client = _client(_Session(error=requests.ConnectionError("refused")))
    with pytest.raises(TransportFailure) as excinfo:
        client.call("sui_getObject", ["0x1", {}])
    assert excinfo.value.retryable is True


@pytest.mark.parametrize("status", [429, 502, 503])
def test_overload_statuses_are_transport_failures(status: int) -> None:
    client = _client(_Session(_Response(status, text="busy")))
    with pytest.raises(TransportFailure):
        client.call("sui_getObject", [])


def test_client_errors_are_rejections() -> None:
    client = _client(_Session(_Response(400, text="bad request")))
    with pytest.raises(TransactionRejected):
        client.call("sui_getObject", [])


def test_undecodable_body_is_transport_failure() -> None:
    client = _client(_Session(_Response(200, ValueError("not json"))))
    with pytest.raises(TransportFailure):
        client.call("sui_getObject", [])


def test_jsonrpc_error_object_is_rejection_with_code() -> None:
    body = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "Invalid params"}}
    client = _client(_Session(_Response(200, body)))
    with pytest.raises(TransactionRejected) as excinfo:
        client.call("sui_executeTransactionBlock", [])
    assert excinfo.value.details["code"] == -32602
    assert "Invalid params" in excinfo.value.message
