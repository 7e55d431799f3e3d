from __future__ import annotations

import pytest
import requests

from chainmail.errors import ConfigurationError, RpcError, TransientScanError
from chainmail.etl.extract.rpc_client import RpcClient, create_session


class FakeResponse:
    def __init__(self, payload=None, status_code=200, body_error=None):
        self.payload = payload
        self.status_code = status_code
        self.body_error = body_error

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if self.body_error is not None:
            raise self.body_error
        return self.payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append((url, json, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(*responses) -> tuple[RpcClient, FakeSession]:
    session = FakeSession(*responses)
    return RpcClient("http://localhost:8545", session=session, timeout=5), session


def test_missing_url_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        RpcClient("")


def test_call_posts_json_rpc_envelope() -> None:
    client, session = _client(
        FakeResponse({"jsonrpc": "2.0", "id": 1, "result": "0x10"}),
        FakeResponse({"jsonrpc": "2.0", "id": 2, "result": "0xaa36a7"}),
    )

    assert client.get_latest_block_number() == 16
    assert client.get_chain_id() == 11155111

    url, payload, timeout = session.requests[0]
    assert url == "http://localhost:8545"
    assert payload == {"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 1}
    assert timeout == 5
    assert session.requests[1][1]["id"] == 2


def test_rpc_error_member_raises_rpc_error() -> None:
    client, _ = _client(FakeResponse({"error": {"code": -32005, "message": "query returned more than 10000 results"}}))

    with pytest.raises(RpcError) as excinfo:
        client.get_logs({"address": "0x0"})

    assert excinfo.value.method == "eth_getLogs"
    assert excinfo.value.code == -32005
    assert isinstance(excinfo.value, TransientScanError)


def test_http_status_error_is_transient() -> None:
    client, _ = _client(FakeResponse(status_code=503))

    with pytest.raises(TransientScanError, match="eth_blockNumber"):
        client.get_latest_block_number()


def test_connection_error_is_transient() -> None:
    client, _ = _client(requests.exceptions.ConnectionError("refused"))

    with pytest.raises(TransientScanError):
        client.get_chain_id()


def test_non_json_body_is_transient() -> None:
    client, _ = _client(FakeResponse(body_error=ValueError("Expecting value")))

    with pytest.raises(TransientScanError, match="non-JSON"):
        client.get_chain_id()


@pytest.mark.parametrize("body", [None, [], "0x10", 7])
def test_non_object_body_is_transient(body) -> None:
    client, _ = _client(FakeResponse(body))

    with pytest.raises(TransientScanError, match="unexpected body"):
        client.get_logs({"address": "0x0"})


def test_get_block_parses_hex_fields() -> None:
    client, session = _client(FakeResponse({"result": {"number": "0x96", "timestamp": "0x6553f100", "hash": "0x00"}}))

    assert client.get_block(150) == {"number": 150, "timestamp": 0x6553F100}
    assert session.requests[0][1]["params"] == ["0x96", False]


def test_unknown_block_is_transient() -> None:
    client, _ = _client(FakeResponse({"result": None}))

    with pytest.raises(TransientScanError, match="Block 999"):
        client.get_block(999)


def test_null_logs_result_is_empty_list() -> None:
    client, _ = _client(FakeResponse({"result": None}))

    assert client.get_logs({"address": "0x0"}) == []


def test_session_retries_post_on_rate_limit() -> None:
    session = create_session(retries=4, backoff_factor=0.1)

    retry = session.get_adapter("https://rpc.example").max_retries
    assert retry.total == 4
    assert 429 in retry.status_forcelist
    assert "POST" in retry.allowed_methods
