import socket

import pytest
import requests
import responses

from prisma_runtime.protocol import EngineError
from prisma_runtime.transport import SchemaNotFoundError, get_port, request

URL = "http://localhost:4466/"


def _json_header(req):
    req.headers["content-type"] = "application/json"


def test_request_returns_body():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, URL, body=b'{"ok":true}', status=200)
        body = request(requests.Session(), "POST", URL, b"{}", None)
    assert body == b'{"ok":true}'


def test_request_accepts_created():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.PUT, URL, body=b"made", status=201)
        body = request(requests.Session(), "PUT", URL, b"x", None)
    assert body == b"made"


def test_request_sends_payload_and_applies_headers():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, URL, body=b"{}", status=200)
        request(requests.Session(), "POST", URL, b'{"query":"q"}', _json_header)
        sent = rsps.calls[0].request
    assert sent.headers["content-type"] == "application/json"
    assert sent.body == b'{"query":"q"}'


def test_request_not_found_raises_schema_error():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, URL, body=b"nope", status=404)
        with pytest.raises(SchemaNotFoundError, match="re-upload schema"):
            request(requests.Session(), "POST", URL, b"{}", None)


def test_schema_not_found_is_engine_error():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, URL, status=404)
        with pytest.raises(EngineError):
            request(requests.Session(), "GET", URL, b"", None)


def test_request_other_status_raises_with_body():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, URL, body=b"broken", status=500)
        with pytest.raises(EngineError, match="http status code 500 with response broken"):
            request(requests.Session(), "POST", URL, b"{}", None)


def test_request_connection_error_raises():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, URL, body=requests.ConnectionError("refused"))
        with pytest.raises(EngineError, match="raw post"):
            request(requests.Session(), "POST", URL, b"{}", None)


def test_get_port_is_valid_and_bindable():
    port = get_port()
    assert port.isdigit()
    number = int(port)
    assert 0 < number < 65536
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("localhost", number))
        assert sock.getsockname()[1] == number