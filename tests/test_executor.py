"""
Unit tests for the request executor.

Tests routing injection, auth header handling, error kinds and secret redaction.
"""

import json
from unittest.mock import Mock

import pytest

from chroma_client.application.executor import RequestExecutor, encode_body
from chroma_client.domain.errors import ConfigurationError, ProtocolError, StatusError, TransportError
from chroma_client.domain.interfaces import REDACTED_TOKEN, TOKEN_HEADER, HttpResponse
from chroma_client.infrastructure.config import ChromaConfig


class TestRequestShape:
    """Test how requests are built from configuration."""

    def test_injects_tenant_database_and_token(self, config, transport):
        """Every call carries tenant/database params and the auth header."""
        ex = RequestExecutor(config, transport)
        assert ex.execute("get", "heartbeat", {"x": 1}).result(timeout=5) == {"nanosecond heartbeat": 1}

        sent = transport.requests[-1]
        assert sent.method == "GET"
        assert sent.url == "http://chroma.test:8000/api/v1/heartbeat"
        assert sent.params == {"x": 1, "tenant": "default_tenant", "database": "default_database"}
        assert sent.headers == {TOKEN_HEADER: "ck-secret-token"}
        assert sent.timeout == pytest.approx(10.0)

    def test_no_token_header_without_api_key(self, transport):
        """No auth header is sent when no API key is configured."""
        ex = RequestExecutor(ChromaConfig(host="h"), transport)
        ex.execute("GET", "version").result(timeout=5)
        assert transport.requests[-1].headers == {}

    def test_config_read_per_call(self, transport):
        """A provider is consulted on each call so reconfiguration applies immediately."""
        current = {"cfg": ChromaConfig(host="h", tenant="t1")}
        ex = RequestExecutor(lambda: current["cfg"], transport)
        ex.execute("GET", "version").result(timeout=5)
        current["cfg"] = current["cfg"].configure(tenant="t2", port=9000)
        ex.execute("GET", "version").result(timeout=5)

        first, second = transport.requests
        assert first.params["tenant"] == "t1"
        assert second.params["tenant"] == "t2"
        assert second.url.startswith("http://h:9000/")

    def test_body_serialized_as_json(self):
        """Tuples, sets and array-likes become JSON lists."""
        arr = Mock()
        arr.tolist.return_value = [0.5, 1.5]
        encoded = json.loads(encode_body({"t": (1, 2), "s": {"b", "a"}, "v": arr}))
        assert encoded == {"t": [1, 2], "s": ["a", "b"], "v": [0.5, 1.5]}
        assert encode_body(None) is None


class TestErrors:
    """Test the error channel of the executor."""

    def test_missing_host_is_configuration_error(self, transport):
        """Without a host the Deferred fails and nothing is sent."""
        d = RequestExecutor(ChromaConfig(), transport).execute("GET", "version")
        with pytest.raises(ConfigurationError):
            d.result()
        assert transport.requests == []

    def test_status_error_carries_code_body_and_redacted_request(self, config, transport):
        """Non-2xx responses surface as StatusError with the token masked."""
        transport.interceptor = lambda req: HttpResponse(status=500, body='{"error": "boom"}')
        d = RequestExecutor(config, transport).execute("POST", "collections", body={"name": "x"})
        with pytest.raises(StatusError) as exc:
            d.result(timeout=5)
        assert exc.value.code == 500
        assert exc.value.body == '{"error": "boom"}'
        assert exc.value.request.headers[TOKEN_HEADER] == REDACTED_TOKEN
        assert "ck-secret-token" not in repr(exc.value.request)

    def test_transport_error_is_redacted(self, config, transport):
        """Connection failures surface as TransportError with the token masked."""
        transport.network_down = True
        d = RequestExecutor(config, transport).execute("GET", "heartbeat")
        with pytest.raises(TransportError) as exc:
            d.result(timeout=5)
        assert exc.value.request.headers[TOKEN_HEADER] == REDACTED_TOKEN
        assert "connection refused" in str(exc.value)

    def test_no_retry_on_failure(self, config, transport):
        """A failed call is issued exactly once."""
        transport.interceptor = lambda req: HttpResponse(status=503, body="")
        d = RequestExecutor(config, transport).execute("GET", "version")
        with pytest.raises(StatusError):
            d.result(timeout=5)
        assert len(transport.requests) == 1

    def test_invalid_json_is_protocol_error(self, config, transport):
        """A 2xx body that is not JSON is a ProtocolError."""
        transport.interceptor = lambda req: HttpResponse(status=200, body="<html>")
        d = RequestExecutor(config, transport).execute("GET", "version")
        with pytest.raises(ProtocolError):
            d.result(timeout=5)

    def test_empty_body_decodes_to_none(self, config, transport):
        """An empty 2xx body resolves to None."""
        transport.interceptor = lambda req: HttpResponse(status=204, body="")
        assert RequestExecutor(config, transport).execute("DELETE", "collections/x").result(timeout=5) is None
