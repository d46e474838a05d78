from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from ..domain.errors import ChromaError, ProtocolError, StatusError, TransportError
from ..domain.interfaces import TOKEN_HEADER, HttpRequest, HttpResponse, Transport
from ..infrastructure.config import ChromaConfig, ConfigSource, config_provider
from ..infrastructure.http.transport import RequestsTransport
from ..infrastructure.logging import get_logger
from .deferred import Deferred

logger = get_logger("chroma_client.executor")


def _json_default(value: Any) -> Any:
    """Coerce tuples, sets and array-likes (numpy) into JSON lists."""
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if hasattr(value, "tolist"):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_body(body: Any) -> Optional[str]:
    if body is None:
        return None
    return json.dumps(body, default=_json_default)


def decode_body(response: HttpResponse, request: HttpRequest) -> Any:
    """Check status and parse the JSON body; raises StatusError / ProtocolError."""
    if not 200 <= response.status <= 299:
        raise StatusError(response.status, response.body, request=request)
    if not response.body:
        return None
    try:
        return json.loads(response.body)
    except ValueError as ex:
        raise ProtocolError(f"Response body is not valid JSON: {ex}") from ex


class RequestExecutor:
    """Issues single Chroma REST calls and returns a Deferred over the decoded body.

    Tenant and database routing, plus the auth header, are injected into every
    call from the configuration resolved at call time. No retries are done here.
    """

    def __init__(self, config: Optional[ConfigSource] = None, transport: Optional[Transport] = None) -> None:
        self._config = config_provider(config)
        self._transport = transport if transport is not None else RequestsTransport()

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def config(self) -> ChromaConfig:
        return self._config()

    def build_request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> HttpRequest:
        cfg = self._config()
        query: Dict[str, Any] = dict(params or {})
        query["tenant"] = cfg.tenant
        query["database"] = cfg.database
        headers: Dict[str, str] = {}
        if cfg.api_key:
            headers[TOKEN_HEADER] = cfg.api_key
        return HttpRequest(
            method=method.upper(),
            url=f"{cfg.base_url}/{path.lstrip('/')}",
            headers=headers,
            params=query,
            body=encode_body(body),
            timeout=cfg.timeout_seconds,
        )

    def execute(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Deferred[Any]:
        try:
            request = self.build_request(method, path, params, body)
        except (ChromaError, TypeError, ValueError) as ex:
            return Deferred.failed(ex)
        return Deferred.submit(self._transport.pool, self._perform, request)

    def _perform(self, request: HttpRequest) -> Any:
        safe = request.redacted()
        logger.debug("request | %s %s | params=%s | headers=%s", safe.method, safe.url, safe.params, safe.headers)
        try:
            response = self._transport.send(request)
        except TransportError as ex:
            logger.warning("request failed | %s %s | %s", safe.method, safe.url, ex)
            raise TransportError(f"HTTP Error: {safe.method} {safe.url}: {ex}", request=safe) from ex
        try:
            return decode_body(response, safe)
        except StatusError as ex:
            logger.warning("request failed | %s %s | status=%d", safe.method, safe.url, ex.code)
            raise
