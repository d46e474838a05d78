from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

TOKEN_HEADER = "x-chroma-token"
REDACTED_TOKEN = "ck-XXXXXXX"


@dataclass(frozen=True)
class HttpRequest:
    """A single call handed to the transport.

    Fields:
        method: HTTP verb, upper case.
        url: Absolute URL.
        headers: Request headers (may hold the auth token).
        params: Query parameters; None values are dropped by the transport.
        body: Serialized JSON body, if any.
        timeout: Seconds before the transport gives up.
    """
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, object] = field(default_factory=dict)
    body: Optional[str] = None
    timeout: Optional[float] = None

    def redacted(self) -> "HttpRequest":
        """Copy safe to attach to errors and logs."""
        if TOKEN_HEADER not in self.headers:
            return self
        headers = dict(self.headers)
        headers[TOKEN_HEADER] = REDACTED_TOKEN
        return replace(self, headers=headers)


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: str


class Transport(ABC):
    """Port for the network transport (e.g., requests).

    Owns the worker pool every request runs on; connection reuse and any
    retry policy belong to the concrete implementation.
    """

    def __init__(self, max_workers: int = 8) -> None:
        self._max_workers = max_workers
        self._pool: Optional[ThreadPoolExecutor] = None
        self._pool_lock = threading.Lock()

    @property
    def pool(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="chroma-io"
                )
            return self._pool

    @abstractmethod
    def send(self, request: HttpRequest) -> HttpResponse:
        """Perform the call synchronously.

        Raises:
            TransportError: The call produced no HTTP response.
        """
        raise NotImplementedError

    def close(self) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True)
