from __future__ import annotations

import threading
from typing import List, Optional

import requests

from ...domain.errors import TransportError
from ...domain.interfaces import HttpRequest, HttpResponse, Transport


class RequestsTransport(Transport):
    """Transport adapter for Chroma REST over requests.

    One Session per worker thread; sessions are not shared across threads.
    """

    def __init__(self, max_workers: int = 8, session_factory=requests.Session) -> None:
        super().__init__(max_workers=max_workers)
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    def _session(self) -> requests.Session:
        session: Optional[requests.Session] = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def send(self, request: HttpRequest) -> HttpResponse:
        params = {k: v for k, v in request.params.items() if v is not None}
        headers = dict(request.headers)
        if request.body is not None:
            headers.setdefault("Content-Type", "application/json")
        try:
            r = self._session().request(
                request.method,
                request.url,
                headers=headers,
                params=params,
                data=request.body,
                timeout=request.timeout,
            )
        except requests.RequestException as ex:
            raise TransportError(f"{type(ex).__name__}: {ex}") from ex
        return HttpResponse(status=r.status_code, body=r.text)

    def close(self) -> None:
        super().close()
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
