"""
Pytest configuration and fixtures for chroma client tests.

Provides an in-memory fake Chroma server behind the Transport port so the
executor, pagination and batching paths run against real threads.
"""

import json
import os
import threading
import uuid
from collections import OrderedDict
from typing import Callable, List, Optional
from urllib.parse import urlparse

import pytest

from chroma_client.application.client import ChromaClient
from chroma_client.domain.errors import TransportError
from chroma_client.domain.interfaces import HttpRequest, HttpResponse, Transport
from chroma_client.infrastructure.config import ChromaConfig


def _ok(value, status=200) -> HttpResponse:
    return HttpResponse(status=status, body=json.dumps(value))


def _matches(meta: dict, where: Optional[dict]) -> bool:
    if not where:
        return True
    for key, cond in where.items():
        value = (meta or {}).get(key)
        if isinstance(cond, dict):
            for op, operand in cond.items():
                if op == "$eq" and value != operand:
                    return False
                if op == "$lt" and not (value is not None and value < operand):
                    return False
                if op == "$gt" and not (value is not None and value > operand):
                    return False
        elif value != cond:
            return False
    return True


class FakeChromaTransport(Transport):
    """Minimal in-memory stand-in for the Chroma REST API."""

    def __init__(self, max_workers: int = 16) -> None:
        super().__init__(max_workers=max_workers)
        self.lock = threading.Lock()
        self.requests: List[HttpRequest] = []
        self.collections: "OrderedDict[str, dict]" = OrderedDict()
        self.records: dict = {}
        self.network_down = False
        self.interceptor: Optional[Callable[[HttpRequest], Optional[HttpResponse]]] = None

    # --- helpers for tests ---
    def calls(self, suffix: str) -> List[HttpRequest]:
        with self.lock:
            return [r for r in self.requests if urlparse(r.url).path.endswith(suffix)]

    def seed_collection(self, name: str, metadata: Optional[dict] = None) -> dict:
        coll = {"id": str(uuid.uuid4()), "name": name, "metadata": metadata or {}, "tenant": "default_tenant", "database": "default_database"}
        with self.lock:
            self.collections[name] = coll
            self.records[coll["id"]] = OrderedDict()
        return coll

    def _by_id(self, cid: str) -> Optional[dict]:
        for coll in self.collections.values():
            if coll["id"] == cid:
                return coll
        return None

    # --- Transport ---
    def send(self, request: HttpRequest) -> HttpResponse:
        with self.lock:
            self.requests.append(request)
        if self.network_down:
            raise TransportError("ConnectionError: connection refused")
        if self.interceptor is not None:
            intercepted = self.interceptor(request)
            if intercepted is not None:
                return intercepted
        path = urlparse(request.url).path.split("/api/v1/", 1)[1]
        body = json.loads(request.body) if request.body else None
        with self.lock:
            return self._route(request.method, path.split("/"), request.params, body)

    def _route(self, method, parts, params, body) -> HttpResponse:
        if parts == ["version"]:
            return _ok("0.5.0")
        if parts == ["heartbeat"]:
            return _ok({"nanosecond heartbeat": 1})
        if parts == ["reset"]:
            self.collections.clear()
            self.records.clear()
            return _ok(True)
        if parts == ["count_collections"]:
            return _ok(len(self.collections))
        if parts == ["collections"] and method == "GET":
            offset, limit = int(params.get("offset") or 0), int(params["limit"])
            return _ok(list(self.collections.values())[offset:offset + limit])
        if parts == ["collections"] and method == "POST":
            existing = self.collections.get(body["name"])
            if existing is None:
                existing = {"id": str(uuid.uuid4()), "name": body["name"], "metadata": body["metadata"]}
                self.collections[body["name"]] = existing
                self.records[existing["id"]] = OrderedDict()
            return _ok(existing)
        if len(parts) == 2 and parts[0] == "collections":
            return self._collection(method, parts[1], body)
        if len(parts) == 3 and parts[0] == "collections":
            coll = self._by_id(parts[1])
            if coll is None:
                return _ok({"error": "NotFoundError"}, status=404)
            return self._records(parts[2], self.records[coll["id"]], params, body)
        return _ok({"error": "NotFound"}, status=404)

    def _collection(self, method, key, body) -> HttpResponse:
        if method == "GET":
            coll = self.collections.get(key)
            return _ok(coll) if coll else _ok({"error": f"Collection {key} does not exist."}, status=404)
        if method == "DELETE":
            coll = self.collections.pop(key, None)
            if coll is None:
                return _ok({"error": "not found"}, status=404)
            self.records.pop(coll["id"], None)
            return _ok(None)
        if method == "PUT":
            coll = self._by_id(key)
            if coll is None:
                return _ok({"error": "not found"}, status=404)
            if body.get("new_metadata"):
                coll["metadata"] = body["new_metadata"]
            if body.get("new_name"):
                del self.collections[coll["name"]]
                coll["name"] = body["new_name"]
                self.collections[coll["name"]] = coll
            return _ok(None)
        return _ok({"error": "bad method"}, status=405)

    def _records(self, op, store, params, body) -> HttpResponse:
        if op == "count":
            return _ok(len(store))
        if op in ("add", "upsert", "update"):
            ids = body["ids"]
            for i, rid in enumerate(ids):
                if op == "add" and rid in store:
                    continue
                if op == "update" and rid not in store:
                    continue
                row = dict(store.get(rid) or {"id": rid})
                for plural, singular in (("embeddings", "embedding"), ("metadatas", "metadata"), ("documents", "document")):
                    if body.get(plural) is not None:
                        row[singular] = body[plural][i]
                store[rid] = row
            return _ok(True)
        if op == "get":
            rows = [r for r in store.values()
                    if (not body.get("ids") or r["id"] in body["ids"]) and _matches(r.get("metadata"), body.get("where"))]
            offset, limit = int(params.get("offset") or 0), params.get("limit")
            rows = rows[offset:offset + limit] if limit is not None else rows[offset:]
            include = body.get("include") or []
            out = {"ids": [r["id"] for r in rows], "embeddings": None, "metadatas": None, "documents": None}
            for plural, singular in (("embeddings", "embedding"), ("metadatas", "metadata"), ("documents", "document")):
                if plural in include:
                    out[plural] = [r.get(singular) for r in rows]
            return _ok(out)
        if op == "delete":
            doomed = [rid for rid, r in store.items()
                      if (not body.get("ids") or rid in body["ids"]) and _matches(r.get("metadata"), body.get("where"))]
            for rid in doomed:
                del store[rid]
            return _ok(doomed)
        if op == "query":
            include = body.get("include") or []
            out = {"ids": [], "distances": [], "metadatas": [], "documents": [], "embeddings": None}
            for q in body["query_embeddings"]:
                scored = sorted(
                    ((sum((a - b) ** 2 for a, b in zip(q, r["embedding"])), r) for r in store.values()
                     if _matches(r.get("metadata"), body.get("where"))),
                    key=lambda pair: pair[0],
                )[: body["n_results"]]
                out["ids"].append([r["id"] for _, r in scored])
                out["distances"].append([d for d, _ in scored])
                out["metadatas"].append([r.get("metadata") for _, r in scored])
                out["documents"].append([r.get("document") for _, r in scored])
            for plural in ("distances", "metadatas", "documents"):
                if plural not in include:
                    out[plural] = None
            return _ok(out)
        return _ok({"error": "NotFound"}, status=404)


@pytest.fixture
def config():
    return ChromaConfig(host="chroma.test", port=8000, api_key="ck-secret-token")


@pytest.fixture
def transport():
    t = FakeChromaTransport()
    yield t
    t.close()


@pytest.fixture
def client(config, transport):
    return ChromaClient(config=config, transport=transport)


def make_record(idx: int, dim: int = 2, metas: bool = True) -> dict:
    record = {"id": f"embedding-{idx}", "embedding": [float(idx)] * dim}
    if metas:
        record["metadata"] = {"foo": f"foo-{idx}", "bar": idx}
        record["document"] = f"hello foo bar val{idx}"
    return record


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def clean_environment():
    """Clean CHROMA_* environment variables for testing."""
    names = [k for k in os.environ if k.startswith("CHROMA_")]
    original = {k: os.environ.pop(k) for k in names}
    yield
    for k in [k for k in os.environ if k.startswith("CHROMA_")]:
        del os.environ[k]
    os.environ.update(original)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as end-to-end test against the fake server")
    config.addinivalue_line("markers", "cli: mark test as CLI command test")
