from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from ..domain.errors import ConfigurationError, ContractError
from ..domain.interfaces import Transport
from ..domain.models import Collection, EmbeddingRecord, IngestReport, QueryResult
from ..infrastructure.config import ConfigSource
from ..infrastructure.logging import get_logger
from . import transforms
from .batching import ingest
from .deferred import Deferred
from .executor import RequestExecutor
from .pagination import Page, expand, paginate
from .transcoder import RECORD_FIELDS, fields_for, to_columns

logger = get_logger("chroma_client.client")

COLLECTION_METADATA_DEFAULTS: Dict[str, Any] = {
    "hnsw:batch_size": 100,
    "hnsw:sync_threshold": 1000,
    "hnsw:space": "l2",
    "hnsw:search_ef": 10,
    "hnsw:construction_ef": 100,
    "hnsw:M": 16,
    "hnsw:num_threads": 4,
    "hnsw:resize_factor": 1.2,
}

DEFAULT_GET_INCLUDE = ("metadatas", "documents")
DEFAULT_QUERY_INCLUDE = ("documents", "distances", "metadatas")

Record = Union[EmbeddingRecord, Mapping[str, Any]]


def _row(record: Record) -> Mapping[str, Any]:
    return record.to_row() if isinstance(record, EmbeddingRecord) else record


def _collection_id(collection: Union[Collection, Mapping[str, Any]]) -> str:
    return str(collection.id if isinstance(collection, Collection) else collection["id"])


def _collection_name(collection: Union[Collection, Mapping[str, Any], str]) -> str:
    if isinstance(collection, str):
        return collection
    return str(collection.name if isinstance(collection, Collection) else collection["name"])


class ChromaClient:
    """Chroma REST API. Every operation returns a Deferred.

    Call ``.result()`` on the returned handle to block for the value; errors
    raised by the request are raised from ``result()``. Paged operations
    resolve to a ``Page``; ``pages()`` walks every following page lazily.
    """

    def __init__(self, config: Optional[ConfigSource] = None, transport: Optional[Transport] = None) -> None:
        self._executor = RequestExecutor(config, transport)

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    def close(self) -> None:
        self._executor.transport.close()

    def __enter__(self) -> "ChromaClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _request(self, method: str, path: str, params=None, body=None, shape=transforms.identity) -> Deferred[Any]:
        return transforms.shape(self._executor.execute(method, path, params, body), shape)

    # --- server ---
    def version(self) -> Deferred[str]:
        """The version of Chroma as reported by the server."""
        return self._request("GET", "version")

    def heartbeat(self) -> Deferred[Dict[str, Any]]:
        """Check that the Chroma server is active and responding."""
        return self._request("GET", "heartbeat")

    def reset(self) -> Deferred[Any]:
        """Reset the entire database.

        Raises:
            ConfigurationError: ``allow_reset`` is not enabled; nothing is sent.
        """
        if not self._executor.config.allow_reset:
            raise ConfigurationError("Reset is not enabled, set allow_reset (CHROMA_ALLOW_RESET=true).")
        logger.warning("resetting database")
        return self._request("POST", "reset")

    # --- collections ---
    def collections(self, offset: int = 0, limit: int = 100) -> Deferred[Page[Collection]]:
        """List collections, ``limit`` per page starting at ``offset``.

        The resolved Page carries a ``next_page`` continuation when more pages may exist.
        """
        return paginate(self._collections_page, {"offset": offset, "limit": limit})

    def _collections_page(self, params: Dict[str, Any]) -> Deferred[List[Collection]]:
        return self._request("GET", "collections", params, shape=transforms.to_collections)

    def count_collections(self) -> Deferred[int]:
        return self._request("GET", "count_collections", shape=transforms.to_int)

    def create_collection(
        self,
        name: str,
        metadata: Optional[Mapping[str, Any]] = None,
        configuration: Optional[Mapping[str, Any]] = None,
    ) -> Deferred[Collection]:
        """Idempotently create a collection (returns the existing one if present)."""
        body = {
            "name": name,
            "get_or_create": True,
            "configuration": dict(configuration or {}),
            "metadata": {**COLLECTION_METADATA_DEFAULTS, **dict(metadata or {})},
        }
        return self._request("POST", "collections", body=body, shape=transforms.to_collection)

    def get_collection(self, name: str) -> Deferred[Collection]:
        return self._request("GET", f"collections/{name}", shape=transforms.to_collection)

    def update_collection(
        self,
        collection: Collection,
        name: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Deferred[Any]:
        """Update a collection's name and/or metadata."""
        if not (name or metadata):
            raise ContractError("Either name or metadata must be provided")
        body = {"new_name": name, "new_metadata": dict(metadata) if metadata else None}
        return self._request("PUT", f"collections/{_collection_id(collection)}", body=body)

    def delete_collection(self, collection: Union[Collection, str]) -> Deferred[Any]:
        return self._request("DELETE", f"collections/{_collection_name(collection)}")

    # --- records ---
    def add(self, collection: Collection, records: Sequence[Record], upsert: bool = False) -> Deferred[Any]:
        """Add (or upsert) records to a collection."""
        path = f"collections/{_collection_id(collection)}/{'upsert' if upsert else 'add'}"
        body = to_columns([_row(r) for r in records], RECORD_FIELDS)
        return self._request("POST", path, body=body)

    def add_batches(
        self,
        collection: Collection,
        records: Iterable[Record],
        batch_size: int = 32,
        parallelism: int = 1,
        upsert: bool = False,
    ) -> Deferred[IngestReport]:
        """Add records in batches of ``batch_size`` through ``parallelism`` workers.

        If a batch fails, earlier batches remain ingested; see ``batching.ingest``.
        """
        return ingest(records, batch_size, parallelism, lambda batch: self.add(collection, batch, upsert=upsert))

    def update(self, collection: Collection, records: Sequence[Record]) -> Deferred[Any]:
        body = to_columns([_row(r) for r in records], RECORD_FIELDS)
        return self._request("POST", f"collections/{_collection_id(collection)}/update", body=body)

    def count(self, collection: Collection) -> Deferred[int]:
        """Number of records in a collection."""
        return self._request("GET", f"collections/{_collection_id(collection)}/count", shape=transforms.to_int)

    def get(
        self,
        collection: Collection,
        ids: Optional[Iterable[str]] = None,
        where: Optional[Mapping[str, Any]] = None,
        where_document: Optional[Mapping[str, Any]] = None,
        include: Iterable[str] = DEFAULT_GET_INCLUDE,
        offset: int = 0,
        limit: int = 100,
    ) -> Deferred[Page[EmbeddingRecord]]:
        """Get records from a collection, one page at a time.

        Options:
            ids: Only return the specified IDs.
            where: Metadata filter, in Chroma's filter syntax.
            where_document: Full-text document filter.
            include: Wire fields to return (``metadatas``, ``documents``, ``embeddings``).
            offset, limit: Page window; the resolved Page carries ``next_page``
                when it came back full.
        """
        include = list(include)
        params = {
            "offset": offset,
            "limit": limit,
            "ids": list(ids) if ids is not None else None,
            "where": where,
            "where_document": where_document,
            "include": include,
        }
        fields = fields_for(include)
        cid = _collection_id(collection)
        return paginate(lambda p: self._get_page(cid, fields, p), params)

    def _get_page(self, collection_id: str, fields: List[str], params: Dict[str, Any]) -> Deferred[List[EmbeddingRecord]]:
        body = {
            "ids": params["ids"],
            "where": params["where"],
            "where_document": params["where_document"],
            "include": params["include"],
        }
        window = {"limit": params["limit"], "offset": params["offset"]}
        return self._request(
            "POST",
            f"collections/{collection_id}/get",
            window,
            body,
            shape=transforms.to_records(fields),
        )

    def delete(
        self,
        collection: Collection,
        ids: Optional[Iterable[str]] = None,
        where: Optional[Mapping[str, Any]] = None,
        where_document: Optional[Mapping[str, Any]] = None,
    ) -> Deferred[Any]:
        """Delete records matching ``ids``, ``where`` or ``where_document``.

        At least one selector is required; this does not delete a whole collection.
        """
        if not (ids or where or where_document):
            raise ContractError("Delete requires ids, where or where_document")
        body = {
            "ids": list(ids) if ids else None,
            "where": where,
            "where_document": where_document,
        }
        return self._request("POST", f"collections/{_collection_id(collection)}/delete", body=body)

    def query_batch(
        self,
        collection: Collection,
        query_embeddings: Sequence[Sequence[float]],
        n_results: int = 10,
        where: Optional[Mapping[str, Any]] = None,
        where_document: Optional[Mapping[str, Any]] = None,
        include: Iterable[str] = DEFAULT_QUERY_INCLUDE,
    ) -> Deferred[List[List[QueryResult]]]:
        """KNN search for several query vectors; one result list per vector, nearest first."""
        include = list(include)
        body = {
            "query_embeddings": [list(v) for v in query_embeddings],
            "n_results": n_results,
            "where": where,
            "where_document": where_document,
            "include": include,
        }
        return self._request(
            "POST",
            f"collections/{_collection_id(collection)}/query",
            body=body,
            shape=transforms.to_query_results(fields_for(include)),
        )

    def query(
        self,
        collection: Collection,
        query_embedding: Sequence[float],
        n_results: int = 10,
        where: Optional[Mapping[str, Any]] = None,
        where_document: Optional[Mapping[str, Any]] = None,
        include: Iterable[str] = DEFAULT_QUERY_INCLUDE,
    ) -> Deferred[List[QueryResult]]:
        return self.query_batch(
            collection, [query_embedding], n_results, where, where_document, include
        ).map(transforms.first)

    @staticmethod
    def pages(page: Union[Page[Any], Deferred[Page[Any]]]) -> Iterator[Any]:
        """Lazy sequence over every item of a paged result; see ``pagination.expand``."""
        return expand(page)
