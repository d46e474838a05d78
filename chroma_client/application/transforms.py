from __future__ import annotations

from typing import Any, Callable, List, Sequence, TypeVar

from ..domain.errors import ProtocolError
from ..domain.models import Collection, EmbeddingRecord, QueryResult
from .deferred import Deferred
from .transcoder import to_query_rows, to_rows

T = TypeVar("T")


def shape(deferred: Deferred[Any], fn: Callable[[Any], T]) -> Deferred[T]:
    """Attach a pure shaping function to a raw-body Deferred.

    ``fn`` runs when the result is consumed, never re-issuing the request.
    """
    return deferred.map(fn)


def identity(body: Any) -> Any:
    return body


def first(items: Sequence[T]) -> T:
    if not items:
        raise ProtocolError("Expected at least one result")
    return items[0]


def to_int(body: Any) -> int:
    try:
        return int(body)
    except (TypeError, ValueError):
        raise ProtocolError(f"Expected an integer count, got {body!r}") from None


def to_collection(body: Any) -> Collection:
    if not isinstance(body, dict):
        raise ProtocolError(f"Expected a collection object, got {type(body).__name__}")
    return Collection.from_wire(body)


def to_collections(body: Any) -> List[Collection]:
    if not isinstance(body, list):
        raise ProtocolError(f"Expected a list of collections, got {type(body).__name__}")
    return [to_collection(it) for it in body]


def to_records(fields: Sequence[str]) -> Callable[[Any], List[EmbeddingRecord]]:
    def _shape(body: Any) -> List[EmbeddingRecord]:
        return [EmbeddingRecord.from_row(row) for row in to_rows(body or {}, fields)]

    return _shape


def to_query_results(fields: Sequence[str]) -> Callable[[Any], List[List[QueryResult]]]:
    def _shape(body: Any) -> List[List[QueryResult]]:
        return [[QueryResult.from_row(row) for row in rows] for rows in to_query_rows(body or {}, fields)]

    return _shape
