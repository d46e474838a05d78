from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class Collection:
    """A Chroma collection as reported by the server.

    Fields:
        id: Server-assigned identifier; immutable once created.
        name: Collection name; unique per tenant/database.
        metadata: Collection metadata (HNSW settings and user keys).
        tenant: Owning tenant, when the server reports it.
        database: Owning database, when the server reports it.
    """
    id: str
    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    tenant: Optional[str] = None
    database: Optional[str] = None

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Collection":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            metadata=dict(data.get("metadata") or {}),
            tenant=data.get("tenant"),
            database=data.get("database"),
        )


@dataclass(frozen=True)
class EmbeddingRecord:
    """A single record stored in a collection.

    Fields:
        id: Record identity, unique within the collection.
        embedding: The vector; None when not requested on read.
        metadata: Flat map of scalar values.
        document: Raw document text.
    """
    id: str
    embedding: Optional[List[float]] = None
    metadata: Optional[Dict[str, Any]] = None
    document: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "embedding": self.embedding,
            "metadata": self.metadata,
            "document": self.document,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "EmbeddingRecord":
        embedding = row.get("embedding")
        return cls(
            id=str(row["id"]),
            embedding=[float(x) for x in embedding] if embedding is not None else None,
            metadata=row.get("metadata"),
            document=row.get("document"),
        )


@dataclass(frozen=True)
class QueryResult:
    """Nearest-neighbour match returned by a query.

    Fields:
        id: Record ID.
        distance: Distance to the query vector (lower is closer).
        metadata: Returned metadata, if included.
        document: Returned document, if included.
        embedding: Returned vector, if included.
    """
    id: str
    distance: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None
    document: Optional[str] = None
    embedding: Optional[List[float]] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "QueryResult":
        distance = row.get("distance")
        embedding = row.get("embedding")
        return cls(
            id=str(row["id"]),
            distance=float(distance) if distance is not None else None,
            metadata=row.get("metadata"),
            document=row.get("document"),
            embedding=[float(x) for x in embedding] if embedding is not None else None,
        )


@dataclass(frozen=True)
class IngestReport:
    """Outcome of a completed batch ingestion.

    Fields:
        batches: Number of batches acknowledged by the server.
        records: Number of records in those batches.
    """
    batches: int
    records: int
