"""Row <-> column conversion for Chroma's columnar wire format.

Chroma sends and receives records as parallel arrays keyed by plural field
names (``ids``, ``embeddings``, ...). Callers work with one mapping per
record keyed by the singular name.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence

from ..domain.errors import ContractError, ProtocolError

PLURAL: Dict[str, str] = {
    "id": "ids",
    "metadata": "metadatas",
    "document": "documents",
    "embedding": "embeddings",
    "distance": "distances",
}

SINGULAR: Dict[str, str] = {v: k for k, v in PLURAL.items()}

RECORD_FIELDS = ("id", "metadata", "document", "embedding")


def fields_for(include: Iterable[str]) -> List[str]:
    """Singular field list for a wire ``include`` set; ``id`` always comes first."""
    out = ["id"]
    for name in include:
        field = SINGULAR.get(name)
        if field is None:
            raise ContractError(f"Unknown include field: {name}")
        if field not in out:
            out.append(field)
    return out


def to_columns(records: Sequence[Mapping[str, Any]], fields: Sequence[str]) -> Dict[str, List[Any]]:
    """Columns keyed by plural name; a column with no non-null value is left out."""
    columns: Dict[str, List[Any]] = {}
    for field in fields:
        values = [r.get(field) for r in records]
        if any(v is not None for v in values):
            columns[PLURAL[field]] = values
    return columns


def to_rows(columns: Mapping[str, Any], fields: Sequence[str]) -> List[Dict[str, Any]]:
    """Zip the present columns index-wise into one mapping per record.

    Raises:
        ProtocolError: A column is not a list, or columns differ in length.
    """
    present = [(f, columns.get(PLURAL[f])) for f in fields]
    present = [(f, col) for f, col in present if col is not None]
    if not present:
        return []
    for f, col in present:
        if not isinstance(col, (list, tuple)):
            raise ProtocolError(f"Column {PLURAL[f]} is not a list")
    lengths = {len(col) for _, col in present}
    if len(lengths) > 1:
        detail = ", ".join(f"{PLURAL[f]}={len(col)}" for f, col in present)
        raise ProtocolError(f"Column length mismatch: {detail}")
    names = [f for f, _ in present]
    return [dict(zip(names, values)) for values in zip(*(col for _, col in present))]


def to_query_rows(columns: Mapping[str, Any], fields: Sequence[str]) -> List[List[Dict[str, Any]]]:
    """Per-query nested columns (query responses) into one row list per query."""
    present = [f for f in fields if columns.get(PLURAL[f]) is not None]
    if not present:
        return []
    counts = {len(columns[PLURAL[f]]) for f in present}
    if len(counts) > 1:
        raise ProtocolError("Query result columns disagree on the number of queries")
    n = counts.pop()
    return [to_rows({PLURAL[f]: columns[PLURAL[f]][i] for f in present}, present) for i in range(n)]
