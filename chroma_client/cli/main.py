from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from ..application.client import ChromaClient
from ..ingestion.record_loader import load_records
from ..infrastructure.logging import get_logger
from .parsers import build_parser

logger = get_logger("chroma_client.cli")


def _json_arg(raw: Optional[str], flag: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as ex:
        raise ValueError(f"{flag} is not valid JSON: {ex}") from ex


def _plain(value: Any) -> Any:
    """Convert dataclasses (and lists of them) into JSON-serializable values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (list, tuple)) or hasattr(value, "next_page"):
        return [_plain(v) for v in value]
    return value


def _emit(payload: Dict[str, Any]) -> int:
    print(json.dumps(payload, indent=2))
    return 0


def _paged(ns, deferred) -> list:
    if ns.all:
        return list(ChromaClient.pages(deferred))
    return list(deferred.result())


def _find_collection(client: ChromaClient, name: str):
    return client.get_collection(name).result()


def run(argv: Optional[Sequence[str]] = None, client: Optional[ChromaClient] = None) -> int:
    ap = build_parser()
    ns = ap.parse_args(list(argv or []))
    client = client or ChromaClient()
    try:
        return dispatch_commands(ns, client)
    except Exception as ex:  # keep CLI concise and user-friendly
        print(json.dumps({"status": "error", "error": f"{type(ex).__name__}: {ex}"}))
        return 3
    finally:
        client.close()


def dispatch_commands(ns, client: ChromaClient) -> int:
    """
    Dispatches CLI commands to the matching client operation.

    Every command blocks on the returned Deferred and prints a JSON document.
    """
    if ns.cmd == "heartbeat":
        return _emit({"status": "ok", "heartbeat": client.heartbeat().result()})
    if ns.cmd == "version":
        return _emit({"status": "ok", "version": client.version().result()})
    if ns.cmd == "count-collections":
        return _emit({"status": "ok", "count": client.count_collections().result()})
    if ns.cmd == "reset":
        return _emit({"status": "ok", "reset": client.reset().result()})
    if ns.cmd == "list-collections":
        cols = _paged(ns, client.collections(offset=ns.offset, limit=ns.limit))
        return _emit({"status": "ok", "collections": _plain(cols)})
    if ns.cmd == "create-collection":
        metadata = _json_arg(ns.metadata, "--metadata")
        created = client.create_collection(ns.name, metadata=metadata).result()
        return _emit({"status": "ok", "collection": _plain(created)})
    if ns.cmd == "delete-collection":
        client.delete_collection(ns.name).result()
        return _emit({"status": "ok", "deleted": ns.name})
    if ns.cmd == "count":
        coll = _find_collection(client, ns.collection)
        return _emit({"status": "ok", "collection": coll.name, "count": client.count(coll).result()})
    if ns.cmd == "get":
        return _get_records(ns, client)
    if ns.cmd == "query":
        return _query(ns, client)
    if ns.cmd == "ingest":
        return ingest_file(ns, client)

    print(json.dumps({"status": "error", "error": f"Unknown command: {ns.cmd}"}))
    return 2


def _get_records(ns, client: ChromaClient) -> int:
    coll = _find_collection(client, ns.collection)
    deferred = client.get(
        coll,
        ids=ns.ids,
        where=_json_arg(ns.where, "--where"),
        where_document=_json_arg(ns.where_document, "--where-document"),
        include=ns.include,
        offset=ns.offset,
        limit=ns.limit,
    )
    records = _paged(ns, deferred)
    return _emit({"status": "ok", "collection": coll.name, "records": _plain(records)})


def _query(ns, client: ChromaClient) -> int:
    coll = _find_collection(client, ns.collection)
    embedding = _json_arg(ns.embedding, "--embedding")
    if not isinstance(embedding, list):
        raise ValueError("--embedding must be a JSON array of numbers")
    results = client.query(
        coll,
        embedding,
        n_results=ns.k,
        where=_json_arg(ns.where, "--where"),
        where_document=_json_arg(ns.where_document, "--where-document"),
    ).result()
    return _emit({"status": "ok", "collection": coll.name, "result": _plain(results)})


def ingest_file(ns, client: ChromaClient) -> int:
    """
    Streams a JSON Lines file into a collection through the batch scheduler.

    Args:
        ns: Parsed arguments (collection, file, batch_size, parallel, upsert).
        client: Client used for the add/upsert calls.

    Returns:
        int: 0 when every batch was acknowledged. A failed batch raises and is
            reported by ``run``; batches sent before it stay ingested.
    """
    coll = _find_collection(client, ns.collection)
    path = Path(ns.file)
    logger.info("ingest | collection=%s | file=%s | batch_size=%d | parallel=%d", coll.name, path, ns.batch_size, ns.parallel)
    report = client.add_batches(
        coll,
        load_records(path),
        batch_size=ns.batch_size,
        parallelism=ns.parallel,
        upsert=ns.upsert,
    ).result()
    return _emit({"status": "ok", "collection": coll.name, "batches": report.batches, "records": report.records})


def main() -> int:
    import sys

    return run(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main())
