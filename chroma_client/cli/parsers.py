from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Chroma vector database client (configured via CHROMA_* env/.env)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    sub.add_parser("heartbeat")
    sub.add_parser("version")
    sub.add_parser("count-collections")
    sub.add_parser("reset", help="Wipe the database; requires CHROMA_ALLOW_RESET=true")

    lc = sub.add_parser("list-collections")
    add_paging_args(lc)

    cc = sub.add_parser("create-collection")
    cc.add_argument("--name", required=True)
    cc.add_argument("--metadata", default=None, help="JSON object merged over the HNSW defaults")

    dc = sub.add_parser("delete-collection")
    dc.add_argument("--name", required=True)

    ct = sub.add_parser("count")
    ct.add_argument("--collection", required=True)

    gt = sub.add_parser("get")
    gt.add_argument("--collection", required=True)
    gt.add_argument("--ids", nargs="+", default=None)
    gt.add_argument("--where", default=None, help="JSON metadata filter")
    gt.add_argument("--where-document", default=None, help="JSON document filter")
    gt.add_argument("--include", nargs="+", default=["metadatas", "documents"])
    add_paging_args(gt)

    q = sub.add_parser("query")
    q.add_argument("--collection", required=True)
    q.add_argument("--embedding", required=True, help="JSON array of floats")
    q.add_argument("--k", type=int, default=10)
    q.add_argument("--where", default=None, help="JSON metadata filter")
    q.add_argument("--where-document", default=None, help="JSON document filter")

    ig = sub.add_parser("ingest")
    ig.add_argument("--collection", required=True)
    ig.add_argument("--file", required=True, help="JSON Lines file, one record per line")
    ig.add_argument("--batch-size", type=int, default=32)
    ig.add_argument("--parallel", type=int, default=1)
    ig.add_argument("--upsert", action="store_true")

    return ap


def add_paging_args(parser: argparse.ArgumentParser) -> argparse.ArgumentParser:
    """Adds --offset/--limit/--all to a paged subcommand."""
    parser.add_argument("--offset", type=int, default=0)
    parser.add_argument("--limit", type=int, default=100)
    parser.add_argument("--all", action="store_true", help="Follow every page instead of returning one")
    return parser
