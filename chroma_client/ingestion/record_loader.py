from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator

from ..domain.errors import ContractError
from ..domain.models import EmbeddingRecord


def load_records(path: Path) -> Iterator[EmbeddingRecord]:
    """Lazily read a JSON Lines file of records.

    Each non-blank line is an object with ``id`` and ``embedding`` and
    optionally ``metadata`` and ``document``. Lines starting with '#' are skipped.
    """
    with path.open("r", encoding="utf-8") as fh:
        for lineno, raw in enumerate(fh, start=1):
            s = raw.strip()
            if not s or s.startswith("#"):
                continue
            try:
                row = json.loads(s)
            except ValueError as ex:
                raise ContractError(f"{path}:{lineno}: invalid JSON ({ex})") from ex
            if not isinstance(row, dict) or "id" not in row or row.get("embedding") is None:
                raise ContractError(f"{path}:{lineno}: record needs 'id' and 'embedding'")
            yield EmbeddingRecord.from_row(row)
