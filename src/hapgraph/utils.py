from __future__ import annotations

import gzip
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, TextIO

logger = logging.getLogger(__name__)

_COMPLEMENT = str.maketrans("ACGTNacgtnRYKMrykmBDHVbdhvSWsw", "TGCANtgcanYRMKyrmkVHDBvhdbSWsw")


def checksum(seq: str) -> str:
    """Lowercase hex MD5 of a sequence; no salt, so equal input gives equal IDs."""
    return hashlib.md5(seq.encode("utf-8")).hexdigest()


def reverse_complement(seq: str) -> str:
    return seq.translate(_COMPLEMENT)[::-1]


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)
