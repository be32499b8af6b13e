from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List

from .errors import ConfigurationError
from .models import ReferenceRange, contig_sort_key
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

_SKIP_PREFIXES = ("#", "track", "browser")


def sort_ranges(ranges: Iterable[ReferenceRange]) -> List[ReferenceRange]:
    return sorted(ranges, key=lambda r: r.sort_key())


def validate_ranges(ranges: Iterable[ReferenceRange]) -> List[ReferenceRange]:
    """Sort ranges and reject any pair that overlaps.

    Raises
    ------
    ConfigurationError
        If two ranges on the same contig share at least one base, or a range
        has ``start > end``.
    """
    ordered = sort_ranges(ranges)
    for r in ordered:
        if r.start > r.end or r.start < 1:
            raise ConfigurationError(f"Invalid reference range {r}: start must be >= 1 and <= end")
    for prev, cur in zip(ordered, ordered[1:]):
        if prev.overlaps(cur):
            raise ConfigurationError(f"Reference ranges overlap: {prev} and {cur}")
    return ordered


def load_ranges(bed_path: str | Path) -> List[ReferenceRange]:
    """Load reference ranges from a BED file.

    BED is 0-based half-open; ranges come back 1-based inclusive, sorted by
    contig order then start. Header, ``track`` and ``browser`` lines are
    ignored.
    """
    ranges: List[ReferenceRange] = []
    with open_textmaybe_gzip(bed_path, "rt") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith(_SKIP_PREFIXES):
                continue
            fields = line.split("\t")
            if len(fields) < 3:
                fields = line.split()
            if len(fields) < 3:
                raise ConfigurationError(f"{bed_path}:{lineno}: expected at least 3 BED columns")
            try:
                start0 = int(fields[1])
                end = int(fields[2])
            except ValueError as e:
                raise ConfigurationError(f"{bed_path}:{lineno}: non-integer BED coordinate") from e
            ranges.append(ReferenceRange(contig=fields[0], start=start0 + 1, end=end))

    if not ranges:
        raise ConfigurationError(f"No reference ranges found in {bed_path}")
    ordered = validate_ranges(ranges)
    logger.info("Loaded %d reference ranges from %s", len(ordered), bed_path)
    return ordered


def ranges_by_contig(ranges: Iterable[ReferenceRange]) -> Dict[str, List[ReferenceRange]]:
    """Group ranges per contig; keys are in contig order, values sorted by start."""
    by_contig: Dict[str, List[ReferenceRange]] = {}
    for r in sort_ranges(ranges):
        by_contig.setdefault(r.contig, []).append(r)
    return {c: by_contig[c] for c in sorted(by_contig, key=contig_sort_key)}
