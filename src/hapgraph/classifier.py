"""Overlap classification between reference ranges and assembly variants.

A single sweep walks the sorted ranges of one contig against the sorted
variants of the same contig. Each variant is looked at only while it can
still overlap the current or a later range.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterator, List, Sequence, Tuple

from .models import AssemblyVariant, ReferenceRange

logger = logging.getLogger(__name__)


class OverlapState(str, Enum):
    RANGE_IN_VARIANT = "RANGE_IN_VARIANT"
    VARIANT_CONTAINED = "VARIANT_CONTAINED"
    PARTIAL_START = "PARTIAL_START"
    PARTIAL_END = "PARTIAL_END"
    AFTER_RANGE = "AFTER_RANGE"
    NO_OVERLAP = "NO_OVERLAP"


def classify_overlap(ref_range: ReferenceRange, variant: AssemblyVariant) -> OverlapState:
    """Classify how ``variant`` sits relative to ``ref_range``.

    Checks run in priority order, so a variant exactly matching the range is
    ``RANGE_IN_VARIANT`` rather than ``VARIANT_CONTAINED``. Point calls (SNPs
    and indels) only occupy their start for this purpose.
    """
    if variant.contig != ref_range.contig:
        return OverlapState.NO_OVERLAP

    vstart = variant.start
    vend = variant.overlap_end
    rstart, rend = ref_range.start, ref_range.end

    if vstart <= rstart and vend >= rend:
        return OverlapState.RANGE_IN_VARIANT
    if vstart >= rstart and vend <= rend:
        return OverlapState.VARIANT_CONTAINED
    if rstart <= vstart <= rend and vend > rend:
        return OverlapState.PARTIAL_START
    if rstart <= vend <= rend and vstart < rstart:
        return OverlapState.PARTIAL_END
    if vstart > rend:
        return OverlapState.AFTER_RANGE
    return OverlapState.NO_OVERLAP


def bucket_variants(
    ranges: Sequence[ReferenceRange],
    variants: Sequence[AssemblyVariant],
) -> Iterator[Tuple[ReferenceRange, List[AssemblyVariant]]]:
    """Yield ``(range, bucket)`` for every range with at least one overlapping variant.

    Parameters
    ----------
    ranges:
        Ranges of one contig, sorted by start and non-overlapping.
    variants:
        Variants of the same contig and sample, sorted by start.

    Notes
    -----
    The cursor is shared across ranges: a variant that runs past the end of
    one range is kept for the next one.
    """
    idx = 0
    n = len(variants)
    uncovered = 0

    for ref_range in ranges:
        bucket: List[AssemblyVariant] = []
        while idx < n:
            variant = variants[idx]
            state = classify_overlap(ref_range, variant)
            if state is OverlapState.RANGE_IN_VARIANT:
                bucket = [variant]
                break
            if state is OverlapState.VARIANT_CONTAINED or state is OverlapState.PARTIAL_END:
                bucket.append(variant)
                idx += 1
            elif state is OverlapState.PARTIAL_START:
                bucket.append(variant)
                break
            elif state is OverlapState.AFTER_RANGE:
                break
            else:
                idx += 1

        if bucket:
            yield ref_range, bucket
        else:
            uncovered += 1

    if uncovered and ranges:
        logger.debug(
            "%d of %d ranges on %s have no assembly coverage",
            uncovered,
            len(ranges),
            ranges[0].contig,
        )
