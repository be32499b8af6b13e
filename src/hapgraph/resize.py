from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .errors import StrandMismatchError
from .merge import merge_consecutive_spans
from .models import AssemblySpan, AssemblyVariant, ReferenceRange

logger = logging.getLogger(__name__)


def is_resizable(variant: AssemblyVariant) -> bool:
    """Reference blocks with a one-base REF and equal-length substitutions can be clipped."""
    if variant.kind.has_extent and len(variant.ref) == 1:
        return True
    return variant.alt is not None and len(variant.ref) == len(variant.alt)


def resize_variant(variant: AssemblyVariant, position: int) -> Optional[int]:
    """Assembly coordinate that corresponds to reference ``position``.

    Positions before the variant clamp to ``asm_start`` and positions after
    it clamp to ``asm_end``. Returns None when the variant cannot be clipped
    (indels with unequal allele lengths).
    """
    if not is_resizable(variant):
        return None
    if position < variant.start:
        return variant.asm_start
    if position > variant.end:
        return variant.asm_end
    offset = position - variant.start
    if variant.asm_strand == "-":
        return variant.asm_start - offset
    return variant.asm_start + offset


def _clip_start(variant: AssemblyVariant, position: int) -> int:
    # asm_start/asm_end are in traversal order, so the fallback is strand-aware as is
    asm = resize_variant(variant, position)
    if asm is None:
        logger.debug(
            "Variant %s:%d-%d is not resizable; using ASM_Start=%d for range start %d",
            variant.contig,
            variant.start,
            variant.end,
            variant.asm_start,
            position,
        )
        return variant.asm_start
    return asm


def _clip_end(variant: AssemblyVariant, position: int) -> int:
    asm = resize_variant(variant, position)
    if asm is None:
        logger.debug(
            "Variant %s:%d-%d is not resizable; using ASM_End=%d for range end %d",
            variant.contig,
            variant.start,
            variant.end,
            variant.asm_end,
            position,
        )
        return variant.asm_end
    return asm


def build_assembly_spans(
    ref_range: ReferenceRange,
    bucket: Sequence[AssemblyVariant],
) -> List[AssemblySpan]:
    """Turn one range's bucket into clipped, merged assembly spans.

    Only the first variant's start and the last variant's end are clipped to
    the range boundaries; everything in between is already inside the range.

    Raises
    ------
    StrandMismatchError
        If the first and last variant of the bucket are on different strands.
    """
    if not bucket:
        return []

    first, last = bucket[0], bucket[-1]
    if first.asm_strand != last.asm_strand:
        raise StrandMismatchError(
            f"Strand mismatch in range {ref_range}: first variant at {first.contig}:{first.start} "
            f"is '{first.asm_strand}', last variant at {last.contig}:{last.start} is '{last.asm_strand}'"
        )

    if len(bucket) == 1:
        spans = [
            AssemblySpan(
                contig=first.asm_contig,
                start=_clip_start(first, ref_range.start),
                end=_clip_end(first, ref_range.end),
                strand=first.asm_strand,
            )
        ]
    else:
        spans = [
            AssemblySpan(
                contig=first.asm_contig,
                start=_clip_start(first, ref_range.start),
                end=first.asm_end,
                strand=first.asm_strand,
            )
        ]
        spans.extend(v.to_span() for v in bucket[1:-1])
        spans.append(
            AssemblySpan(
                contig=last.asm_contig,
                start=last.asm_start,
                end=_clip_end(last, ref_range.end),
                strand=last.asm_strand,
            )
        )

    return merge_consecutive_spans(spans)
