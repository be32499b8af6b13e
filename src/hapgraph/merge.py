from __future__ import annotations

from typing import Iterable, List

from .models import AssemblySpan


def _step(span: AssemblySpan) -> int:
    return -1 if span.is_reverse else 1


def _extends(cur: AssemblySpan, nxt: AssemblySpan) -> bool:
    if cur.contig != nxt.contig or cur.strand != nxt.strand:
        return False
    return nxt.start == cur.end + _step(cur)


def _join(cur: AssemblySpan, nxt: AssemblySpan) -> AssemblySpan:
    return AssemblySpan(contig=cur.contig, start=cur.start, end=nxt.end, strand=cur.strand)


def merge_consecutive_spans(spans: Iterable[AssemblySpan]) -> List[AssemblySpan]:
    """Collapse adjacent assembly spans into the smallest ordered list.

    A span extends the running one when it is on the same contig and strand
    and continues it by exactly one base in that strand's direction. A
    one-base span has its direction from its strand: a ``-`` base extends
    backwards and a ``+`` base forwards. Spans on different strands never
    merge, since the merged span would be extracted with a single
    orientation.

    >>> merge_consecutive_spans([AssemblySpan("c", 7, 10), AssemblySpan("c", 11, 11), AssemblySpan("c", 12, 15)])
    [AssemblySpan(contig='c', start=7, end=15, strand='+')]
    """
    merged: List[AssemblySpan] = []
    for span in spans:
        if merged and _extends(merged[-1], span):
            merged[-1] = _join(merged[-1], span)
        else:
            merged.append(span)
    return merged
