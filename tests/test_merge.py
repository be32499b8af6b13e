from hapgraph.merge import merge_consecutive_spans
from hapgraph.models import AssemblySpan


def S(start, end, strand=None, contig="c"):
    if strand is None:
        strand = "-" if start > end else "+"
    return AssemblySpan(contig, start, end, strand)


def test_forward_adjacent_spans_merge():
    out = merge_consecutive_spans([S(7, 10), S(11, 11), S(12, 15), S(19, 20), S(21, 21), S(22, 23)])
    assert out == [S(7, 15), S(19, 23)]


def test_reverse_adjacent_spans_merge():
    out = merge_consecutive_spans([S(30, 21), S(20, 20, "-"), S(19, 10)])
    assert out == [S(30, 10)]


def test_single_base_spans_follow_their_strand():
    assert merge_consecutive_spans([S(5, 5), S(6, 6)]) == [S(5, 6)]
    assert merge_consecutive_spans([S(5, 5, "-"), S(4, 4, "-")]) == [S(5, 4, "-")]
    spans = [S(5, 5), S(4, 4)]
    assert merge_consecutive_spans(spans) == spans


def test_single_base_against_direction_does_not_merge():
    spans = [S(10, 20), S(19, 19)]
    assert merge_consecutive_spans(spans) == spans


def test_single_base_on_other_strand_does_not_merge():
    spans = [S(7, 10), S(11, 11, "-")]
    assert merge_consecutive_spans(spans) == spans
    spans = [S(30, 21), S(20, 20, "+")]
    assert merge_consecutive_spans(spans) == spans
    spans = [S(5, 5, "+"), S(4, 4, "-")]
    assert merge_consecutive_spans(spans) == spans


def test_gap_strand_change_and_contig_change_break():
    spans = [S(1, 10), S(12, 20)]
    assert merge_consecutive_spans(spans) == spans
    spans = [S(1, 10), S(11, 20, "-")]
    assert merge_consecutive_spans(spans) == spans
    spans = [S(1, 10), S(11, 20, contig="d")]
    assert merge_consecutive_spans(spans) == spans


def test_merge_is_idempotent():
    inputs = [
        [S(7, 10), S(11, 11), S(12, 15), S(19, 20), S(21, 21), S(22, 23)],
        [S(5, 5, "-"), S(4, 4, "-"), S(3, 1)],
        [S(1, 1), S(3, 3), S(4, 4), S(10, 2), S(1, 1, "-")],
        [S(7, 10), S(11, 11, "-"), S(12, 15)],
        [],
    ]
    for spans in inputs:
        once = merge_consecutive_spans(spans)
        assert merge_consecutive_spans(once) == once
