from typing import Optional

from hapgraph.classifier import OverlapState, bucket_variants, classify_overlap
from hapgraph.models import AssemblyVariant, ReferenceRange, VariantKind


def block(start: int, end: int, asm_start: Optional[int] = None, asm_end: Optional[int] = None, strand: str = "+"):
    return AssemblyVariant(
        contig="chr1",
        start=start,
        end=end,
        ref="A",
        alt=None,
        kind=VariantKind.REF_BLOCK,
        asm_contig="chr1",
        asm_start=start if asm_start is None else asm_start,
        asm_end=end if asm_end is None else asm_end,
        asm_strand=strand,
    )


def snp(pos: int):
    return AssemblyVariant(
        contig="chr1",
        start=pos,
        end=pos,
        ref="A",
        alt="T",
        kind=VariantKind.SNP,
        asm_contig="chr1",
        asm_start=pos,
        asm_end=pos,
    )


R = ReferenceRange("chr1", 100, 200)


def test_range_in_variant():
    assert classify_overlap(R, block(50, 250)) is OverlapState.RANGE_IN_VARIANT
    # exact match goes to the higher-priority state
    assert classify_overlap(R, block(100, 200)) is OverlapState.RANGE_IN_VARIANT


def test_contained_partial_after_and_before():
    assert classify_overlap(R, block(120, 150)) is OverlapState.VARIANT_CONTAINED
    assert classify_overlap(R, block(151, 250)) is OverlapState.PARTIAL_START
    assert classify_overlap(R, block(90, 150)) is OverlapState.PARTIAL_END
    assert classify_overlap(R, block(201, 300)) is OverlapState.AFTER_RANGE
    assert classify_overlap(R, block(10, 99)) is OverlapState.NO_OVERLAP


def test_point_calls_use_start_only():
    # a deletion whose REF runs past the range end still only occupies its start
    deletion = AssemblyVariant(
        contig="chr1",
        start=199,
        end=205,
        ref="ACGTACG",
        alt="A",
        kind=VariantKind.DELETION,
        asm_contig="chr1",
        asm_start=199,
        asm_end=199,
    )
    assert classify_overlap(R, deletion) is OverlapState.VARIANT_CONTAINED


def test_other_contig_is_no_overlap():
    v = AssemblyVariant("chr2", 100, 200, "A", None, VariantKind.REF_BLOCK, "chr2", 100, 200)
    assert classify_overlap(R, v) is OverlapState.NO_OVERLAP


def test_states_partition_positions():
    overlapping = {
        OverlapState.RANGE_IN_VARIANT,
        OverlapState.VARIANT_CONTAINED,
        OverlapState.PARTIAL_START,
        OverlapState.PARTIAL_END,
    }
    for start in range(80, 230, 7):
        for length in (1, 5, 40, 150):
            v = block(start, start + length - 1)
            state = classify_overlap(R, v)
            if v.end < R.start:
                assert state is OverlapState.NO_OVERLAP
            elif v.start > R.end:
                assert state is OverlapState.AFTER_RANGE
            else:
                assert state in overlapping


def test_bucket_split_scenario():
    variants = [block(90, 150, 500, 560), block(151, 250, 561, 660)]
    buckets = list(bucket_variants([R], variants))
    assert len(buckets) == 1
    rng, bucket = buckets[0]
    assert rng == R
    assert bucket == variants


def test_bucket_variant_spanning_two_ranges():
    ranges = [ReferenceRange("chr1", 1, 100), ReferenceRange("chr1", 101, 200)]
    v = block(1, 300)
    out = list(bucket_variants(ranges, [v]))
    assert [(r.range_id, b) for r, b in out] == [("chr1:1-100", [v]), ("chr1:101-200", [v])]


def test_bucket_skips_uncovered_range():
    ranges = [ReferenceRange("chr1", 1, 10), ReferenceRange("chr1", 50, 60), ReferenceRange("chr1", 100, 110)]
    variants = [block(1, 10), block(95, 120)]
    out = list(bucket_variants(ranges, variants))
    assert [r.range_id for r, _ in out] == ["chr1:1-10", "chr1:100-110"]


def test_bucket_collects_snps_between_blocks():
    rng = ReferenceRange("chr1", 7, 23)
    variants = [block(5, 10), snp(11), block(12, 15), block(19, 20), snp(21), block(22, 25)]
    out = list(bucket_variants([rng], variants))
    assert out == [(rng, variants)]
