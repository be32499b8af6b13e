from __future__ import annotations

import logging
import threading
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .classifier import bucket_variants
from .errors import ConfigurationError, SequenceExtractionError
from .models import (
    AssemblySpan,
    AssemblyVariant,
    Haplotype,
    HaplotypeHeader,
    HaplotypeMetadata,
    ReferenceRange,
    regions_string,
)
from .ranges import ranges_by_contig
from .resize import build_assembly_spans
from .sequences import SequenceExtractor, SequenceQuery
from .utils import checksum, reverse_complement

logger = logging.getLogger(__name__)

__all__ = [
    "HeaderRegistry",
    "add_sequences",
    "checksum",
    "collect_sample_metadata",
    "metadata_to_haplotypes",
    "reference_haplotypes",
    "reference_slice",
]


class HeaderRegistry:
    """Thread-safe hapID -> header map where the first insertion wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._headers: Dict[str, HaplotypeHeader] = {}

    def add(self, header: HaplotypeHeader) -> bool:
        """Insert ``header`` unless its hapID is known; returns True if inserted."""
        with self._lock:
            if header.hap_id in self._headers:
                return False
            self._headers[header.hap_id] = header
            return True

    def merge(self, other: "HeaderRegistry") -> int:
        """Copy headers from ``other`` that are not yet present; returns the number added."""
        added = 0
        for header in other.headers():
            if self.add(header):
                added += 1
        return added

    def get(self, hap_id: str) -> Optional[HaplotypeHeader]:
        with self._lock:
            return self._headers.get(hap_id)

    def headers(self) -> List[HaplotypeHeader]:
        with self._lock:
            return list(self._headers.values())

    def as_dict(self) -> Dict[str, HaplotypeHeader]:
        with self._lock:
            return dict(self._headers)

    def __contains__(self, hap_id: object) -> bool:
        with self._lock:
            return hap_id in self._headers

    def __len__(self) -> int:
        with self._lock:
            return len(self._headers)


def reference_slice(reference: Mapping[str, str], ref_range: ReferenceRange, *, sample: str = "") -> str:
    """Reference bases of ``ref_range``; the range must lie fully inside its contig."""
    ref_contig = reference.get(ref_range.contig)
    needed = f" (needed for sample {sample})" if sample else ""
    if ref_contig is None:
        raise ConfigurationError(f"Reference contig {ref_range.contig}{needed} is not in the reference FASTA")
    ref_seq = ref_contig[ref_range.start - 1 : ref_range.end]
    if len(ref_seq) != ref_range.length:
        raise ConfigurationError(
            f"Range {ref_range}{needed} runs past the end of {ref_range.contig} "
            f"({len(ref_contig)} bp): got {len(ref_seq)} of {ref_range.length} bases"
        )
    return ref_seq


def collect_sample_metadata(
    sample: str,
    ranges: Sequence[ReferenceRange],
    variants_by_contig: Mapping[str, Sequence[AssemblyVariant]],
    reference: Mapping[str, str],
) -> List[HaplotypeMetadata]:
    """Classify, clip and merge one sample's variants into per-range metadata.

    Parameters
    ----------
    sample:
        Sample identifier.
    ranges:
        All reference ranges (any contig).
    variants_by_contig:
        The sample's variants, per reference contig, sorted by start.
    reference:
        ``{contig: sequence}`` of the reference genome.

    Returns
    -------
    list of HaplotypeMetadata
        One entry per covered range, in contig then start order. Ranges
        without overlapping variants are absent.

    Raises
    ------
    ConfigurationError
        A range contig is missing from the reference, or a covered range runs
        past the end of its contig.
    """
    metadata: List[HaplotypeMetadata] = []
    for contig, contig_ranges in ranges_by_contig(ranges).items():
        variants = variants_by_contig.get(contig)
        if not variants:
            continue
        for ref_range, bucket in bucket_variants(contig_ranges, variants):
            ref_seq = reference_slice(reference, ref_range, sample=sample)
            spans = build_assembly_spans(ref_range, bucket)
            if not spans:
                logger.warning("No assembly spans for sample %s at %s; skipping range", sample, ref_range)
                continue
            metadata.append(HaplotypeMetadata(sample=sample, ref_range=ref_range, ref_seq=ref_seq, spans=spans))
    logger.info("Sample %s covers %d of %d ranges", sample, len(metadata), len(ranges))
    return metadata


def _queries(metadata: Sequence[HaplotypeMetadata]) -> Iterator[Tuple[HaplotypeMetadata, SequenceQuery]]:
    for m in metadata:
        for span in m.spans:
            yield m, SequenceQuery.from_span(span)


def add_sequences(metadata: Sequence[HaplotypeMetadata], extractor: SequenceExtractor) -> None:
    """Fill ``asm_seq`` for every entry with a single batched extraction call.

    Reverse-strand spans are reverse-complemented; span sequences are
    concatenated in span order.
    """
    if not metadata:
        return
    sample = metadata[0].sample
    if any(m.sample != sample for m in metadata):
        raise ValueError("add_sequences expects metadata of a single sample")

    queries = list(dict.fromkeys(q for _, q in _queries(metadata)))
    sequences = extractor.extract(sample, queries)

    for m in metadata:
        parts: List[str] = []
        for span in m.spans:
            q = SequenceQuery.from_span(span)
            seq = sequences.get(q)
            if seq is None:
                raise SequenceExtractionError(
                    f"No sequence extracted for {q} (sample {sample}, range {m.ref_range})"
                )
            parts.append(reverse_complement(seq) if span.is_reverse else seq)
        m.asm_seq = "".join(parts)


def metadata_to_haplotypes(
    metadata: Sequence[HaplotypeMetadata],
    registry: HeaderRegistry,
    *,
    source: str = "",
) -> List[Haplotype]:
    """Hash each filled entry into a Haplotype and register its ALT header."""
    haplotypes: List[Haplotype] = []
    for m in metadata:
        hap_id = checksum(m.asm_seq)
        ref_checksum = checksum(m.ref_seq)
        hap = Haplotype(
            hap_id=hap_id,
            sample=m.sample,
            ref_range=m.ref_range,
            spans=tuple(m.spans),
            ref_checksum=ref_checksum,
            seq_length=len(m.asm_seq),
        )
        header = HaplotypeHeader(
            hap_id=hap_id,
            sample=m.sample,
            regions=regions_string(m.spans),
            checksum=hap_id,
            ref_checksum=ref_checksum,
            ref_range_id=m.ref_range.range_id,
            source=source,
        )
        if not registry.add(header):
            logger.info("Haplotype %s (%s, %s) already has a header; keeping the first", hap_id, m.sample, m.ref_range)
        haplotypes.append(hap)
    return haplotypes


def reference_haplotypes(
    ranges: Sequence[ReferenceRange],
    reference: Mapping[str, str],
    ref_name: str,
    registry: Optional[HeaderRegistry] = None,
    *,
    source: str = "",
) -> List[Haplotype]:
    """One haplotype per range carrying the reference sequence itself.

    The hapID is the MD5 of the range's reference bases, so an assembly that
    matches the reference at a range shares the reference's hapID there. The
    single region is the range on the forward strand.

    Raises
    ------
    ConfigurationError
        A range contig is missing from the reference or the range runs past
        the end of its contig.
    """
    metadata: List[HaplotypeMetadata] = []
    for ref_range in sorted(ranges):
        ref_seq = reference_slice(reference, ref_range, sample=ref_name)
        span = AssemblySpan(contig=ref_range.contig, start=ref_range.start, end=ref_range.end, strand="+")
        metadata.append(
            HaplotypeMetadata(sample=ref_name, ref_range=ref_range, ref_seq=ref_seq, spans=[span], asm_seq=ref_seq)
        )
    if registry is None:
        registry = HeaderRegistry()
    haplotypes = metadata_to_haplotypes(metadata, registry, source=source)
    logger.info("Built %d reference haplotypes for %s", len(haplotypes), ref_name)
    return haplotypes
