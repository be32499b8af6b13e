from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

_CHR_PREFIX = re.compile(r"^chr", re.IGNORECASE)


def contig_sort_key(contig: str) -> Tuple[int, int, str]:
    """Sort key for contig names: numeric contigs (``1``, ``chr2``) first in
    numeric order, everything else lexicographically after them."""
    core = _CHR_PREFIX.sub("", contig).strip()
    try:
        return (0, int(core), contig)
    except ValueError:
        return (1, 0, contig)


@functools.total_ordering
@dataclass(frozen=True)
class Position:
    """A 1-based position on a contig."""

    contig: str
    position: int

    def __lt__(self, other: "Position") -> bool:
        if not isinstance(other, Position):
            return NotImplemented
        if self.contig == other.contig:
            return self.position < other.position
        return contig_sort_key(self.contig) < contig_sort_key(other.contig)

    def __str__(self) -> str:
        return f"{self.contig}:{self.position}"


@functools.total_ordering
@dataclass(frozen=True)
class ReferenceRange:
    """A reference interval (1-based, inclusive) that defines one graph node slot.

    The ``contig:start-end`` rendering doubles as the range identifier.
    """

    contig: str
    start: int
    end: int

    @property
    def range_id(self) -> str:
        return str(self)

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def start_position(self) -> Position:
        return Position(self.contig, self.start)

    @property
    def end_position(self) -> Position:
        return Position(self.contig, self.end)

    def sort_key(self) -> Tuple[Tuple[int, int, str], int, int]:
        return (contig_sort_key(self.contig), self.start, self.end)

    def overlaps(self, other: "ReferenceRange") -> bool:
        return self.contig == other.contig and self.start <= other.end and other.start <= self.end

    def __lt__(self, other: "ReferenceRange") -> bool:
        if not isinstance(other, ReferenceRange):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        return f"{self.contig}:{self.start}-{self.end}"

    @classmethod
    def parse(cls, text: str) -> "ReferenceRange":
        """Parse ``contig:start-end``."""
        contig, _, coords = text.strip().rpartition(":")
        start, _, end = coords.partition("-")
        if not contig or not start or not end:
            raise ValueError(f"Malformed reference range: {text!r}")
        return cls(contig=contig, start=int(start), end=int(end))


class VariantKind(str, Enum):
    REF_BLOCK = "REF_BLOCK"
    SNP = "SNP"
    INSERTION = "INSERTION"
    DELETION = "DELETION"
    SYMBOLIC = "SYMBOLIC"

    @property
    def has_extent(self) -> bool:
        """Block-like calls cover [start, end]; the rest are point calls at start."""
        return self in (VariantKind.REF_BLOCK, VariantKind.SYMBOLIC)


@dataclass(frozen=True)
class AssemblyVariant:
    """One alignment-derived call of a single sample.

    Attributes
    ----------
    contig, start, end:
        Reference coordinates, 1-based inclusive.
    ref:
        Reference allele.
    alt:
        First concrete alternate allele, or None for reference blocks and
        symbolic-only records.
    kind:
        Call kind, see :class:`VariantKind`.
    asm_contig, asm_start, asm_end, asm_strand:
        Assembly-side coordinates. On the ``-`` strand ``asm_start > asm_end``.
    """

    contig: str
    start: int
    end: int
    ref: str
    alt: Optional[str]
    kind: VariantKind
    asm_contig: str
    asm_start: int
    asm_end: int
    asm_strand: str = "+"

    @property
    def overlap_end(self) -> int:
        return self.end if self.kind.has_extent else self.start

    def to_span(self) -> "AssemblySpan":
        return AssemblySpan(
            contig=self.asm_contig,
            start=self.asm_start,
            end=self.asm_end,
            strand=self.asm_strand,
        )


@dataclass(frozen=True)
class AssemblySpan:
    """A contiguous assembly region contributing to one haplotype.

    ``start``/``end`` are in traversal order; ``-`` strand spans have
    ``start >= end`` and are reverse-complemented on extraction.
    """

    contig: str
    start: int
    end: int
    strand: str = "+"

    @property
    def is_reverse(self) -> bool:
        return self.strand == "-"

    @property
    def low(self) -> int:
        return min(self.start, self.end)

    @property
    def high(self) -> int:
        return max(self.start, self.end)

    @property
    def length(self) -> int:
        return self.high - self.low + 1

    def __str__(self) -> str:
        return f"{self.contig}:{self.start}-{self.end}"

    @classmethod
    def parse(cls, text: str) -> "AssemblySpan":
        """Parse ``contig:start-end``; ``start > end`` means reverse strand."""
        contig, _, coords = text.strip().rpartition(":")
        start_s, _, end_s = coords.partition("-")
        if not contig or not start_s or not end_s:
            raise ValueError(f"Malformed assembly region: {text!r}")
        start, end = int(start_s), int(end_s)
        return cls(contig=contig, start=start, end=end, strand="-" if start > end else "+")


def regions_string(spans: List[AssemblySpan]) -> str:
    return ",".join(str(s) for s in spans)


@dataclass
class HaplotypeMetadata:
    """Per (sample, range) working record; ``asm_seq`` is filled by the builder."""

    sample: str
    ref_range: ReferenceRange
    ref_seq: str
    spans: List[AssemblySpan]
    asm_seq: str = ""


@dataclass(frozen=True)
class Haplotype:
    """The sequence one sample carries over one reference range."""

    hap_id: str
    sample: str
    ref_range: ReferenceRange
    spans: Tuple[AssemblySpan, ...]
    ref_checksum: str
    seq_length: int

    @property
    def regions(self) -> str:
        return regions_string(list(self.spans))


@dataclass(frozen=True)
class HaplotypeHeader:
    """ALT header metadata for a haplotype ID (first writer wins)."""

    hap_id: str
    sample: str
    regions: str
    checksum: str
    ref_checksum: str
    ref_range_id: str
    source: str = ""

    @property
    def description(self) -> str:
        return f"haplotype data for line: {self.sample}"
