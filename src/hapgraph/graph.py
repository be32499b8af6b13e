from __future__ import annotations

import hashlib
import logging
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple, Union

import numpy as np

from .models import Haplotype, HaplotypeHeader, ReferenceRange, contig_sort_key, regions_string

logger = logging.getLogger(__name__)

HeaderSource = Union[Iterable[HaplotypeHeader], Mapping[str, HaplotypeHeader]]


class HaplotypeGraph:
    """Read-only index of haplotypes across samples and reference ranges.

    Built once with :meth:`from_haplotypes`; rebuilding is the only way to
    change it. All per-range lookups are dictionary lookups.

    Attributes
    ----------
    ``range -> hapID -> samples``, ``range -> sample -> hapID``,
    ``hapID -> Haplotype`` and ``hapID -> HaplotypeHeader``.
    """

    def __init__(
        self,
        range_hap_samples: Dict[ReferenceRange, Dict[str, FrozenSet[str]]],
        range_sample_hap: Dict[ReferenceRange, Dict[str, str]],
        haplotypes: Dict[str, Haplotype],
        headers: Dict[str, HaplotypeHeader],
        ref_checksums: Dict[ReferenceRange, str],
    ) -> None:
        self._range_hap_samples = {
            r: MappingProxyType(range_hap_samples[r]) for r in sorted(range_hap_samples, key=lambda r: r.sort_key())
        }
        self._range_sample_hap = {r: MappingProxyType(v) for r, v in range_sample_hap.items()}
        self._haplotypes = haplotypes
        self._headers = headers
        self._ref_checksums = ref_checksums
        self._ranges: Tuple[ReferenceRange, ...] = tuple(self._range_hap_samples)
        self._samples: Tuple[str, ...] = tuple(
            sorted({s for m in range_sample_hap.values() for s in m})
        )

    @classmethod
    def from_haplotypes(
        cls,
        haplotypes: Iterable[Haplotype],
        headers: Optional[HeaderSource] = None,
    ) -> "HaplotypeGraph":
        """Fold haplotype records into a graph in one pass.

        Parameters
        ----------
        haplotypes:
            Records from any number of samples, in any order.
        headers:
            ALT header records (iterable or ``{hap_id: header}``). Headers are
            synthesized from the haplotypes for any hapID without one. The
            first header seen for a hapID wins.

        Raises
        ------
        ValueError
            If one sample carries two different hapIDs at the same range.
        """
        hap_samples: Dict[ReferenceRange, Dict[str, Set[str]]] = {}
        sample_hap: Dict[ReferenceRange, Dict[str, str]] = {}
        by_id: Dict[str, Haplotype] = {}
        header_map: Dict[str, HaplotypeHeader] = {}
        ref_checksums: Dict[ReferenceRange, str] = {}

        if headers is not None:
            values = headers.values() if isinstance(headers, Mapping) else headers
            for h in values:
                header_map.setdefault(h.hap_id, h)

        for hap in haplotypes:
            r = hap.ref_range
            per_sample = sample_hap.setdefault(r, {})
            existing = per_sample.get(hap.sample)
            if existing is not None and existing != hap.hap_id:
                raise ValueError(
                    f"Sample {hap.sample} has two haplotypes at {r}: {existing} and {hap.hap_id}"
                )
            per_sample[hap.sample] = hap.hap_id
            hap_samples.setdefault(r, {}).setdefault(hap.hap_id, set()).add(hap.sample)
            by_id.setdefault(hap.hap_id, hap)
            ref_checksums.setdefault(r, hap.ref_checksum)
            if hap.hap_id not in header_map:
                header_map[hap.hap_id] = HaplotypeHeader(
                    hap_id=hap.hap_id,
                    sample=hap.sample,
                    regions=regions_string(list(hap.spans)),
                    checksum=hap.hap_id,
                    ref_checksum=hap.ref_checksum,
                    ref_range_id=r.range_id,
                )

        frozen = {r: {h: frozenset(s) for h, s in m.items()} for r, m in hap_samples.items()}
        graph = cls(frozen, sample_hap, by_id, header_map, ref_checksums)
        logger.info(
            "Built haplotype graph: %d ranges, %d samples, %d haplotypes",
            graph.number_of_ranges(),
            graph.number_of_samples(),
            len(by_id),
        )
        return graph

    def ranges(self) -> List[ReferenceRange]:
        """All ranges with at least one haplotype, in contig then start order."""
        return list(self._ranges)

    def ranges_by_contig(self) -> Dict[str, List[ReferenceRange]]:
        out: Dict[str, List[ReferenceRange]] = {}
        for r in self._ranges:
            out.setdefault(r.contig, []).append(r)
        return {c: out[c] for c in sorted(out, key=contig_sort_key)}

    def samples(self) -> List[str]:
        return list(self._samples)

    def number_of_ranges(self) -> int:
        return len(self._ranges)

    def number_of_samples(self) -> int:
        return len(self._samples)

    def hap_ids(self, ref_range: ReferenceRange) -> List[str]:
        return sorted(self._range_hap_samples.get(ref_range, {}))

    def hap_id_to_samples(self, ref_range: ReferenceRange) -> Mapping[str, FrozenSet[str]]:
        return self._range_hap_samples.get(ref_range, MappingProxyType({}))

    def sample_to_hap_id(self, ref_range: ReferenceRange, sample: str) -> Optional[str]:
        """hapID of ``sample`` at ``ref_range``; None means no assembly coverage."""
        per_sample = self._range_sample_hap.get(ref_range)
        if per_sample is None:
            return None
        return per_sample.get(sample)

    def sample_to_hap_ids(self, sample: str) -> List[Optional[str]]:
        """hapIDs of ``sample`` aligned with :meth:`ranges` (None for gaps)."""
        return [self.sample_to_hap_id(r, sample) for r in self._ranges]

    def haplotype(self, hap_id: str) -> Optional[Haplotype]:
        return self._haplotypes.get(hap_id)

    def header(self, hap_id: str) -> Optional[HaplotypeHeader]:
        return self._headers.get(hap_id)

    def headers(self) -> Mapping[str, HaplotypeHeader]:
        return MappingProxyType(self._headers)

    def hap_id_to_ranges(self) -> Dict[str, List[ReferenceRange]]:
        out: Dict[str, List[ReferenceRange]] = {}
        for r in self._ranges:
            for hap_id in self._range_hap_samples[r]:
                out.setdefault(hap_id, []).append(r)
        return out

    def ref_checksum(self, ref_range: ReferenceRange) -> Optional[str]:
        return self._ref_checksums.get(ref_range)

    def hap_id_to_seq_length(self) -> Dict[str, int]:
        return {h: hap.seq_length for h, hap in self._haplotypes.items()}

    def checksum(self) -> str:
        """Stable MD5 over (range, sample, hapID) triples; independent of fold order."""
        md5 = hashlib.md5()
        for r in self._ranges:
            per_sample = self._range_sample_hap[r]
            for sample in sorted(per_sample):
                md5.update(f"{r}\t{sample}\t{per_sample[sample]}\n".encode("utf-8"))
        return md5.hexdigest()

    def summary(self) -> Dict[str, object]:
        """Graph statistics as plain Python types (JSON-serializable)."""
        haps_per_range = np.array([len(self._range_hap_samples[r]) for r in self._ranges], dtype=np.int64)
        coverage = np.array(
            [sum(1 for r in self._ranges if s in self._range_sample_hap[r]) for s in self._samples],
            dtype=np.int64,
        )
        lengths = np.array([h.seq_length for h in self._haplotypes.values()], dtype=np.int64)

        def stats(a: np.ndarray) -> Dict[str, float]:
            if a.size == 0:
                return {"min": 0.0, "max": 0.0, "mean": 0.0, "median": 0.0}
            return {
                "min": float(a.min()),
                "max": float(a.max()),
                "mean": float(a.mean()),
                "median": float(np.median(a)),
            }

        n_ranges = max(len(self._ranges), 1)
        return {
            "checksum": self.checksum(),
            "number_of_ranges": self.number_of_ranges(),
            "number_of_samples": self.number_of_samples(),
            "number_of_haplotypes": len(self._haplotypes),
            "haplotypes_per_range": stats(haps_per_range),
            "haplotype_length": stats(lengths),
            "sample_coverage": {
                s: float(c) / n_ranges for s, c in zip(self._samples, coverage.tolist())
            },
            "ranges_per_contig": {c: len(rs) for c, rs in self.ranges_by_contig().items()},
        }
