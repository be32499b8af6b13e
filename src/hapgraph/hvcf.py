"""h.vcf export and import.

An h.vcf has one ``##ALT`` header line per haplotype and one record per
reference range whose ALT allele is ``<hapID>``::

    ##ALT=<ID=0f1e...,Description="haplotype data for line: LineA",Source="...",
           SampleName="LineA",Regions="chr1:11-60",Checksum="0f1e...",
           RefChecksum="9a8b...",RefRange="chr1:1-50">
    chr1  1  .  A  <0f1e...>  .  .  END=50  GT  1
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pysam

from .errors import ConfigurationError
from .graph import HaplotypeGraph
from .models import AssemblySpan, Haplotype, HaplotypeHeader, ReferenceRange, contig_sort_key
from .utils import ensure_outdir

logger = logging.getLogger(__name__)

_ALT_LINE = re.compile(r"^##ALT=<(.*)>\s*$")
_ALT_FIELD = re.compile(r'(\w+)=("(?:[^"\\]|\\.)*"|[^,]*)')


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def alt_header_line(header: HaplotypeHeader) -> str:
    fields = [
        ("Description", header.description),
        ("Source", header.source),
        ("SampleName", header.sample),
        ("Regions", header.regions),
        ("Checksum", header.checksum),
        ("RefChecksum", header.ref_checksum),
        ("RefRange", header.ref_range_id),
    ]
    body = ",".join(f"{k}={_quote(v)}" for k, v in fields)
    return f"##ALT=<ID={header.hap_id},{body}>"


def parse_alt_line(line: str) -> Optional[Dict[str, str]]:
    """Parse one ``##ALT=<...>`` line into a field dict; None for other lines."""
    m = _ALT_LINE.match(line.strip())
    if m is None:
        return None
    fields: Dict[str, str] = {}
    for key, raw in _ALT_FIELD.findall(m.group(1)):
        if raw.startswith('"') and raw.endswith('"') and len(raw) >= 2:
            raw = re.sub(r"\\(.)", r"\1", raw[1:-1])
        fields[key] = raw
    return fields


def header_from_fields(fields: Mapping[str, str]) -> HaplotypeHeader:
    return HaplotypeHeader(
        hap_id=fields["ID"],
        sample=fields.get("SampleName", ""),
        regions=fields.get("Regions", ""),
        checksum=fields.get("Checksum", fields["ID"]),
        ref_checksum=fields.get("RefChecksum", ""),
        ref_range_id=fields.get("RefRange", ""),
        source=fields.get("Source", ""),
    )


def _fallback_header(hap: Haplotype, source: str) -> HaplotypeHeader:
    return HaplotypeHeader(
        hap_id=hap.hap_id,
        sample=hap.sample,
        regions=hap.regions,
        checksum=hap.hap_id,
        ref_checksum=hap.ref_checksum,
        ref_range_id=hap.ref_range.range_id,
        source=source,
    )


def write_hvcf(
    path: str | Path,
    haplotypes: Sequence[Haplotype],
    *,
    sample: str,
    headers: Optional[Mapping[str, HaplotypeHeader]] = None,
    reference: Optional[Mapping[str, str]] = None,
    source: str = "",
    compress: bool = False,
) -> Path:
    """Write one sample's haplotypes as an h.vcf.

    Parameters
    ----------
    path:
        Output path of the plain h.vcf (``.gz`` is appended when compressing).
    haplotypes:
        The sample's haplotypes; written in range order.
    sample:
        Sample column name.
    headers:
        hapID -> header; missing entries are derived from the haplotype.
    reference:
        ``{contig: sequence}``; used for the REF base and contig lengths.
        Without it REF is ``N``.
    compress:
        bgzip the file and build a tabix index (via pysam).

    Returns
    -------
    Path
        The file written (``.h.vcf`` or ``.h.vcf.gz``).
    """
    out = Path(path)
    ensure_outdir(out.parent)
    ordered = sorted(haplotypes, key=lambda h: h.ref_range.sort_key())

    vh = pysam.VariantHeader()
    vh.add_meta("fileformat", "VCFv4.2")
    contigs = sorted({h.ref_range.contig for h in ordered}, key=contig_sort_key)
    for contig in contigs:
        if reference is not None and contig in reference:
            vh.contigs.add(contig, length=len(reference[contig]))
        else:
            vh.contigs.add(contig)
    vh.info.add("END", 1, "Integer", "Stop position of the interval")
    vh.formats.add("GT", 1, "String", "Genotype")

    written = set()
    for hap in ordered:
        if hap.hap_id in written:
            continue
        written.add(hap.hap_id)
        header = (headers or {}).get(hap.hap_id) or _fallback_header(hap, source)
        vh.add_line(alt_header_line(header))
    vh.add_sample(sample)

    with pysam.VariantFile(str(out), "w", header=vh) as vcf:
        for hap in ordered:
            r = hap.ref_range
            ref_base = "N"
            if reference is not None and r.contig in reference:
                ref_base = reference[r.contig][r.start - 1 : r.start].upper() or "N"
            rec = vcf.new_record(
                contig=r.contig,
                start=r.start - 1,
                stop=r.end,
                alleles=(ref_base, f"<{hap.hap_id}>"),
            )
            rec.samples[0]["GT"] = (1,)
            vcf.write(rec)

    if not compress:
        logger.info("Wrote %d haplotypes for %s to %s", len(ordered), sample, out)
        return out

    gz = out.with_name(out.name + ".gz")
    pysam.tabix_compress(str(out), str(gz), force=True)
    pysam.tabix_index(str(gz), preset="vcf", force=True)
    out.unlink()
    logger.info("Wrote %d haplotypes for %s to %s", len(ordered), sample, gz)
    return gz


def write_sample_hvcfs(
    outdir: str | Path,
    haplotypes_by_sample: Mapping[str, Sequence[Haplotype]],
    *,
    headers_by_sample: Optional[Mapping[str, Mapping[str, HaplotypeHeader]]] = None,
    reference: Optional[Mapping[str, str]] = None,
    source: str = "",
    compress: bool = False,
) -> Dict[str, Path]:
    """Write ``<outdir>/<sample>.h.vcf[.gz]`` for every sample.

    ``headers_by_sample`` maps each sample to its own hapID -> header map, so
    a hapID shared with another sample still carries this sample's regions.
    """
    d = ensure_outdir(outdir)
    return {
        sample: write_hvcf(
            d / f"{sample}.h.vcf",
            haps,
            sample=sample,
            headers=(headers_by_sample or {}).get(sample),
            reference=reference,
            source=source,
            compress=compress,
        )
        for sample, haps in sorted(haplotypes_by_sample.items())
    }


def read_hvcf(path: str | Path) -> Tuple[str, List[Haplotype], List[HaplotypeHeader]]:
    """Read an h.vcf back into haplotypes and their ALT headers.

    Haplotype lengths are the summed lengths of the header's regions.

    Raises
    ------
    ConfigurationError
        A record refers to a hapID without an ``##ALT`` line, or the file has
        no sample column.
    """
    with pysam.VariantFile(str(path)) as vcf:
        samples = list(vcf.header.samples)
        if not samples:
            raise ConfigurationError(f"{path}: h.vcf has no sample column")
        sample = samples[0]

        headers: Dict[str, HaplotypeHeader] = {}
        for line in str(vcf.header).splitlines():
            fields = parse_alt_line(line)
            if fields is not None and "ID" in fields:
                headers.setdefault(fields["ID"], header_from_fields(fields))

        haplotypes: List[Haplotype] = []
        for rec in vcf:
            alts = [a for a in (rec.alts or ()) if a.startswith("<") and a.endswith(">")]
            if not alts:
                continue
            hap_id = alts[0][1:-1]
            header = headers.get(hap_id)
            if header is None:
                raise ConfigurationError(f"{path}: record {rec.contig}:{rec.pos} uses <{hap_id}> with no ##ALT line")
            spans = tuple(AssemblySpan.parse(s) for s in header.regions.split(",") if s)
            haplotypes.append(
                Haplotype(
                    hap_id=hap_id,
                    sample=sample,
                    ref_range=ReferenceRange(contig=str(rec.contig), start=int(rec.pos), end=int(rec.stop)),
                    spans=spans,
                    ref_checksum=header.ref_checksum,
                    seq_length=sum(s.length for s in spans),
                )
            )

    logger.info("Read %d haplotypes for %s from %s", len(haplotypes), sample, path)
    return sample, haplotypes, list(headers.values())


def graph_from_hvcfs(paths: Iterable[str | Path]) -> HaplotypeGraph:
    """Build a graph from existing h.vcf files (headers first-wins in path order)."""
    all_haps: List[Haplotype] = []
    all_headers: Dict[str, HaplotypeHeader] = {}
    for p in paths:
        _, haps, hdrs = read_hvcf(p)
        all_haps.extend(haps)
        for h in hdrs:
            all_headers.setdefault(h.hap_id, h)
    return HaplotypeGraph.from_haplotypes(all_haps, headers=all_headers)


__all__ = [
    "alt_header_line",
    "graph_from_hvcfs",
    "parse_alt_line",
    "read_hvcf",
    "write_hvcf",
    "write_sample_hvcfs",
]
