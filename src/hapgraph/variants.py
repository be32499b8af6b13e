from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pysam

from .errors import ConfigurationError
from .models import AssemblyVariant, Position, VariantKind

logger = logging.getLogger(__name__)

REQUIRED_ASM_INFO = ("ASM_Chr", "ASM_Start", "ASM_End")

# INFO declarations written by the toy-data generator and expected by the loader.
ASM_INFO_HEADERS: Sequence[Tuple[str, str, str, str]] = (
    ("ASM_Chr", "1", "String", "Assembly chromosome"),
    ("ASM_Start", "1", "Integer", "Assembly start position"),
    ("ASM_End", "1", "Integer", "Assembly end position"),
    ("ASM_Strand", "1", "String", "Assembly strand"),
)

_REF_BLOCK_ALLELES = {"<NON_REF>", "<*>"}
_GVCF_SUFFIXES = (".g.vcf", ".g.vcf.gz", ".gvcf", ".gvcf.gz")


def _is_symbolic(allele: str) -> bool:
    return allele.startswith("<") or allele == "*"


def classify_kind(ref: str, alts: Sequence[str]) -> Tuple[VariantKind, Optional[str]]:
    """Return the call kind and the first concrete alternate allele."""
    concrete = [a for a in alts if not _is_symbolic(a)]
    if not concrete:
        if all(a in _REF_BLOCK_ALLELES for a in alts):
            return VariantKind.REF_BLOCK, None
        return VariantKind.SYMBOLIC, None
    alt = concrete[0]
    if len(alt) == len(ref):
        return VariantKind.SNP, alt
    if len(alt) > len(ref):
        return VariantKind.INSERTION, alt
    return VariantKind.DELETION, alt


def validate_gvcf_header(header: pysam.VariantHeader, path: str | Path) -> None:
    missing = [k for k in REQUIRED_ASM_INFO if k not in header.info]
    if missing:
        raise ConfigurationError(
            f"{path}: gVCF header is missing required INFO field(s) {', '.join(missing)}. "
            "Assembly gVCFs must carry ASM_Chr, ASM_Start and ASM_End."
        )


def variant_from_record(rec: pysam.VariantRecord) -> AssemblyVariant:
    """Build a typed variant; missing ASM_* attributes fall back to reference coordinates."""
    ref = str(rec.ref)
    kind, alt = classify_kind(ref, list(rec.alts or ()))
    contig = str(rec.contig)
    start = int(rec.pos)
    end = int(rec.stop)

    info = rec.info
    asm_contig = info.get("ASM_Chr")
    asm_start = info.get("ASM_Start")
    asm_end = info.get("ASM_End")
    strand = info.get("ASM_Strand")

    return AssemblyVariant(
        contig=contig,
        start=start,
        end=end,
        ref=ref,
        alt=alt,
        kind=kind,
        asm_contig=str(asm_contig) if asm_contig is not None else contig,
        asm_start=int(asm_start) if asm_start is not None else start,
        asm_end=int(asm_end) if asm_end is not None else end,
        asm_strand=str(strand) if strand in ("+", "-") else "+",
    )


def load_assembly_gvcf(
    gvcf_path: str | Path,
    *,
    sample: Optional[str] = None,
) -> Tuple[str, List[AssemblyVariant]]:
    """Load one assembly's gVCF.

    Parameters
    ----------
    gvcf_path:
        gVCF produced by the assembly aligner (plain or bgzipped).
    sample:
        Sample name override. If None, the first header sample is used.

    Returns
    -------
    sample:
        Sample identifier.
    variants:
        Variants sorted by contig order and start.
    """
    with pysam.VariantFile(str(gvcf_path)) as vcf:
        validate_gvcf_header(vcf.header, gvcf_path)
        if sample is None:
            samples = list(vcf.header.samples)
            if not samples:
                raise ConfigurationError(f"{gvcf_path}: gVCF has no sample column")
            sample = samples[0]
        variants = [variant_from_record(rec) for rec in vcf]

    variants.sort(key=lambda v: Position(v.contig, v.start))
    logger.info("Loaded %d variants for sample %s from %s", len(variants), sample, gvcf_path)
    return sample, variants


def group_by_contig(variants: Iterable[AssemblyVariant]) -> Dict[str, List[AssemblyVariant]]:
    """Split a sorted variant list per reference contig (order preserved)."""
    by_contig: Dict[str, List[AssemblyVariant]] = {}
    for v in variants:
        by_contig.setdefault(v.contig, []).append(v)
    return by_contig


def discover_gvcfs(directory: str | Path) -> List[Path]:
    """All ``*.g.vcf`` / ``*.g.vcf.gz`` (and ``.gvcf``) files in a directory, sorted by name."""
    d = Path(directory)
    if not d.is_dir():
        raise ConfigurationError(f"gVCF directory does not exist: {d}")
    found = sorted(p for p in d.iterdir() if p.is_file() and p.name.endswith(_GVCF_SUFFIXES))
    if not found:
        raise ConfigurationError(f"No gVCF files (*.g.vcf, *.g.vcf.gz) found in {d}")
    return found
