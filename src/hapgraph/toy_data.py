from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pysam

from .utils import ensure_outdir, reverse_complement, write_json
from .variants import ASM_INFO_HEADERS

# (reference start, reference end, ref allele, alt allele or None, asm start, asm end, strand)
_Record = Tuple[int, int, str, Optional[str], int, int, str]

TOY_RANGES_0BASED = [
    ("chr1", 0, 100),
    ("chr1", 100, 200),
    ("chr1", 200, 300),
    ("chr1", 300, 400),
    ("chr2", 0, 100),
    ("chr2", 100, 200),
]
TOY_SNP_POS = 150


def _write_fasta(path: Path, records: Dict[str, str]) -> None:
    lines: List[str] = []
    for contig, seq in records.items():
        lines.append(f">{contig}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    pysam.faidx(str(path))


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _random_seq(rng: random.Random, n: int) -> str:
    return "".join(rng.choice("ACGT") for _ in range(n))


def _write_gvcf(
    outdir: Path,
    sample: str,
    reference: Dict[str, str],
    records: Dict[str, List[_Record]],
) -> Path:
    vcf_path = outdir / f"{sample}.g.vcf"
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.add_sample(sample)
    for contig, seq in reference.items():
        header.contigs.add(contig, length=len(seq))
    header.info.add("END", 1, "Integer", "Stop position of the interval")
    for name, number, typ, desc in ASM_INFO_HEADERS:
        header.info.add(name, number, typ, desc)
    header.formats.add("GT", 1, "String", "Genotype")

    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        for contig, recs in records.items():
            for start, end, ref, alt, asm_start, asm_end, strand in recs:
                rec = vcf.new_record(
                    contig=contig,
                    start=start - 1,
                    stop=end,
                    alleles=(ref, alt if alt is not None else "<NON_REF>"),
                )
                rec.info["ASM_Chr"] = contig
                rec.info["ASM_Start"] = asm_start
                rec.info["ASM_End"] = asm_end
                rec.info["ASM_Strand"] = strand
                rec.samples[0]["GT"] = (0,) if alt is None else (1,)
                vcf.write(rec)

    gz = outdir / f"{sample}.g.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(gz), force=True)
    pysam.tabix_index(str(gz), preset="vcf", force=True)
    vcf_path.unlink()
    return gz


def make_toy_data(*, outdir: str | Path, seed: int = 7) -> Dict[str, str]:
    """Create a tiny reference, ranges, assemblies and gVCFs for demos/tests.

    Three assemblies over a two-contig reference:

    - ``LineA``: identical to the reference on both contigs.
    - ``LineB``: chr1 only, with one SNP at chr1:150.
    - ``LineC``: chr1 only, assembled on the reverse strand.

    So at ``chr1:101-200`` LineA and LineC share a haplotype and LineB has
    its own; chr2 is covered by LineA alone.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    asm_dir = ensure_outdir(outdir_p / "assemblies")
    gvcf_dir = ensure_outdir(outdir_p / "gvcfs")
    rng = random.Random(seed)

    reference = {"chr1": _random_seq(rng, 400), "chr2": _random_seq(rng, 200)}
    ref_fa = outdir_p / "ref.fa"
    _write_fasta(ref_fa, reference)

    bed = outdir_p / "ranges.bed"
    bed.write_text("".join(f"{c}\t{s}\t{e}\n" for c, s, e in TOY_RANGES_0BASED), encoding="utf-8")

    chr1, chr2 = reference["chr1"], reference["chr2"]
    n1, n2 = len(chr1), len(chr2)

    # LineA: reference copy
    _write_fasta(asm_dir / "LineA.fa", dict(reference))
    _write_gvcf(
        gvcf_dir,
        "LineA",
        reference,
        {
            "chr1": [(1, n1, chr1[0], None, 1, n1, "+")],
            "chr2": [(1, n2, chr2[0], None, 1, n2, "+")],
        },
    )

    # LineB: one SNP
    p = TOY_SNP_POS
    ref_base = chr1[p - 1]
    alt_base = _mutate_base(ref_base)
    _write_fasta(asm_dir / "LineB.fa", {"chr1": chr1[: p - 1] + alt_base + chr1[p:]})
    _write_gvcf(
        gvcf_dir,
        "LineB",
        reference,
        {
            "chr1": [
                (1, p - 1, chr1[0], None, 1, p - 1, "+"),
                (p, p, ref_base, alt_base, p, p, "+"),
                (p + 1, n1, chr1[p], None, p + 1, n1, "+"),
            ]
        },
    )

    # LineC: reverse-complemented chr1
    _write_fasta(asm_dir / "LineC.fa", {"chr1": reverse_complement(chr1)})
    _write_gvcf(
        gvcf_dir,
        "LineC",
        reference,
        {"chr1": [(1, n1, chr1[0], None, n1, 1, "-")]},
    )

    summary = {
        "ref_fa": str(ref_fa),
        "ranges_bed": str(bed),
        "assemblies_dir": str(asm_dir),
        "gvcf_dir": str(gvcf_dir),
        "outdir": str(outdir_p),
    }
    write_json(outdir_p / "toy_summary.json", summary)
    return summary
