"""hapgraph: content-addressed haplotype graphs from assembly gVCF files.

Most users should use the CLI:

    hapgraph gvcf2hvcf --bed ranges.bed --reference-file ref.fa --gvcf-dir gvcfs/ \
        --assembly-dir assemblies/ --outdir out/

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
