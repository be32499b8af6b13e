"""Reference loading and batched assembly-sequence extraction.

Two extractors share one call shape, ``extract(sample, queries)``, which
returns every requested region in a single round trip:

- :class:`AgcExtractor` asks ``agc getctg`` for all regions of a sample at
  once (optionally inside a conda environment).
- :class:`FastaExtractor` reads per-sample indexed FASTA files with pysam.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

import pysam
from Bio import SeqIO

from .errors import ConfigurationError, SequenceExtractionError
from .external import ensure_executable_in_path, run_command
from .models import AssemblySpan

logger = logging.getLogger(__name__)

_FASTA_SUFFIXES = (".fa", ".fasta", ".fa.gz", ".fasta.gz", ".fna", ".fna.gz")


@dataclass(frozen=True)
class SequenceQuery:
    """Forward-strand assembly region, 1-based inclusive."""

    contig: str
    start: int
    end: int

    @classmethod
    def from_span(cls, span: AssemblySpan) -> "SequenceQuery":
        return cls(contig=span.contig, start=span.low, end=span.high)

    @property
    def agc_id(self) -> str:
        """FASTA id ``agc getctg`` reports for this region (0-based coordinates)."""
        return f"{self.contig}:{self.start - 1}-{self.end - 1}"

    def agc_arg(self, sample: str) -> str:
        return f"{self.contig}@{sample}:{self.start - 1}-{self.end - 1}"

    def __str__(self) -> str:
        return f"{self.contig}:{self.start}-{self.end}"


class SequenceExtractor(Protocol):
    def extract(self, sample: str, queries: Sequence[SequenceQuery]) -> Dict[SequenceQuery, str]:
        ...


def load_reference(fasta_path: str | Path) -> Dict[str, str]:
    """Load a reference FASTA into ``{contig: sequence}``.

    The FASTA must be plain or bgzip-compressed; a ``.fai`` is created if
    missing and the directory is writable.
    """
    p = Path(fasta_path)
    if not p.exists():
        raise ConfigurationError(f"Reference FASTA does not exist: {p}")
    with pysam.FastaFile(str(p)) as fa:
        reference = {name: fa.fetch(name) for name in fa.references}
    logger.info("Loaded %d reference contigs from %s", len(reference), p)
    return reference


def parse_fasta_text(text: str) -> Dict[str, str]:
    """Parse FASTA text (e.g. ``agc getctg`` stdout) into ``{record id: sequence}``."""
    return {record.id: str(record.seq) for record in SeqIO.parse(io.StringIO(text), "fasta")}


def _strip_sample(fasta_id: str) -> str:
    # agc may echo the query as contig@sample:start-end
    contig, sep, rest = fasta_id.partition("@")
    if not sep:
        return fasta_id
    _, _, coords = rest.partition(":")
    return f"{contig}:{coords}" if coords else contig


class AgcExtractor:
    """Batched region extraction from an AGC archive.

    Parameters
    ----------
    db_path:
        Directory that holds ``assemblies.agc``.
    conda_env_prefix:
        Optional conda environment prefix; when set, ``agc`` runs through
        ``conda run -p <prefix>``.
    """

    archive_name = "assemblies.agc"

    def __init__(self, db_path: str | Path, *, conda_env_prefix: Optional[str] = None) -> None:
        self.db_path = Path(db_path)
        self.conda_env_prefix = conda_env_prefix

    @property
    def archive(self) -> Path:
        return self.db_path / self.archive_name

    def command(self, sample: str, queries: Iterable[SequenceQuery]) -> List[str]:
        prefix: List[str] = []
        if self.conda_env_prefix:
            prefix = ["conda", "run", "-p", self.conda_env_prefix]
        return prefix + ["agc", "getctg", str(self.archive)] + [q.agc_arg(sample) for q in queries]

    def extract(self, sample: str, queries: Sequence[SequenceQuery]) -> Dict[SequenceQuery, str]:
        unique = list(dict.fromkeys(queries))
        if not unique:
            return {}
        if not self.archive.exists():
            raise ConfigurationError(f"AGC archive not found: {self.archive}")
        ensure_executable_in_path(
            "conda" if self.conda_env_prefix else "agc",
            hint="Install agc (e.g. `conda install -c bioconda agc`) or pass --conda-env-prefix.",
        )

        cp = run_command(self.command(sample, unique))
        by_id = {_strip_sample(k): v for k, v in parse_fasta_text(cp.stdout or "").items()}

        out: Dict[SequenceQuery, str] = {}
        for q in unique:
            seq = by_id.get(q.agc_id)
            if seq is None:
                raise SequenceExtractionError(
                    f"agc returned no sequence for {q.agc_arg(sample)} (sample {sample})"
                )
            out[q] = seq
        logger.debug("Extracted %d regions for %s from %s", len(out), sample, self.archive)
        return out


class FastaExtractor:
    """Region extraction from per-sample indexed FASTA files.

    ``<fasta_dir>/<sample>.fa`` (or ``.fasta``/``.fna``, optionally bgzipped)
    is opened with :class:`pysam.FastaFile`. Explicit paths can be passed via
    ``paths`` instead.
    """

    def __init__(
        self,
        fasta_dir: Optional[str | Path] = None,
        *,
        paths: Optional[Mapping[str, str | Path]] = None,
    ) -> None:
        if fasta_dir is None and not paths:
            raise ValueError("FastaExtractor needs fasta_dir or paths")
        self.fasta_dir = Path(fasta_dir) if fasta_dir is not None else None
        self.paths = {k: Path(v) for k, v in (paths or {}).items()}

    def fasta_for(self, sample: str) -> Path:
        if sample in self.paths:
            return self.paths[sample]
        if self.fasta_dir is not None:
            for suffix in _FASTA_SUFFIXES:
                candidate = self.fasta_dir / f"{sample}{suffix}"
                if candidate.exists():
                    return candidate
        raise ConfigurationError(f"No assembly FASTA found for sample {sample}")

    def extract(self, sample: str, queries: Sequence[SequenceQuery]) -> Dict[SequenceQuery, str]:
        unique = list(dict.fromkeys(queries))
        if not unique:
            return {}
        path = self.fasta_for(sample)
        out: Dict[SequenceQuery, str] = {}
        with pysam.FastaFile(str(path)) as fa:
            for q in unique:
                if q.contig not in fa.references:
                    raise SequenceExtractionError(f"Contig {q.contig} not found in {path} (sample {sample})")
                seq = fa.fetch(q.contig, q.start - 1, q.end)
                if len(seq) != q.end - q.start + 1:
                    raise SequenceExtractionError(
                        f"Region {q} is out of bounds in {path} (sample {sample}): got {len(seq)} bases"
                    )
                out[q] = seq
        logger.debug("Extracted %d regions for %s from %s", len(out), sample, path)
        return out
