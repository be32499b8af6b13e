"""Per-sample processing and the worker pool that builds the graph.

Each sample runs load -> classify -> clip/merge -> extract -> hash to
completion inside one worker, with its own :class:`HeaderRegistry`. The
results are folded single-threaded after every worker has finished, in
sample-name order, so header selection does not depend on scheduling.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from tqdm import tqdm

from .builder import (
    HeaderRegistry,
    add_sequences,
    collect_sample_metadata,
    metadata_to_haplotypes,
    reference_haplotypes,
)
from .errors import ConfigurationError
from .graph import HaplotypeGraph
from .models import Haplotype, HaplotypeHeader, ReferenceRange
from .sequences import SequenceExtractor
from .variants import discover_gvcfs, group_by_contig, load_assembly_gvcf

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleTask:
    """One unit of work: a sample's gVCF. ``sample=None`` takes the name from the gVCF header."""

    sample: Optional[str]
    gvcf_path: Path

    @property
    def label(self) -> str:
        return self.sample if self.sample is not None else self.gvcf_path.name


@dataclass
class SampleResult:
    sample: str
    gvcf_path: Optional[Path]
    haplotypes: List[Haplotype]
    registry: HeaderRegistry


@dataclass
class BuildResult:
    """Outcome of :func:`build_graph`.

    Attributes
    ----------
    graph:
        Graph folded from every successful sample.
    headers:
        First-wins hapID -> header registry across successful samples; the
        graph uses these.
    haplotypes:
        Per-sample haplotype lists, keyed by sample name.
    sample_headers:
        Per-sample hapID -> header maps. Each sample's h.vcf is written from
        its own map so its regions are its own even for shared hapIDs.
    failures:
        Task label -> error message for samples whose contribution was dropped.
    """

    graph: HaplotypeGraph
    headers: HeaderRegistry
    haplotypes: Dict[str, List[Haplotype]] = field(default_factory=dict)
    sample_headers: Dict[str, Dict[str, HaplotypeHeader]] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)


def tasks_from_directory(gvcf_dir: str | Path) -> List[SampleTask]:
    return [SampleTask(sample=None, gvcf_path=p) for p in discover_gvcfs(gvcf_dir)]


def process_sample(
    task: SampleTask,
    ranges: Sequence[ReferenceRange],
    reference: Mapping[str, str],
    extractor: SequenceExtractor,
    *,
    source: str = "",
) -> SampleResult:
    """Run the whole per-sample pipeline for one gVCF."""
    sample, variants = load_assembly_gvcf(task.gvcf_path, sample=task.sample)
    metadata = collect_sample_metadata(sample, ranges, group_by_contig(variants), reference)
    add_sequences(metadata, extractor)
    registry = HeaderRegistry()
    haplotypes = metadata_to_haplotypes(metadata, registry, source=source)
    logger.info("Sample %s: %d haplotypes (%d unique)", sample, len(haplotypes), len(registry))
    return SampleResult(sample=sample, gvcf_path=task.gvcf_path, haplotypes=haplotypes, registry=registry)


def reference_result(
    ranges: Sequence[ReferenceRange],
    reference: Mapping[str, str],
    ref_name: str,
    *,
    source: str = "",
) -> SampleResult:
    """The reference genome as a sample: one haplotype per range."""
    registry = HeaderRegistry()
    haplotypes = reference_haplotypes(ranges, reference, ref_name, registry, source=source)
    return SampleResult(sample=ref_name, gvcf_path=None, haplotypes=haplotypes, registry=registry)


def fold_results(results: Iterable[SampleResult], failures: Optional[Dict[str, str]] = None) -> BuildResult:
    """Merge per-sample results into one graph, in sample-name order."""
    ordered = sorted(results, key=lambda r: r.sample)
    headers = HeaderRegistry()
    by_sample: Dict[str, List[Haplotype]] = {}
    sample_headers: Dict[str, Dict[str, HaplotypeHeader]] = {}
    for res in ordered:
        if res.sample in by_sample:
            raise ConfigurationError(
                f"Sample {res.sample} appears more than once (second: {res.gvcf_path or 'reference'})"
            )
        by_sample[res.sample] = res.haplotypes
        sample_headers[res.sample] = res.registry.as_dict()
        headers.merge(res.registry)

    graph = HaplotypeGraph.from_haplotypes(
        (h for res in ordered for h in res.haplotypes),
        headers=headers.as_dict(),
    )
    return BuildResult(
        graph=graph,
        headers=headers,
        haplotypes=by_sample,
        sample_headers=sample_headers,
        failures=dict(failures or {}),
    )


def build_graph(
    tasks: Sequence[SampleTask],
    ranges: Sequence[ReferenceRange],
    reference: Mapping[str, str],
    extractor: SequenceExtractor,
    *,
    threads: int = 2,
    source: str = "",
    progress: bool = True,
    reference_name: Optional[str] = None,
) -> BuildResult:
    """Process all samples on a thread pool and fold them into a graph.

    Parameters
    ----------
    tasks:
        One task per sample gVCF.
    ranges:
        Validated, sorted reference ranges.
    reference:
        ``{contig: sequence}`` of the reference genome.
    extractor:
        Batched assembly-sequence extractor.
    threads:
        Worker count (>= 1).
    source:
        Value for the ``Source`` field of ALT headers (e.g. the AGC archive).
    progress:
        Show a tqdm progress bar.
    reference_name:
        When set, the reference itself is folded in as a sample of this name
        so ranges where an assembly matches the reference share its hapID.

    Raises
    ------
    ConfigurationError
        Raised by any worker; pending samples are cancelled and the run aborts.
    """
    if threads < 1:
        raise ValueError("threads must be >= 1")

    results: List[SampleResult] = []
    if reference_name is not None:
        results.append(reference_result(ranges, reference, reference_name, source=source))
    failures: Dict[str, str] = {}

    with ThreadPoolExecutor(max_workers=threads) as pool:
        futures: Dict[Future, SampleTask] = {
            pool.submit(process_sample, t, ranges, reference, extractor, source=source): t for t in tasks
        }
        done = as_completed(futures)
        if progress:
            done = tqdm(done, total=len(futures), unit="sample", desc="Building haplotypes")
        for fut in done:
            task = futures[fut]
            try:
                results.append(fut.result())
            except ConfigurationError:
                for other in futures:
                    other.cancel()
                raise
            except Exception as e:
                logger.error("Sample %s failed; dropping its haplotypes: %s: %s", task.label, e.__class__.__name__, e)
                failures[task.label] = f"{e.__class__.__name__}: {e}"

    if failures:
        logger.warning("%d of %d samples failed", len(failures), len(tasks))
    return fold_results(results, failures)
