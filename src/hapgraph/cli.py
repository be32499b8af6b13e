from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .builder import HeaderRegistry, reference_haplotypes
from .doctor import collect_checks
from .external import ExternalCommandError
from .hvcf import graph_from_hvcfs, write_hvcf, write_sample_hvcfs
from .pipeline import SampleTask, build_graph, tasks_from_directory
from .ranges import load_ranges
from .sequences import AgcExtractor, FastaExtractor, SequenceExtractor, load_reference
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json

_HVCF_SUFFIXES = (".h.vcf", ".h.vcf.gz", ".hvcf", ".hvcf.gz")


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _positive_int(v: str) -> int:
    n = int(v)
    if n < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {v}")
    return n


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, ExternalCommandError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hapgraph",
        description=(
            "hapgraph: build a pangenome haplotype graph from assembly gVCFs. "
            "Each sample's alignment calls are clipped to reference ranges and turned "
            "into content-addressed (MD5) haplotypes, exported as h.vcf files."
        ),
    )
    p.add_argument("--version", action="version", version=f"hapgraph {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, BED, assemblies and gVCFs for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--seed", type=int, default=7, help="Random seed for the toy reference.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # gvcf2hvcf
    # -----------------
    g = sub.add_parser(
        "gvcf2hvcf",
        help="Convert assembly gVCFs into per-sample h.vcf files and a graph summary.",
    )
    g.add_argument("--bed", required=True, type=_path_exists, help="Reference ranges (BED).")
    g.add_argument(
        "--reference-file", required=True, type=_path_exists, help="Reference FASTA (indexed or indexable)."
    )
    g.add_argument(
        "--gvcf-dir",
        type=_path_exists,
        default=None,
        help="Directory with *.g.vcf / *.g.vcf.gz files (one sample each).",
    )
    g.add_argument(
        "--gvcf",
        nargs="+",
        type=_path_exists,
        default=None,
        help="Explicit gVCF files instead of --gvcf-dir.",
    )
    src = g.add_mutually_exclusive_group(required=True)
    src.add_argument(
        "--db-path",
        type=_path_exists,
        default=None,
        help="Directory holding assemblies.agc; sequences are pulled with 'agc getctg'.",
    )
    src.add_argument(
        "--assembly-dir",
        type=_path_exists,
        default=None,
        help="Directory with <sample>.fa assemblies (read with pysam instead of agc).",
    )
    g.add_argument(
        "--conda-env-prefix",
        default=None,
        help="Run agc via 'conda run -p <prefix>' (only with --db-path).",
    )
    g.add_argument(
        "--reference-name",
        default=None,
        help="Also fold the reference in as a sample of this name (writes <name>.h.vcf).",
    )
    g.add_argument("--outdir", required=True, help="Output directory.")
    g.add_argument("--threads", type=_positive_int, default=2, help="Samples processed in parallel.")
    g.add_argument("--bgzip", action="store_true", help="bgzip + tabix the h.vcf outputs.")
    g.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    g.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    g.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # create-ref-hvcf
    # -----------------
    r = sub.add_parser(
        "create-ref-hvcf",
        help="Write the reference h.vcf: one haplotype per range, hapID = MD5 of the reference bases.",
    )
    r.add_argument("--bed", required=True, type=_path_exists, help="Reference ranges (BED).")
    r.add_argument("--reference-file", required=True, type=_path_exists, help="Reference FASTA.")
    r.add_argument("--reference-name", required=True, help="Sample name of the reference (e.g. B73).")
    r.add_argument("--outdir", required=True, help="Output directory.")
    r.add_argument("--bgzip", action="store_true", help="bgzip + tabix the h.vcf output.")
    r.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # graph-summary
    # -----------------
    s = sub.add_parser(
        "graph-summary",
        help="Build a graph from existing h.vcf files and print summary statistics (JSON).",
    )
    s.add_argument(
        "--hvcf-dir", type=_path_exists, default=None, help="Directory with *.h.vcf / *.h.vcf.gz files."
    )
    s.add_argument("--hvcf", nargs="+", type=_path_exists, default=None, help="Explicit h.vcf files.")
    s.add_argument("--out", default=None, help="Also write the summary JSON to this path.")
    s.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # doctor
    # -----------------
    d = sub.add_parser(
        "doctor",
        help="Check your environment for external tools (agc/conda/bgzip/tabix).",
    )
    d.add_argument(
        "--conda-env-prefix", default=None, help="Also check that agc runs inside this conda environment."
    )
    d.add_argument("--dry-run", action="store_true", help="Print checks without exiting nonzero.")
    d.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


def cmd_quickstart() -> int:
    lines = [
        "hapgraph quickstart (copy/paste):",
        "",
        "1) Try it on toy data:",
        "   hapgraph make-toy-data --outdir toy/",
        "   hapgraph gvcf2hvcf \\",
        "     --bed toy/ranges.bed \\",
        "     --reference-file toy/ref.fa \\",
        "     --gvcf-dir toy/gvcfs \\",
        "     --assembly-dir toy/assemblies \\",
        "     --outdir toy_out/",
        "   Outputs: toy_out/<sample>.h.vcf, toy_out/graph_summary.json",
        "",
        "2) Assemblies stored in an AGC archive:",
        "   hapgraph gvcf2hvcf \\",
        "     --bed ranges.bed \\",
        "     --reference-file ref.fa \\",
        "     --gvcf-dir gvcfs/ \\",
        "     --db-path phg_db/ \\",
        "     --conda-env-prefix /opt/conda/envs/phgv2-conda \\",
        "     --threads 4 --bgzip \\",
        "     --outdir hvcfs/",
        "",
        "3) Reference h.vcf (hapID = MD5 of each range's reference bases):",
        "   hapgraph create-ref-hvcf --bed ranges.bed --reference-file ref.fa --reference-name B73 --outdir hvcfs/",
        "",
        "4) Summarize existing h.vcf files:",
        "   hapgraph graph-summary --hvcf-dir hvcfs/ --out hvcfs/summary.json",
        "",
        "Tip: run 'hapgraph doctor' to check that agc is reachable.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir, seed=int(args.seed))
    print(json.dumps(summary, indent=2))
    return 0


def _gvcf_tasks(args: argparse.Namespace) -> List[SampleTask]:
    if args.gvcf:
        return [SampleTask(sample=None, gvcf_path=Path(p)) for p in args.gvcf]
    if args.gvcf_dir:
        return tasks_from_directory(args.gvcf_dir)
    raise ValueError("Provide --gvcf-dir or --gvcf.")


def _extractor(args: argparse.Namespace) -> SequenceExtractor:
    if args.db_path:
        return AgcExtractor(args.db_path, conda_env_prefix=args.conda_env_prefix)
    return FastaExtractor(args.assembly_dir)


def cmd_gvcf2hvcf(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "gvcf2hvcf.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("hapgraph")
    logger.info("hapgraph %s", __version__)

    try:
        ranges = load_ranges(args.bed)
        tasks = _gvcf_tasks(args)
        extractor = _extractor(args)

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Reference ranges: {len(ranges)}")
            print(f"gVCF files: {len(tasks)}")
            for t in tasks:
                print(f"  {t.gvcf_path}")
            if isinstance(extractor, AgcExtractor):
                print("External command per sample:")
                print(f"  agc getctg {extractor.archive} <contig@sample:start-end> ...")
            print("Planned outputs:")
            print(f"  <sample>.h.vcf{'.gz' if args.bgzip else ''} -> {outdir}")
            print(f"  graph_summary.json -> {outdir / 'graph_summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)
        reference = load_reference(args.reference_file)
        source = str(extractor.archive) if isinstance(extractor, AgcExtractor) else str(args.assembly_dir)

        result = build_graph(
            tasks,
            ranges,
            reference,
            extractor,
            threads=int(args.threads),
            source=source,
            progress=not bool(args.no_progress),
            reference_name=args.reference_name,
        )

        written = write_sample_hvcfs(
            outdir,
            result.haplotypes,
            headers_by_sample=result.sample_headers,
            reference=reference,
            source=source,
            compress=bool(args.bgzip),
        )
        summary = result.graph.summary()
        summary["hvcf_files"] = {k: str(v) for k, v in written.items()}
        summary["failures"] = dict(result.failures)
        write_json(outdir / "graph_summary.json", summary)

        for path in written.values():
            print(str(path))
        if result.failures:
            sys.stderr.write(
                f"{len(result.failures)} sample(s) failed: {', '.join(sorted(result.failures))}\n"
                f"See log: {log_path}\n"
            )
            return 1
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_create_ref_hvcf(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "create_ref_hvcf.log")
    _setup_logging(args.verbose, logfile=log_path)

    try:
        ranges = load_ranges(args.bed)
        reference = load_reference(args.reference_file)
        registry = HeaderRegistry()
        source = str(Path(args.reference_file).resolve())
        haplotypes = reference_haplotypes(ranges, reference, args.reference_name, registry, source=source)
        path = write_hvcf(
            ensure_outdir(outdir) / f"{args.reference_name}.h.vcf",
            haplotypes,
            sample=args.reference_name,
            headers=registry.as_dict(),
            reference=reference,
            source=source,
            compress=bool(args.bgzip),
        )
        print(str(path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def _hvcf_paths(args: argparse.Namespace) -> List[Path]:
    if args.hvcf:
        return [Path(p) for p in args.hvcf]
    if args.hvcf_dir:
        paths = sorted(p for p in Path(args.hvcf_dir).iterdir() if p.name.endswith(_HVCF_SUFFIXES))
        if not paths:
            raise ValueError(f"No h.vcf files found in {args.hvcf_dir}")
        return paths
    raise ValueError("Provide --hvcf-dir or --hvcf.")


def cmd_graph_summary(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)
    try:
        graph = graph_from_hvcfs(_hvcf_paths(args))
        summary = graph.summary()
        if args.out:
            out = Path(args.out)
            ensure_outdir(out.parent)
            write_json(out, summary)
        print(json.dumps(summary, indent=2, sort_keys=True))
        return 0
    except Exception as e:
        return _handle_error(e)


def cmd_doctor(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    checks = collect_checks(conda_env_prefix=args.conda_env_prefix)

    lines = []
    ok_all = True
    for name, r in checks.items():
        status = "OK" if r.ok else "MISSING"
        lines.append(f"{name:9s} : {status:7s}  {r.detail}")
        if not r.ok:
            ok_all = False

    print("\n".join(lines))

    for name, r in checks.items():
        if not r.ok and r.howto:
            print("\n---")
            print(f"How to install/fix '{name}':")
            print(r.howto)

    if args.dry_run:
        return 0
    return 0 if ok_all else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "gvcf2hvcf":
        return cmd_gvcf2hvcf(args)
    if args.cmd == "create-ref-hvcf":
        return cmd_create_ref_hvcf(args)
    if args.cmd == "graph-summary":
        return cmd_graph_summary(args)
    if args.cmd == "doctor":
        return cmd_doctor(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
