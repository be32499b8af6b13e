from hapgraph.builder import HeaderRegistry, checksum, reference_haplotypes
from hapgraph.hvcf import alt_header_line, graph_from_hvcfs, parse_alt_line, read_hvcf, write_hvcf, write_sample_hvcfs
from hapgraph.models import AssemblySpan, HaplotypeHeader, ReferenceRange
from hapgraph.pipeline import build_graph, tasks_from_directory
from hapgraph.ranges import load_ranges
from hapgraph.sequences import FastaExtractor, load_reference
from hapgraph.toy_data import make_toy_data


def test_alt_line_round_trip():
    h = HaplotypeHeader(
        hap_id="abc123",
        sample="LineA",
        regions="chr1:10-1,chr1:20-30",
        checksum="abc123",
        ref_checksum="def456",
        ref_range_id="chr1:1-40",
        source="/db/assemblies.agc",
    )
    line = alt_header_line(h)
    assert line.startswith("##ALT=<ID=abc123,Description=\"haplotype data for line: LineA\"")
    fields = parse_alt_line(line)
    assert fields["Regions"] == "chr1:10-1,chr1:20-30"
    assert fields["RefRange"] == "chr1:1-40"
    assert parse_alt_line("##INFO=<ID=END>") is None


def test_write_and_read_hvcfs(tmp_path):
    s = make_toy_data(outdir=tmp_path / "toy")
    reference = load_reference(s["ref_fa"])
    result = build_graph(
        tasks_from_directory(s["gvcf_dir"]),
        load_ranges(s["ranges_bed"]),
        reference,
        FastaExtractor(s["assemblies_dir"]),
        progress=False,
    )
    written = write_sample_hvcfs(
        tmp_path / "out",
        result.haplotypes,
        headers_by_sample=result.sample_headers,
        reference=reference,
        compress=True,
    )
    assert sorted(written) == ["LineA", "LineB", "LineC"]
    assert all(p.name.endswith(".h.vcf.gz") for p in written.values())
    assert (tmp_path / "out" / "LineA.h.vcf.gz.tbi").exists()

    sample, haps, headers = read_hvcf(written["LineC"])
    assert sample == "LineC"
    assert len(haps) == 4
    assert haps[0].ref_range == ReferenceRange("chr1", 1, 100)
    assert haps[0].spans == (AssemblySpan("chr1", 400, 301, "-"),)
    assert haps[0].seq_length == 100
    assert {h.hap_id for h in headers} == {h.hap_id for h in haps}
    assert all(h.sample == "LineC" for h in headers)

    # LineA shares the chr1:1-100 hapID but keeps its own forward regions
    _, haps_a, _ = read_hvcf(written["LineA"])
    assert haps_a[0].hap_id == haps[0].hap_id
    assert haps_a[0].spans == (AssemblySpan("chr1", 1, 100, "+"),)

    rebuilt = graph_from_hvcfs(sorted(written.values()))
    assert rebuilt.checksum() == result.graph.checksum()
    assert rebuilt.number_of_samples() == 3


def test_plain_hvcf_records(tmp_path):
    s = make_toy_data(outdir=tmp_path / "toy")
    reference = load_reference(s["ref_fa"])
    result = build_graph(
        tasks_from_directory(s["gvcf_dir"]),
        load_ranges(s["ranges_bed"]),
        reference,
        FastaExtractor(s["assemblies_dir"]),
        progress=False,
    )
    written = write_sample_hvcfs(tmp_path / "plain", {"LineA": result.haplotypes["LineA"]}, reference=reference)
    text = written["LineA"].read_text(encoding="utf-8")
    alt_lines = [ln for ln in text.splitlines() if ln.startswith("##ALT")]
    records = [ln for ln in text.splitlines() if not ln.startswith("#")]
    assert len(alt_lines) == 6
    assert len(records) == 6
    first = records[0].split("\t")
    assert first[0] == "chr1" and first[1] == "1"
    assert first[3] == reference["chr1"][0]
    assert first[4].startswith("<") and "END=100" in first[7]


def test_reference_hvcf_round_trip(tmp_path):
    s = make_toy_data(outdir=tmp_path / "toy")
    reference = load_reference(s["ref_fa"])
    ranges = load_ranges(s["ranges_bed"])
    registry = HeaderRegistry()
    haps = reference_haplotypes(ranges, reference, "Ref", registry, source=s["ref_fa"])
    path = write_hvcf(
        tmp_path / "Ref.h.vcf", haps, sample="Ref", headers=registry.as_dict(), reference=reference
    )
    sample, back, headers = read_hvcf(path)
    assert sample == "Ref"
    assert [h.hap_id for h in back] == [h.hap_id for h in haps]
    assert back[0].spans == (AssemblySpan("chr1", 1, 100, "+"),)
    assert back[0].hap_id == checksum(reference["chr1"][:100])
    assert {h.source for h in headers} == {s["ref_fa"]}
