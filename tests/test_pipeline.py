from pathlib import Path

import pytest

from hapgraph.builder import checksum
from hapgraph.errors import ConfigurationError, SequenceExtractionError
from hapgraph.models import AssemblySpan, ReferenceRange
from hapgraph.pipeline import SampleTask, build_graph, process_sample, tasks_from_directory
from hapgraph.ranges import load_ranges
from hapgraph.sequences import FastaExtractor, load_reference
from hapgraph.toy_data import TOY_SNP_POS, make_toy_data


@pytest.fixture()
def toy(tmp_path: Path):
    s = make_toy_data(outdir=tmp_path / "toy")
    return {
        "summary": s,
        "ranges": load_ranges(s["ranges_bed"]),
        "reference": load_reference(s["ref_fa"]),
        "tasks": tasks_from_directory(s["gvcf_dir"]),
        "extractor": FastaExtractor(s["assemblies_dir"]),
    }


class FailingFor:
    def __init__(self, inner, sample, exc):
        self.inner = inner
        self.sample = sample
        self.exc = exc

    def extract(self, sample, queries):
        if sample == self.sample:
            raise self.exc
        return self.inner.extract(sample, queries)


def test_process_sample_reverse_strand(toy):
    task = next(t for t in toy["tasks"] if t.gvcf_path.name.startswith("LineC"))
    res = process_sample(task, toy["ranges"], toy["reference"], toy["extractor"])
    assert res.sample == "LineC"
    first = res.haplotypes[0]
    assert first.ref_range == ReferenceRange("chr1", 1, 100)
    assert first.spans == (AssemblySpan("chr1", 400, 301, "-"),)
    # reverse-complemented assembly gives back the reference
    assert first.hap_id == checksum(toy["reference"]["chr1"][0:100])


def test_build_graph_end_to_end(toy):
    result = build_graph(toy["tasks"], toy["ranges"], toy["reference"], toy["extractor"], threads=2, progress=False)
    g = result.graph
    ref = toy["reference"]

    assert result.failures == {}
    assert g.samples() == ["LineA", "LineB", "LineC"]
    assert g.number_of_ranges() == 6

    for r in g.ranges():
        expected = checksum(ref[r.contig][r.start - 1 : r.end])
        assert g.sample_to_hap_id(r, "LineA") == expected

    snp_range = ReferenceRange("chr1", 101, 200)
    assert snp_range.start <= TOY_SNP_POS <= snp_range.end
    samples_by_hap = g.hap_id_to_samples(snp_range)
    assert len(samples_by_hap) == 2
    assert samples_by_hap[g.sample_to_hap_id(snp_range, "LineA")] == frozenset({"LineA", "LineC"})
    assert samples_by_hap[g.sample_to_hap_id(snp_range, "LineB")] == frozenset({"LineB"})

    for r in (ReferenceRange("chr1", 1, 100), ReferenceRange("chr1", 201, 300)):
        assert len(g.hap_ids(r)) == 1

    # chr2 is only assembled in LineA
    chr2 = ReferenceRange("chr2", 1, 100)
    assert g.sample_to_hap_id(chr2, "LineB") is None
    assert g.sample_to_hap_id(chr2, "LineC") is None

    # first-wins in sample-name order
    hap_id = g.sample_to_hap_id(ReferenceRange("chr1", 1, 100), "LineC")
    assert g.header(hap_id).sample == "LineA"
    assert result.headers.get(hap_id).sample == "LineA"


def test_results_do_not_depend_on_thread_count(toy):
    one = build_graph(toy["tasks"], toy["ranges"], toy["reference"], toy["extractor"], threads=1, progress=False)
    three = build_graph(
        list(reversed(toy["tasks"])), toy["ranges"], toy["reference"], toy["extractor"], threads=3, progress=False
    )
    assert one.graph.checksum() == three.graph.checksum()
    assert one.headers.as_dict() == three.headers.as_dict()


def test_extraction_failure_drops_only_that_sample(toy):
    extractor = FailingFor(toy["extractor"], "LineB", SequenceExtractionError("agc said no"))
    result = build_graph(toy["tasks"], toy["ranges"], toy["reference"], extractor, progress=False)
    assert result.graph.samples() == ["LineA", "LineC"]
    assert list(result.failures) == ["LineB.g.vcf.gz"]
    assert "agc said no" in result.failures["LineB.g.vcf.gz"]


def test_configuration_error_aborts_run(toy):
    extractor = FailingFor(toy["extractor"], "LineB", ConfigurationError("no assembly"))
    with pytest.raises(ConfigurationError):
        build_graph(toy["tasks"], toy["ranges"], toy["reference"], extractor, progress=False)


def test_missing_assembly_fasta_is_configuration_error(toy, tmp_path):
    extractor = FastaExtractor(tmp_path / "empty_dir")
    task = SampleTask(sample=None, gvcf_path=toy["tasks"][0].gvcf_path)
    with pytest.raises(ConfigurationError):
        build_graph([task], toy["ranges"], toy["reference"], extractor, progress=False)


def test_threads_must_be_positive(toy):
    with pytest.raises(ValueError):
        build_graph(toy["tasks"], toy["ranges"], toy["reference"], toy["extractor"], threads=0)


def test_each_sample_keeps_its_own_headers(toy):
    result = build_graph(toy["tasks"], toy["ranges"], toy["reference"], toy["extractor"], progress=False)
    hap_id = result.graph.sample_to_hap_id(ReferenceRange("chr1", 1, 100), "LineC")
    assert result.headers.get(hap_id).regions == "chr1:1-100"
    assert result.sample_headers["LineA"][hap_id].regions == "chr1:1-100"
    assert result.sample_headers["LineC"][hap_id].regions == "chr1:400-301"
    assert result.sample_headers["LineC"][hap_id].sample == "LineC"


def test_reference_sample_is_folded_in(toy):
    result = build_graph(
        toy["tasks"], toy["ranges"], toy["reference"], toy["extractor"], progress=False, reference_name="Ref"
    )
    g = result.graph
    assert g.samples() == ["LineA", "LineB", "LineC", "Ref"]
    for r in g.ranges():
        assert g.sample_to_hap_id(r, "Ref") == g.sample_to_hap_id(r, "LineA")
    # chr2 has a reference haplotype but no LineB coverage
    chr2 = ReferenceRange("chr2", 1, 100)
    assert g.sample_to_hap_id(chr2, "Ref") is not None
    assert g.sample_to_hap_id(chr2, "LineB") is None
    assert result.sample_headers["Ref"][g.sample_to_hap_id(chr2, "Ref")].regions == "chr2:1-100"


def test_reference_name_clashing_with_a_sample_is_rejected(toy):
    with pytest.raises(ConfigurationError, match="LineA"):
        build_graph(
            toy["tasks"], toy["ranges"], toy["reference"], toy["extractor"], progress=False, reference_name="LineA"
        )
