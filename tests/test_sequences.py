import json
import os
import sys
from pathlib import Path

import pytest

from hapgraph.errors import ConfigurationError, SequenceExtractionError
from hapgraph.external import ExternalCommandError
from hapgraph.models import AssemblySpan
from hapgraph.sequences import AgcExtractor, SequenceQuery, parse_fasta_text

ASSEMBLIES = {"LineA": {"chr1": "ACGTTGCAAGGCTTAACCGGTTAA", "chr2": "GGGGCCCCAAAATTTT"}}

_FAKE_AGC = """#!{python}
import json
import sys

args = sys.argv[1:]
with open({log!r}, "w") as fh:
    json.dump(args, fh)
if {exit_code}:
    sys.stderr.write("agc: archive is corrupt\\n")
    sys.exit({exit_code})
assemblies = json.loads({assemblies!r})
for query in args[2:]:
    contig, _, rest = query.partition("@")
    sample, _, coords = rest.partition(":")
    start, end = (int(x) for x in coords.split("-"))
    seq = assemblies.get(sample, {{}}).get(contig)
    if seq is None or contig in {skip!r}:
        continue
    fasta_id = query if {echo_sample} else contig + ":" + coords
    print(">" + fasta_id)
    body = seq[start : end + 1]
    for i in range(0, len(body), 5):
        print(body[i : i + 5])
"""


def _install_agc(tmp_path: Path, monkeypatch, *, exit_code=0, echo_sample=False, skip=()):
    bindir = tmp_path / "bin"
    bindir.mkdir(exist_ok=True)
    log = tmp_path / "agc_args.json"
    script = bindir / "agc"
    script.write_text(
        _FAKE_AGC.format(
            python=sys.executable,
            log=str(log),
            exit_code=exit_code,
            assemblies=json.dumps(ASSEMBLIES),
            echo_sample=echo_sample,
            skip=list(skip),
        ),
        encoding="utf-8",
    )
    script.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bindir}{os.pathsep}{os.environ.get('PATH', '')}")
    return log


def _db(tmp_path: Path) -> Path:
    db = tmp_path / "db"
    db.mkdir(exist_ok=True)
    (db / "assemblies.agc").write_bytes(b"")
    return db


def test_query_coordinates_are_zero_based_for_agc():
    q = SequenceQuery.from_span(AssemblySpan("chr1", 20, 13, "-"))
    assert (q.start, q.end) == (13, 20)
    assert str(q) == "chr1:13-20"
    assert q.agc_id == "chr1:12-19"
    assert q.agc_arg("LineA") == "chr1@LineA:12-19"


def test_command_with_and_without_conda(tmp_path):
    queries = [SequenceQuery("chr1", 1, 4), SequenceQuery("chr2", 5, 8)]
    plain = AgcExtractor(tmp_path)
    assert plain.command("LineA", queries) == [
        "agc",
        "getctg",
        str(tmp_path / "assemblies.agc"),
        "chr1@LineA:0-3",
        "chr2@LineA:4-7",
    ]
    wrapped = AgcExtractor(tmp_path, conda_env_prefix="/opt/envs/agc")
    assert wrapped.command("LineA", queries[:1]) == [
        "conda",
        "run",
        "-p",
        "/opt/envs/agc",
        "agc",
        "getctg",
        str(tmp_path / "assemblies.agc"),
        "chr1@LineA:0-3",
    ]


def test_parse_fasta_text_joins_wrapped_lines():
    text = ">chr1:0-9 some description\nACGTA\nCGTAC\n>chr2:4-7\nGGCC\n"
    assert parse_fasta_text(text) == {"chr1:0-9": "ACGTACGTAC", "chr2:4-7": "GGCC"}
    assert parse_fasta_text("") == {}


def test_extract_batches_all_queries_in_one_call(tmp_path, monkeypatch):
    log = _install_agc(tmp_path, monkeypatch)
    queries = [SequenceQuery("chr1", 1, 12), SequenceQuery("chr2", 5, 8), SequenceQuery("chr1", 1, 12)]
    out = AgcExtractor(_db(tmp_path)).extract("LineA", queries)
    assert out == {
        SequenceQuery("chr1", 1, 12): ASSEMBLIES["LineA"]["chr1"][0:12],
        SequenceQuery("chr2", 5, 8): "CCCC",
    }
    args = json.loads(log.read_text(encoding="utf-8"))
    assert args[0] == "getctg"
    assert args[2:] == ["chr1@LineA:0-11", "chr2@LineA:4-7"]


def test_extract_accepts_ids_that_echo_the_sample(tmp_path, monkeypatch):
    _install_agc(tmp_path, monkeypatch, echo_sample=True)
    q = SequenceQuery("chr1", 3, 6)
    assert AgcExtractor(_db(tmp_path)).extract("LineA", [q]) == {q: "GTTG"}


def test_missing_region_in_agc_output_raises(tmp_path, monkeypatch):
    _install_agc(tmp_path, monkeypatch, skip=("chr2",))
    queries = [SequenceQuery("chr1", 1, 4), SequenceQuery("chr2", 1, 4)]
    with pytest.raises(SequenceExtractionError, match="chr2@LineA:0-3"):
        AgcExtractor(_db(tmp_path)).extract("LineA", queries)


def test_agc_failure_raises_external_command_error(tmp_path, monkeypatch):
    _install_agc(tmp_path, monkeypatch, exit_code=3)
    with pytest.raises(ExternalCommandError) as ei:
        AgcExtractor(_db(tmp_path)).extract("LineA", [SequenceQuery("chr1", 1, 4)])
    assert ei.value.returncode == 3
    assert "archive is corrupt" in str(ei.value)


def test_missing_archive_is_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match="assemblies.agc"):
        AgcExtractor(tmp_path / "nowhere").extract("LineA", [SequenceQuery("chr1", 1, 4)])


def test_no_queries_runs_nothing(tmp_path):
    assert AgcExtractor(tmp_path / "nowhere").extract("LineA", []) == {}
