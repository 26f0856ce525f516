"""
Tests for the scan pipeline, bootstrap significance and the library API.
"""

import os

import numpy as np
import pandas as pd
import pytest

from motifscan.api import classify_matches, create_config, scan_motifs
from motifscan.calibration import ScanRange
from motifscan.classifier import classify
from motifscan.context import RunContext
from motifscan.coordinates import CoordinateProjector
from motifscan.exceptions import (
    ConfigurationError,
    InsufficientBackgroundError,
    ScannerAdapterError,
    ThresholdNotAchievedWarning,
)
from motifscan.models import MatchRecord, Motif, SequenceRecord, SequenceSet
from motifscan.pipeline import Pipeline, process_motif
from motifscan.scanners import ScannerAdapter, create_scanner, registry
from motifscan.significance import bootstrap_significance


@registry.register("failing")
class FailingScanner(ScannerAdapter):
    """Native scanner that rejects motifs whose name starts with ``bad``."""

    def scan(self, motif, sequences, cutoff, max_hits):
        if motif.name.startswith("bad"):
            raise ScannerAdapterError(f"cannot scan {motif.name}")
        return create_scanner("native").scan(motif, sequences, cutoff, max_hits)


class FixedScanner(ScannerAdapter):
    """Returns ``hits[set name]`` matches, one per sequence."""

    def __init__(self, hits, **options):
        super().__init__(**options)
        self.hits = hits

    def scan(self, motif, sequences, cutoff, max_hits):
        return [
            MatchRecord(motif.name, record.name, sequences.kind, 0, motif.length, "+", 1.0)
            for record in sequences.records[: self.hits[sequences.name]]
        ]


def test_pipeline_scores_planted_motif(temp_dir, motif, input_set, background_set):
    with RunContext(outdir=str(temp_dir)) as context:
        pipeline = Pipeline(context, scan_range=ScanRange(0.5, 1.0, 0.05), times=10, length=100, seed=3)
        result = pipeline.run([motif], [input_set], background_set)

    assert len(result.calibrations) == 1
    calibration = result.calibrations[0]
    assert calibration.achieved
    assert calibration.n_background == 200
    assert calibration.achieved_fpr <= 0.05

    counts = result.counts
    assert counts.loc["peaks", motif.name] >= 10
    hits = result.classifications[0]
    assert {f"chr1:{1000 * (i + 1)}-{1000 * (i + 1) + 100}" for i in range(10)} <= {
        h.sequence_id for h in hits.hits
    }

    names = sorted(os.listdir(temp_dir))
    assert "stats.txt" in names
    assert "cutoffs.txt" in names
    assert f"peaks_{motif.name}.gff" in names
    assert not result.errors


def test_pipeline_is_reproducible_with_seed(temp_dir, motif, input_set, background_set):
    cutoffs = []
    for run in range(2):
        with RunContext(outdir=str(temp_dir / str(run))) as context:
            pipeline = Pipeline(context, scan_range=ScanRange(0.5, 1.0, 0.02), length=100, seed=11)
            cutoffs.append(pipeline.run([motif], [input_set], background_set).cutoffs())

    assert cutoffs[0] == cutoffs[1]


def test_scanner_failure_is_isolated_to_its_motif(temp_dir, motif, input_set, background_set):
    bad = Motif(name="bad_motif", matrix=motif.matrix, length=motif.length)

    with RunContext(outdir=str(temp_dir)) as context:
        pipeline = Pipeline(context, scanner="failing", scan_range=ScanRange(0.5, 1.0, 0.05), length=100, seed=3)
        result = pipeline.run([motif, bad], [input_set], background_set)

    assert "peaks/bad_motif" in result.errors
    assert pd.isna(result.counts.loc["peaks", "bad_motif"])
    assert result.counts.loc["peaks", motif.name] >= 10
    stats = open(temp_dir / "stats.txt").read()
    assert "NA" in stats


def test_small_background_pool_is_fatal(temp_dir, motif, input_set, background_set):
    small = SequenceSet("small", background_set.records[:50], kind="background")

    with RunContext(outdir=str(temp_dir)) as context:
        pipeline = Pipeline(context, length=100, seed=3)
        with pytest.raises(InsufficientBackgroundError):
            pipeline.run([motif], [input_set], small)


def test_replacement_turns_shortage_into_warning(temp_dir, motif, input_set, background_set):
    small = SequenceSet("small", background_set.records[:50], kind="background")

    with RunContext(outdir=str(temp_dir)) as context:
        pipeline = Pipeline(context, length=100, seed=3, replacement=True, scan_range=ScanRange(0.5, 1.0, 0.05))
        result = pipeline.run([motif], [input_set], small)

    assert any(w.startswith("SamplingWithReplacementWarning") for w in result.warnings)


def test_justscan_needs_no_background(temp_dir, motif, input_set):
    with RunContext(outdir=str(temp_dir)) as context:
        pipeline = Pipeline(context, justscan=True, scan_range=ScanRange(0.95, 1.0), outputs=("stats", "bed"))
        result = pipeline.run([motif], [input_set])

    assert result.calibrations[0].value == pytest.approx(0.95)
    assert not result.calibrations[0].calibrated
    assert result.counts.loc["peaks", motif.name] >= 10
    bed = open(temp_dir / f"peaks_{motif.name}.bed").read().splitlines()
    assert bed[0].split("\t")[0] == "chr1"
    assert int(bed[0].split("\t")[1]) == 1040


def test_background_is_required_for_calibration(temp_dir, motif, input_set):
    with RunContext(outdir=str(temp_dir)) as context:
        with pytest.raises(ConfigurationError):
            Pipeline(context).run([motif], [input_set])


def test_process_motif_reports_unreachable_fpr(motif, input_set):
    background = SequenceSet("bg", input_set.records[:10], kind="background")
    scanner = FixedScanner({"bg": 10, "peaks": 4})

    outcome = process_motif(
        motif, input_set, background, [], scanner, ScanRange(0.5, 1.0, 0.1), 0.05, 1, False, False
    )

    assert isinstance(outcome.calibration.warning, ThresholdNotAchievedWarning)
    assert outcome.calibration.value == pytest.approx(1.0)
    assert outcome.classification.hit_count == 4
    assert outcome.error is None


def test_bootstrap_significance(motif):
    """Observed 4 hits against draws with 0, 5 and 10 hits"""
    draws = [
        SequenceSet(name, tuple(SequenceRecord(f"{name}_{i}", "A" * 20) for i in range(10)), kind="background")
        for name in ("d1", "d2", "d3")
    ]
    observed = classify(
        [MatchRecord(motif.name, f"s{i}", "input", 0, motif.length, "+", 1.0) for i in range(4)],
        motif.name,
        "peaks",
        cutoff=0.9,
    )
    scanner = FixedScanner({"d1": 0, "d2": 5, "d3": 10})

    significance = bootstrap_significance(observed, motif, scanner, draws)

    assert significance.observed == 4
    assert significance.background_hits == (0, 5, 10)
    assert significance.p_value == pytest.approx(2 / 3)
    assert significance.mean == pytest.approx(5.0)
    assert significance.sd == pytest.approx(5.0)


def test_bootstrap_without_draws_is_nan(motif):
    observed = classify([], motif.name, "peaks", cutoff=0.9)

    significance = bootstrap_significance(observed, motif, FixedScanner({}), [])

    assert np.isnan(significance.p_value)


def test_create_config_defaults(input_fasta, pwm_file, background_fasta):
    config = create_config(str(input_fasta), str(pwm_file), background=str(background_fasta))

    assert config.inputs == [str(input_fasta)]
    assert config.scan_range == ScanRange(0.1, 1.0, 0.1)
    assert config.fpr == 0.05
    assert (config.times, config.length, config.besthit) == (10, 400, 1)
    assert config.output == ("stats", "gff")
    assert config.scanner == "native"


@pytest.mark.parametrize(
    "overrides",
    [
        {"background": None},
        {"fpr": 0},
        {"range": "1:0.5"},
        {"times": 0},
        {"besthit": 0},
        {"length": -5},
        {"output": ["stats", "pdf"]},
        {"scanner": "nope"},
        {"colext": [1, 2]},
        {"center": ["peaks.xls"]},
        {"bootstrap": -1},
        {"n_jobs": 0},
    ],
)
def test_create_config_rejects_invalid_options(input_fasta, pwm_file, background_fasta, overrides):
    kwargs = {"background": str(background_fasta)}
    kwargs.update(overrides)

    with pytest.raises(ConfigurationError):
        create_config(str(input_fasta), str(pwm_file), **kwargs)


def test_create_config_justscan_without_background(input_fasta, pwm_file):
    config = create_config([input_fasta], pwm_file, justscan=True, output="gff")

    assert config.background is None
    assert config.output == ("gff",)


def test_scan_motifs_from_files(temp_dir, input_fasta, pwm_file, background_fasta):
    result = scan_motifs(
        [str(input_fasta)],
        str(pwm_file),
        background=str(background_fasta),
        range="0.5:0.05:1",
        length=100,
        seed=5,
        output=["stats", "gff", "bed"],
        outdir=str(temp_dir / "out"),
    )

    summary = result.to_dict()
    assert summary["hits"]["peaks"]["GATA_like"] >= 10
    assert summary["cutoffs"][0]["status"] == "ok"
    assert all(os.path.exists(path) for path in summary["outputs"])
    assert (temp_dir / "out" / "peaks_GATA_like.bed").exists()


def test_scan_motifs_renames_duplicate_sets(temp_dir, input_set, motif):
    result = scan_motifs(
        [input_set, input_set], motif, justscan=True, range="0.95:1", outdir=str(temp_dir), output="stats"
    )

    assert result.counts.index.tolist() == ["peaks", "peaks_2"]


def test_classify_matches_on_match_streams():
    background = [MatchRecord("M1", f"bg{i}", "background", 0, 8, "+", 0.55 + 0.1 * (i % 5)) for i in range(40)]
    matches = [
        MatchRecord("M1", "chr1:100-300", "input", 5, 13, "+", 0.97),
        MatchRecord("M1", "chr1:400-600", "input", 5, 13, "-", 0.6),
    ]

    calibration, result = classify_matches(
        background, 200, matches, "M1", "peaks", range="0.5:0.1:1", projector=CoordinateProjector()
    )

    assert calibration.value == pytest.approx(0.9)
    assert result.hit_count == 1
    assert result.hits[0].coordinates.start == 105


def test_classify_matches_rejects_out_of_range_scores():
    matches = [MatchRecord("M1", "s", "input", 0, 8, "+", 0.2)]

    with pytest.raises(ScannerAdapterError):
        classify_matches([], 10, matches, "M1", "peaks", range="0.5:0.1:1")


def test_classify_matches_rejects_scores_above_range():
    matches = [MatchRecord("M1", "s", "input", 0, 8, "+", 7.5)]

    with pytest.raises(ScannerAdapterError):
        classify_matches([], 10, matches, "M1", "peaks", range="0.1:0.1:1")


@registry.register("recording")
class RecordingScanner(ScannerAdapter):
    """Native scanner that records the sets it was prepared with."""

    prepared = []

    def prepare(self, background):
        RecordingScanner.prepared.append(None if background is None else background.name)

    def scan(self, motif, sequences, cutoff, max_hits):
        return create_scanner("native").scan(motif, sequences, cutoff, max_hits)


def test_justscan_prepares_scanner_once_from_first_input(temp_dir, motif, input_set):
    RecordingScanner.prepared = []
    second = SequenceSet(name="peaks_b", records=input_set.records, kind="input")

    with RunContext(outdir=str(temp_dir)) as context:
        pipeline = Pipeline(context, scanner="recording", justscan=True, scan_range=ScanRange(0.95, 1.0))
        pipeline.run([motif], [input_set, second])

    assert RecordingScanner.prepared == [input_set.name]
