"""
Unit tests for report rendering and writing in motifscan.report.
"""

import os

import numpy as np
import pandas as pd
import pytest

from motifscan.calibration import calibrate
from motifscan.classifier import classify, hit_count_matrix
from motifscan.context import RunContext
from motifscan.coordinates import CoordinateProjector
from motifscan.models import MatchRecord, Significance
from motifscan.report import (
    bed_lines,
    calibration_table,
    gff_line,
    scale_scores,
    stats_table,
    write_bed,
    write_cutoffs,
    write_gff,
    write_stats,
)


@pytest.fixture
def result():
    matches = [
        MatchRecord("M1", "chr1:1000-1400", "input", 10, 16, "+", 0.8),
        MatchRecord("M1", "chr1:2000-2400", "input", 30, 36, "-", 0.9),
        MatchRecord("M1", "chr1:3000-3400", "input", 50, 56, "+", 1.0),
    ]
    return classify(matches, "M1", "peaks", cutoff=0.75)


def test_scale_scores_spans_0_to_1000():
    assert scale_scores([0.5, 0.75, 1.0]).tolist() == [0, 500, 1000]
    assert scale_scores([0.7, 0.7]).tolist() == [1000, 1000]
    assert scale_scores([]).size == 0


def test_gff_line_is_one_based(result):
    fields = gff_line(result.hits[0], result.cutoff).split("\t")

    assert fields[0] == "chr1:1000-1400"
    assert (fields[3], fields[4]) == ("11", "16")
    assert fields[5] == "0.8"
    assert fields[6] == "+"
    assert 'motif_name "M1"' in fields[8]
    assert 'rank "1"' in fields[8]
    assert 'cutoff "0.75"' in fields[8]


def test_bed_lines_need_coordinates(result):
    with pytest.raises(ValueError):
        bed_lines(result)

    projected, _ = CoordinateProjector().project_result(result)
    lines = [line.split("\t") for line in bed_lines(projected)]

    assert lines[0] == ["chr1", "1010", "1016", "chr1:1000-1400", "0", "+"]
    assert lines[1][4] == "500"
    assert lines[2][4] == "1000"
    assert lines[1][5] == "-"


def test_stats_table_adds_bootstrap_rows(result):
    counts = hit_count_matrix([result], ["M1", "M2"], ["peaks"])
    significance = [Significance("M1", "peaks", 3, 0.25, 1.5, 0.5, (1, 2, 1, 4))]

    table = stats_table(counts, significance)

    assert list(table.columns) == ["M1", "M2"]
    assert table.index.tolist() == [("peaks", "hits"), ("peaks", "p-value"), ("peaks", "mean"), ("peaks", "sd")]
    assert table.loc[("peaks", "hits"), "M1"] == 3
    assert pd.isna(table.loc[("peaks", "hits"), "M2"])
    assert table.loc[("peaks", "p-value"), "M1"] == pytest.approx(0.25)
    assert np.isnan(table.loc[("peaks", "sd"), "M2"])


def test_calibration_table_statuses():
    calibrations = [
        calibrate([], 100, "M1", "peaks", "0.5:0.5:1"),
        calibrate([], 0, "M2", "peaks", "0.5:0.5:1", justscan=True),
        calibrate([MatchRecord("M3", "b", "background", 0, 6, "+", 1.0)], 1, "M3", "peaks", "0.5:0.5:1"),
    ]

    table = calibration_table(calibrations)

    assert table["status"].tolist() == ["ok", "scan", "not_achieved"]
    assert table["cutoff"].tolist() == [1.0, 0.5, 1.0]


def test_writers_produce_complete_files(temp_dir, result):
    with RunContext(outdir=str(temp_dir)) as context:
        projected, _ = CoordinateProjector().project_result(result)
        gff = write_gff(context, projected)
        bed = write_bed(context, projected)
        stats = write_stats(context, stats_table(hit_count_matrix([result], ["M1"], ["peaks"])))
        cutoffs = write_cutoffs(context, calibration_table([calibrate([], 10, "M1", "peaks", "0.5:1")]))

    assert os.path.basename(gff) == "peaks_M1.gff"
    assert os.path.basename(bed) == "peaks_M1.bed"
    assert len(open(gff).read().splitlines()) == 3
    assert len(open(bed).read().splitlines()) == 3
    assert open(stats).read().splitlines()[1].split("\t") == ["peaks", "hits", "3"]
    assert "cutoff" in open(cutoffs).readline()
    assert not [name for name in os.listdir(temp_dir) if name.endswith(".incomplete")]
