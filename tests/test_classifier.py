"""
Unit tests for match classification in motifscan.classifier.
"""

import numpy as np
import pandas as pd
import pytest

from motifscan.classifier import classify, hit_count_matrix, per_sequence_hits, stats_cap
from motifscan.exceptions import ConfigurationError
from motifscan.models import MatchRecord


def match(sequence_id, start, score, strand="+", motif_id="M1"):
    return MatchRecord(motif_id, sequence_id, "input", start, start + 6, strand, score)


def test_besthit_keeps_best_scoring_matches():
    matches = [match("s1", 5, 0.7), match("s1", 20, 0.95), match("s1", 40, 0.9), match("s2", 1, 0.8)]

    result = classify(matches, "M1", "peaks", cutoff=0.75, besthit=2)

    frame = result.to_frame()
    assert frame["sequence_id"].tolist() == ["s1", "s1", "s2"]
    assert frame["start"].tolist() == [20, 40, 1]
    assert frame["rank"].tolist() == [1, 2, 1]
    assert result.hit_count == 3


def test_ties_are_ordered_by_offset_then_strand():
    matches = [match("s1", 30, 0.9), match("s1", 10, 0.9, "-"), match("s1", 10, 0.9, "+")]

    result = classify(matches, "M1", "peaks", cutoff=0.5, besthit=2)

    assert [(h.match.start, h.strand) for h in result.hits] == [(10, "+"), (10, "-")]


def test_uniquestats_counts_sequences_once():
    matches = [match("s1", 0, 0.9), match("s1", 10, 0.9), match("s2", 0, 0.9)]

    result = classify(matches, "M1", "peaks", cutoff=0.5, besthit=3, uniquestats=True)

    assert result.hit_count == 2
    assert len(result.hits) == 3


def test_cutoff_is_inclusive_despite_rounding():
    cutoff = 0.1 * 8
    result = classify([match("s1", 0, 0.8)], "M1", "peaks", cutoff=cutoff)

    assert result.hit_count == 1


def test_classify_ignores_other_motifs():
    matches = [match("s1", 0, 0.9), match("s1", 0, 0.99, motif_id="M2")]

    result = classify(matches, "M1", "peaks", cutoff=0.5)

    assert result.hit_count == 1
    assert result.hits[0].score == pytest.approx(0.9)
    assert result.hits[0].set_id == "peaks"


def test_classify_without_matches():
    result = classify([], "M1", "peaks", cutoff=0.5)

    assert result.hit_count == 0
    assert result.hits == ()
    assert result.to_frame().empty


def test_besthit_must_be_positive():
    with pytest.raises(ConfigurationError):
        stats_cap(0, False)
    with pytest.raises(ConfigurationError):
        classify([match("s1", 0, 0.9)], "M1", "peaks", cutoff=0.5, besthit=0)


def test_hit_count_matrix_marks_missing_pairs():
    results = [
        classify([match("s1", 0, 0.9)], "M1", "a", cutoff=0.5),
        classify([], "M2", "a", cutoff=0.5),
        classify([match("s1", 0, 0.9, motif_id="M2")], "M2", "b", cutoff=0.5),
    ]

    matrix = hit_count_matrix(results, ["M1", "M2"], ["a", "b"])

    assert matrix.loc["a", "M1"] == 1
    assert matrix.loc["a", "M2"] == 0
    assert matrix.loc["b", "M2"] == 1
    assert pd.isna(matrix.loc["b", "M1"])


def test_per_sequence_hits_caps_each_sequence():
    codes = np.array([0, 0, 0, 1], dtype=np.int64)
    scores = np.array([0.9, 0.8, 0.6, 0.7])

    counts = per_sequence_hits(codes, scores, np.array([0.5, 0.75, 0.95]), 2, cap=2)

    assert counts.tolist() == [3, 2, 0]
