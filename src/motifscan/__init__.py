"""
motifscan
==================

This package scans sets of sequences (typically ChIP-seq peak regions) for
transcription factor binding motifs.  Instead of a fixed score threshold,
each motif's cutoff is calibrated on a random background sample so that only
a chosen proportion of background sequences contains a hit.  Hits above the
cutoff are then counted, reported as GFF/BED and optionally tested against
further background draws.

The top level modules expose the following key components:

``io``
    Reading and writing FASTA files, motif files (gimme ``.pwm``, MEME and
    INCLUSive) and peak centre tables.

``models``
    Immutable records passed between stages: motifs, sequence sets, match
    records, cutoffs, calibration and classification results.

``scanners``
    Scanner adapters producing normalised match records, either with the
    built-in numba PWM scanner or with external programs.

``sampler``
    Random fixed-length background windows drawn from a sequence pool.

``calibration``
    Cutoff selection at a target false positive rate.

``classifier``
    Per-sequence best hit selection and hit counting.

``coordinates``
    Projection of in-sequence hit offsets to genome coordinates.

``report``
    Statistics tables, GFF and BED writers.

``pipeline``
    The orchestrator running all of the above for every input set.

``api`` and ``cli``
    Library and command line entry points.
"""

from motifscan.api import ScanConfig, classify_matches, create_config, run_scan, scan_motifs
from motifscan.exceptions import (
    ConfigurationError,
    ImpreciseCoordinatesWarning,
    InsufficientBackgroundError,
    MotifscanError,
    SamplingWithReplacementWarning,
    ScannerAdapterError,
    ThresholdNotAchievedWarning,
)
from motifscan.models import MatchRecord, Motif, SequenceRecord, SequenceSet

__all__ = [
    "ScanConfig",
    "create_config",
    "run_scan",
    "scan_motifs",
    "classify_matches",
    "MatchRecord",
    "Motif",
    "SequenceRecord",
    "SequenceSet",
    "MotifscanError",
    "ConfigurationError",
    "InsufficientBackgroundError",
    "ScannerAdapterError",
    "ThresholdNotAchievedWarning",
    "ImpreciseCoordinatesWarning",
    "SamplingWithReplacementWarning",
]
