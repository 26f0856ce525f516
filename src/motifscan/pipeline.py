"""
Scan pipeline: background sampling, threshold calibration, classification,
coordinate projection and report writing for every input sequence set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd
from joblib import Parallel, delayed

from motifscan.calibration import ScanRange, calibrate
from motifscan.classifier import classify, hit_count_matrix
from motifscan.context import RunContext
from motifscan.coordinates import CoordinateProjector
from motifscan.exceptions import ConfigurationError, ImpreciseCoordinatesWarning, ScannerAdapterError
from motifscan.models import CalibrationResult, ClassificationResult, Motif, SequenceSet, Significance
from motifscan.report import calibration_table, stats_table, write_bed, write_cutoffs, write_gff, write_stats
from motifscan.sampler import BackgroundSampler
from motifscan.scanners import ScannerAdapter, create_scanner, validate_matches
from motifscan.significance import bootstrap_significance

logger = logging.getLogger(__name__)


@dataclass
class MotifOutcome:
    """Everything produced for one (motif, input set) pair."""

    motif_id: str
    set_id: str
    calibration: Optional[CalibrationResult] = None
    classification: Optional[ClassificationResult] = None
    significance: Optional[Significance] = None
    error: Optional[str] = None


@dataclass
class ScanResult:
    """Collected results of a scan run."""

    calibrations: List[CalibrationResult] = field(default_factory=list)
    classifications: List[ClassificationResult] = field(default_factory=list)
    significance: List[Significance] = field(default_factory=list)
    counts: Optional[pd.DataFrame] = None
    errors: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)

    def cutoffs(self) -> Dict[str, Dict[str, float]]:
        """Cutoff values keyed by input set, then motif."""
        table: Dict[str, Dict[str, float]] = {}
        for calibration in self.calibrations:
            table.setdefault(calibration.cutoff.set_id, {})[calibration.cutoff.motif_id] = calibration.value
        return table

    def to_dict(self) -> Dict[str, Any]:
        counts = {}
        if self.counts is not None:
            counts = {
                set_id: {motif: (None if pd.isna(value) else int(value)) for motif, value in row.items()}
                for set_id, row in self.counts.iterrows()
            }
        return {
            "cutoffs": calibration_table(self.calibrations).to_dict(orient="records"),
            "hits": counts,
            "errors": dict(self.errors),
            "warnings": list(self.warnings),
            "outputs": list(self.outputs),
        }


def process_motif(
    motif: Motif,
    input_set: SequenceSet,
    background: Optional[SequenceSet],
    draws: Sequence[SequenceSet],
    scanner: ScannerAdapter,
    scan_range: ScanRange,
    fpr: float,
    besthit: int,
    uniquestats: bool,
    justscan: bool,
) -> MotifOutcome:
    """Calibrate, classify and optionally bootstrap one motif on one input set.

    Scanner failures are returned on the outcome instead of raised so the
    remaining motifs of the run continue.
    """
    outcome = MotifOutcome(motif_id=motif.name, set_id=input_set.name)
    try:
        if justscan:
            calibration = calibrate([], 0, motif.name, input_set.name, scan_range, fpr, justscan=True)
        else:
            matches = scanner.scan(motif, background, scan_range.low, besthit)
            matches = validate_matches(matches, scan_range.low, scan_range.high)
            calibration = calibrate(
                matches, len(background), motif.name, input_set.name, scan_range, fpr, besthit, uniquestats
            )
        outcome.calibration = calibration

        matches = scanner.scan(motif, input_set, calibration.value, besthit)
        matches = validate_matches(matches, scan_range.low, scan_range.high)
        outcome.classification = classify(
            matches, motif.name, input_set.name, calibration.value, besthit, uniquestats
        )

        if draws:
            outcome.significance = bootstrap_significance(
                outcome.classification, motif, scanner, draws, besthit, uniquestats
            )
    except ScannerAdapterError as e:
        logger.error(f"Scanning {input_set.name} for {motif.name} failed: {e}")
        outcome.error = str(e)
    return outcome


class Pipeline:
    """
    Motif scanning pipeline with false positive rate calibration.

    Parameters
    ----------
    context : RunContext
        Entered run context providing the working and output directories.
    scanner : str
        Name of a registered scanner adapter.
    scan_range : ScanRange
        Candidate cutoffs.
    fpr : float
        Target false positive rate.
    times : int
        Background sample size as a multiple of each input set size.
    length : int
        Length of sampled background sequences.
    besthit : int
        Hits kept per sequence.
    uniquestats : bool
        Count each sequence at most once in the stats.
    justscan : bool
        Skip calibration and scan at the range lower bound.
    seed : int, optional
        Background sampling seed.
    replacement : bool
        Allow sampling the background with replacement.
    bootstrap : int
        Number of background draws for hit count p-values (0 disables).
    n_jobs : int
        Parallel jobs over motifs (joblib semantics).
    outputs : sequence of str
        Requested report types among ``stats``, ``gff`` and ``bed``.
    projector : CoordinateProjector, optional
        Used for BED output.
    scanner_options : mapping, optional
        Extra keyword arguments for the scanner adapter.
    """

    def __init__(
        self,
        context: RunContext,
        scanner: str = "native",
        scan_range: ScanRange = ScanRange(0.1, 1.0, 0.1),
        fpr: float = 0.05,
        times: int = 10,
        length: int = 400,
        besthit: int = 1,
        uniquestats: bool = False,
        justscan: bool = False,
        seed: Optional[int] = None,
        replacement: bool = False,
        bootstrap: int = 0,
        n_jobs: int = 1,
        outputs: Sequence[str] = ("stats", "gff"),
        projector: Optional[CoordinateProjector] = None,
        scanner_options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.context = context
        self.logger = logging.getLogger(__name__)
        self.scanner = create_scanner(scanner, workdir=context.workdir, **dict(scanner_options or {}))
        self.scan_range = scan_range
        self.fpr = fpr
        self.times = times
        self.length = length
        self.besthit = besthit
        self.uniquestats = uniquestats
        self.justscan = justscan
        self.seed = seed
        self.replacement = replacement
        self.bootstrap = bootstrap
        self.n_jobs = n_jobs
        self.outputs = set(outputs)
        self.projector = projector or CoordinateProjector()

    def _log_settings(self, motifs: Sequence[Motif], inputs: Sequence[SequenceSet]) -> None:
        self.logger.info(f"Input sequence set(s): {', '.join(s.name for s in inputs)}")
        self.logger.info(f"Motif(s): {', '.join(m.name for m in motifs)}")
        self.logger.info(f"Scanner: {self.scanner.name}")
        if self.justscan:
            self.logger.info(f"Just scanning at cutoff: {self.scan_range.low:g}")
        else:
            self.logger.info(f"Background sequences larger by factor of: {self.times}")
            self.logger.info(f"Cutoff range: {self.scan_range}")
            self.logger.info(f"False Positive Rate: {self.fpr}")
        self.logger.info(f"Chosen output(s): {', '.join(sorted(self.outputs))}")

    def run(
        self, motifs: Sequence[Motif], inputs: Sequence[SequenceSet], background: Optional[SequenceSet] = None
    ) -> ScanResult:
        """Run the pipeline over every input set and motif."""
        if not motifs:
            raise ConfigurationError("No motifs to scan")
        if not inputs:
            raise ConfigurationError("No input sequence sets to scan")
        if background is None and (not self.justscan or self.bootstrap):
            raise ConfigurationError("A background sequence file is required unless justscan is set")

        self._log_settings(motifs, inputs)
        if "bed" in self.outputs and not self.projector.centers:
            self.logger.warning(
                "BED output requested but no peak centres given; coordinates will be derived from sequence IDs "
                "(chr:start-end or chr:start:end)"
            )

        sampler = None
        if background is not None and (not self.justscan or self.bootstrap):
            sampler = BackgroundSampler(background, seed=self.seed, replacement=self.replacement)
        # without a background, scanners needing one are prepared once from the first input set
        self.scanner.prepare(background if background is not None else next((s for s in inputs if len(s)), None))

        result = ScanResult()
        for input_set in inputs:
            if len(input_set) == 0:
                self.logger.warning(f"Input set {input_set.name} contains no sequences. Proceeding to next...")
                continue
            outcomes = self._run_set(input_set, motifs, sampler)
            self._collect(input_set, outcomes, result)

        result.counts = hit_count_matrix(
            result.classifications, [m.name for m in motifs], [s.name for s in inputs]
        )
        if "stats" in self.outputs:
            result.outputs.append(write_stats(self.context, stats_table(result.counts, result.significance)))
        result.outputs.append(write_cutoffs(self.context, calibration_table(result.calibrations)))
        result.warnings = [f"{type(w).__name__}: {w}" for w in self.context.warnings]
        return result

    def _run_set(
        self, input_set: SequenceSet, motifs: Sequence[Motif], sampler: Optional[BackgroundSampler]
    ) -> List[MotifOutcome]:
        self.logger.info(f"Processing {input_set.name} ({len(input_set)} sequences)...")

        sample = None
        if not self.justscan:
            n = self.times * len(input_set)
            self.logger.info(f"Generating {n} background sequences to be used for scanning of {input_set.name}...")
            drawn = sampler.sample(n, self.length, name=f"{input_set.name}_background")
            if drawn.warning is not None:
                self.context.warn(drawn.warning)
            sample = drawn.sequences

        draws = []
        if self.bootstrap:
            self.logger.info(f"Drawing {self.bootstrap} background set(s) of {len(input_set)} for bootstrapping...")
            for drawn in sampler.samples(len(input_set), self.length, self.bootstrap, name=f"{input_set.name}_draw"):
                if drawn.warning is not None:
                    self.context.warn(drawn.warning)
                draws.append(drawn.sequences)

        return Parallel(n_jobs=self.n_jobs, backend="loky")(
            delayed(process_motif)(
                motif,
                input_set,
                sample,
                draws,
                self.scanner,
                self.scan_range,
                self.fpr,
                self.besthit,
                self.uniquestats,
                self.justscan,
            )
            for motif in motifs
        )

    def _collect(self, input_set: SequenceSet, outcomes: Sequence[MotifOutcome], result: ScanResult) -> None:
        for outcome in outcomes:
            if outcome.error is not None:
                result.errors[f"{outcome.set_id}/{outcome.motif_id}"] = outcome.error
                continue

            calibration = outcome.calibration
            result.calibrations.append(calibration)
            if calibration.warning is not None:
                self.context.warn(calibration.warning)

            classification = outcome.classification
            if "bed" in self.outputs:
                classification, imprecise = self.projector.project_result(classification, input_set)
                if imprecise:
                    self.context.warn(
                        ImpreciseCoordinatesWarning(
                            f"{len(imprecise)} hit(s) of {classification.motif_id} in {classification.set_id} "
                            "are reported relative to the sequence start"
                        )
                    )
            result.classifications.append(classification)

            if outcome.significance is not None:
                result.significance.append(outcome.significance)

            if "gff" in self.outputs:
                result.outputs.append(write_gff(self.context, classification))
            if "bed" in self.outputs:
                result.outputs.append(write_bed(self.context, classification))
