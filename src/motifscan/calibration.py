"""
Threshold calibration
=====================

Chooses, per motif, the least stringent score cutoff whose empirical false
positive rate on background sequences does not exceed the target rate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import numpy as np
import pandas as pd

from motifscan.classifier import per_sequence_hits, stats_cap
from motifscan.exceptions import ConfigurationError, ThresholdNotAchievedWarning
from motifscan.models import CalibrationResult, Cutoff, MatchRecord

logger = logging.getLogger(__name__)

RangeLike = Union[str, Sequence[float], "ScanRange"]

# Allowance for comparing rates such as 4/100 against a target of 0.04
FPR_TOLERANCE = 1e-12


@dataclass(frozen=True)
class ScanRange:
    """Inclusive range of candidate cutoffs ``low, low + step, ..., high``."""

    low: float
    high: float
    step: float = 1.0

    def __post_init__(self):
        if not all(np.isfinite([self.low, self.high, self.step])):
            raise ConfigurationError(f"Scan range values must be finite: {self}")
        if self.step <= 0:
            raise ConfigurationError(f"Scan range step must be positive, got {self.step}")
        if self.low > self.high:
            raise ConfigurationError(f"Scan range lower bound {self.low} exceeds upper bound {self.high}")

    def cutoffs(self) -> np.ndarray:
        """Candidate cutoffs in increasing order, both bounds included."""
        n_steps = int(np.floor((self.high - self.low) / self.step + 1e-9))
        values = np.round(self.low + self.step * np.arange(n_steps + 1), 10)
        if not np.isclose(values[-1], self.high):
            values = np.append(values, self.high)
        return values

    def __str__(self) -> str:
        return f"{self.low:g}:{self.step:g}:{self.high:g}"


def parse_range(value: RangeLike) -> ScanRange:
    """Parse ``a:b`` (step 1), ``a:x:b`` or a sequence of two or three numbers."""
    if isinstance(value, ScanRange):
        return value

    if isinstance(value, str):
        parts = [p for p in value.replace(",", ":").split(":") if p.strip()]
    else:
        parts = list(value)
        if len(parts) == 1 and isinstance(parts[0], str):
            return parse_range(parts[0])

    try:
        numbers = [float(p) for p in parts]
    except (TypeError, ValueError):
        raise ConfigurationError(f"Scan range must be numeric, got {value!r}") from None

    if len(numbers) == 2:
        return ScanRange(low=numbers[0], high=numbers[1], step=1.0)
    if len(numbers) == 3:
        return ScanRange(low=numbers[0], high=numbers[2], step=numbers[1])
    raise ConfigurationError(f"Scan range must have the form a:b or a:x:b, got {value!r}")


def validate_fpr(fpr: float) -> float:
    """Return ``fpr`` as float if it is a proportion in (0, 1]."""
    try:
        fpr = float(fpr)
    except (TypeError, ValueError):
        raise ConfigurationError(f"FPR must be a number, got {fpr!r}") from None
    if not 0 < fpr <= 1:
        raise ConfigurationError(f"FPR must lie in (0, 1], got {fpr}")
    return fpr


def fpr_table(
    background: Iterable[MatchRecord],
    n_background: int,
    scan_range: ScanRange,
    besthit: int = 1,
    uniquestats: bool = False,
) -> pd.DataFrame:
    """Empirical background hit proportion at every candidate cutoff.

    Each background sequence contributes at most ``besthit`` hits (one with
    ``uniquestats``), mirroring how hits of input sequences are counted.
    """
    cutoffs = scan_range.cutoffs()
    records = list(background)

    codes, _ = pd.factorize(pd.Series([r.sequence_id for r in records], dtype=object))
    scores = np.fromiter((r.score for r in records), dtype=np.float64, count=len(records))
    n_sequences = max(n_background, int(codes.max()) + 1 if codes.size else 0)

    hits = per_sequence_hits(codes.astype(np.int64), scores, cutoffs, n_sequences, stats_cap(besthit, uniquestats))
    return pd.DataFrame({"cutoff": cutoffs, "hits": hits, "fpr": hits / float(n_background)})


def select_cutoff(table: pd.DataFrame, target_fpr: float) -> int:
    """Index of the smallest cutoff with ``fpr <= target_fpr``, or -1."""
    passing = np.flatnonzero(table["fpr"].to_numpy() <= target_fpr + FPR_TOLERANCE)
    return int(passing[0]) if passing.size else -1


def calibrate(
    background: Iterable[MatchRecord],
    n_background: int,
    motif_id: str,
    set_id: str,
    scan_range: RangeLike,
    target_fpr: float = 0.05,
    besthit: int = 1,
    uniquestats: bool = False,
    justscan: bool = False,
) -> CalibrationResult:
    """Calibrate the score cutoff of one motif.

    Parameters
    ----------
    background : iterable of MatchRecord
        Matches of the motif on the background sample; records of other
        motifs are ignored.
    n_background : int
        Number of sequences in the background sample.
    motif_id, set_id : str
        Motif being calibrated and the input set the sample was drawn for.
    scan_range : str, sequence or ScanRange
        Candidate cutoffs.
    target_fpr : float
        Highest acceptable background hit proportion.
    besthit, uniquestats : int, bool
        Per-sequence hit counting rules, as for input sequences.
    justscan : bool
        Skip calibration; the cutoff is the lower bound of the range.

    Returns
    -------
    CalibrationResult
        When no cutoff reaches the target, the upper bound of the range is
        used and ``warning`` holds a ThresholdNotAchievedWarning.
    """
    scan_range = parse_range(scan_range)
    target_fpr = validate_fpr(target_fpr)

    if justscan:
        logger.info(f"Calibration skipped for {motif_id}: scanning {set_id} at cutoff {scan_range.low:g}")
        return CalibrationResult(
            cutoff=Cutoff(motif_id, set_id, float(scan_range.low)),
            target_fpr=target_fpr,
            achieved_fpr=float("nan"),
            n_background=0,
            achieved=False,
            calibrated=False,
        )

    if n_background <= 0:
        raise ConfigurationError(f"Calibration of {motif_id} needs a non-empty background sample")

    records = [r for r in background if r.motif_id == motif_id]
    table = fpr_table(records, n_background, scan_range, besthit, uniquestats)

    for row in table.itertuples(index=False):
        logger.debug(
            f"{motif_id}/{set_id}: threshold {row.cutoff:g} leaves {row.hits} match(es) "
            f"in {n_background} background sequences (FPR {row.fpr:.4f})"
        )

    if not records:
        logger.warning(
            f"No background matches for {motif_id} ({set_id}); using the strictest cutoff {scan_range.high:g}"
        )
        return CalibrationResult(
            cutoff=Cutoff(motif_id, set_id, float(scan_range.high)),
            target_fpr=target_fpr,
            achieved_fpr=0.0,
            n_background=n_background,
            achieved=True,
            table=table,
        )

    index = select_cutoff(table, target_fpr)
    if index < 0:
        last = table.iloc[-1]
        warning = ThresholdNotAchievedWarning(
            f"FPR {target_fpr} not reached for {motif_id} on {set_id}: {int(last['hits'])} match(es) out of "
            f"{n_background} background sequences remain at the strictest cutoff {last['cutoff']:g}"
        )
        logger.warning(str(warning))
        return CalibrationResult(
            cutoff=Cutoff(motif_id, set_id, float(last["cutoff"])),
            target_fpr=target_fpr,
            achieved_fpr=float(last["fpr"]),
            n_background=n_background,
            achieved=False,
            table=table,
            warning=warning,
        )

    chosen = table.iloc[index]
    logger.info(f"Cutoff for {motif_id} on {set_id} at FPR {target_fpr} determined at {chosen['cutoff']:g}")
    return CalibrationResult(
        cutoff=Cutoff(motif_id, set_id, float(chosen["cutoff"])),
        target_fpr=target_fpr,
        achieved_fpr=float(chosen["fpr"]),
        n_background=n_background,
        achieved=True,
        table=table,
    )
