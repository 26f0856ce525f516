"""Bootstrap significance of hit counts against background draws."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from motifscan.classifier import classify
from motifscan.models import ClassificationResult, Motif, SequenceSet, Significance
from motifscan.scanners import ScannerAdapter

logger = logging.getLogger(__name__)


def bootstrap_significance(
    observed: ClassificationResult,
    motif: Motif,
    scanner: ScannerAdapter,
    draws: Sequence[SequenceSet],
    besthit: int = 1,
    uniquestats: bool = False,
) -> Significance:
    """Compare an observed hit count with hit counts in background draws.

    Each draw should hold as many sequences as the input set.  The p-value
    is the fraction of draws with strictly more hits than observed.
    """
    counts = []
    for k, draw in enumerate(draws, start=1):
        matches = scanner.scan(motif, draw, observed.cutoff, besthit)
        result = classify(matches, motif.name, draw.name, observed.cutoff, besthit, uniquestats)
        logger.debug(f"{motif.name} -- iteration {k}: {result.hit_count} background hit(s)")
        counts.append(result.hit_count)

    values = np.asarray(counts, dtype=np.float64)
    if values.size == 0:
        return Significance(motif.name, observed.set_id, observed.hit_count, float("nan"), float("nan"), float("nan"))

    p_value = float(np.sum(values > observed.hit_count) / values.size)
    mean = float(values.mean())
    sd = float(values.std(ddof=1)) if values.size > 1 else 0.0
    logger.info(f"Average background hits for {motif.name} on {observed.set_id}: {mean:.2f} +/- {sd:.2f}")
    logger.info(f"p-value for {motif.name} on {observed.set_id}: {p_value}")
    return Significance(
        motif_id=motif.name,
        set_id=observed.set_id,
        observed=observed.hit_count,
        p_value=p_value,
        mean=mean,
        sd=sd,
        background_hits=tuple(int(c) for c in counts),
    )
