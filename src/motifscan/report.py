"""Renderers for the stats, GFF and BED outputs."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from motifscan.context import RunContext
from motifscan.models import CalibrationResult, ClassificationResult, ClassifiedHit, Significance

logger = logging.getLogger(__name__)

OUTPUT_TYPES = ("stats", "gff", "bed")


def _safe(name: str) -> str:
    return re.sub(r"[^\w.-]+", "_", name)


def scale_scores(scores: Sequence[float], maximum: int = 1000) -> np.ndarray:
    """Rescale scores linearly so the smallest maps to 0 and the largest to ``maximum``.

    When all scores are equal every value maps to ``maximum``.
    """
    values = np.asarray(scores, dtype=np.float64)
    if values.size == 0:
        return np.zeros(0, dtype=np.int64)
    low, high = values.min(), values.max()
    if np.isclose(low, high):
        return np.full(values.size, maximum, dtype=np.int64)
    return np.rint((values - low) / (high - low) * maximum).astype(np.int64)


def gff_line(hit: ClassifiedHit, cutoff: Optional[float] = None) -> str:
    """One GFF record (1-based, inclusive) for a classified hit."""
    attributes = f'motif_name "{hit.motif_id}" ; rank "{hit.rank}"'
    if cutoff is not None:
        attributes += f' ; cutoff "{cutoff:g}"'
    return "\t".join(
        [
            hit.sequence_id,
            "motifscan",
            "misc_feature",
            str(hit.match.start + 1),
            str(hit.match.end),
            f"{hit.score:g}",
            hit.strand,
            ".",
            attributes,
        ]
    )


def bed_lines(result: ClassificationResult) -> List[str]:
    """Six-column BED records with a 0-1000 score for shading.

    Hits must carry projected coordinates.
    """
    shades = scale_scores([hit.score for hit in result.hits])
    lines = []
    for hit, shade in zip(result.hits, shades):
        if hit.coordinates is None:
            raise ValueError(f"Hit of {hit.motif_id} on {hit.sequence_id} has no projected coordinates")
        coords = hit.coordinates
        lines.append("\t".join([coords.chrom, str(coords.start), str(coords.end), hit.sequence_id, str(shade), hit.strand]))
    return lines


def stats_table(
    counts: pd.DataFrame, significance: Optional[Iterable[Significance]] = None
) -> pd.DataFrame:
    """Arrange hit counts, and bootstrap statistics when present, for output.

    Rows are indexed by (sequence set, statistic); columns are motifs.
    """
    statistics: Dict[str, Dict[tuple, float]] = {}
    for item in significance or []:
        for statistic in ("p_value", "mean", "sd"):
            key = statistic.replace("_", "-")
            statistics.setdefault(key, {})[(item.set_id, item.motif_id)] = getattr(item, statistic)

    rows = []
    index = []
    for set_id in counts.index:
        rows.append(counts.loc[set_id].astype(object).tolist())
        index.append((set_id, "hits"))
        for statistic, values in statistics.items():
            rows.append([values.get((set_id, motif_id), np.nan) for motif_id in counts.columns])
            index.append((set_id, statistic))

    if not rows:
        return pd.DataFrame(columns=counts.columns, index=pd.MultiIndex.from_arrays([[], []], names=["set", "statistic"]))
    return pd.DataFrame(
        rows, index=pd.MultiIndex.from_tuples(index, names=["set", "statistic"]), columns=counts.columns
    )


def calibration_table(calibrations: Iterable[CalibrationResult]) -> pd.DataFrame:
    """One row per calibrated pair with the chosen cutoff and achieved rate."""
    rows = [
        {
            "set": c.cutoff.set_id,
            "motif": c.cutoff.motif_id,
            "cutoff": c.value,
            "target_fpr": c.target_fpr,
            "achieved_fpr": c.achieved_fpr,
            "background": c.n_background,
            "status": "scan" if not c.calibrated else ("ok" if c.achieved else "not_achieved"),
        }
        for c in calibrations
    ]
    return pd.DataFrame(
        rows, columns=["set", "motif", "cutoff", "target_fpr", "achieved_fpr", "background", "status"]
    )


def write_stats(context: RunContext, table: pd.DataFrame, filename: str = "stats.txt") -> str:
    path = context.output_path(filename)
    with context.atomic_output(path) as handle:
        table.to_csv(handle, sep="\t", na_rep="NA")
    logger.info(f"Statistics written in {path}")
    return path


def write_cutoffs(context: RunContext, table: pd.DataFrame, filename: str = "cutoffs.txt") -> str:
    path = context.output_path(filename)
    with context.atomic_output(path) as handle:
        table.to_csv(handle, sep="\t", index=False, na_rep="NA")
    return path


def write_gff(context: RunContext, result: ClassificationResult) -> str:
    path = context.output_path(f"{_safe(result.set_id)}_{_safe(result.motif_id)}.gff")
    with context.atomic_output(path) as handle:
        for hit in result.hits:
            handle.write(gff_line(hit, result.cutoff) + "\n")
    logger.info(f"{len(result.hits)} hit(s) written in {path}")
    return path


def write_bed(context: RunContext, result: ClassificationResult) -> str:
    path = context.output_path(f"{_safe(result.set_id)}_{_safe(result.motif_id)}.bed")
    with context.atomic_output(path) as handle:
        for line in bed_lines(result):
            handle.write(line + "\n")
    logger.info(f"{len(result.hits)} hit(s) written in {path}")
    return path
