"""
Match classification
====================

Applies calibrated cutoffs to the matches of an input sequence set, keeps
the ``besthit`` best matches per sequence and reduces them to hit counts.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Sequence

import numpy as np
import pandas as pd

from motifscan.exceptions import ConfigurationError
from motifscan.models import ClassificationResult, ClassifiedHit, MatchRecord

logger = logging.getLogger(__name__)

MATCH_COLUMNS = ["motif_id", "sequence_id", "kind", "start", "end", "strand", "score"]

# Scores are compared with a small tolerance so cutoffs taken from a decimal
# range (0.1, 0.2, ...) are not missed through float rounding
SCORE_TOLERANCE = 1e-9


def stats_cap(besthit: int, uniquestats: bool) -> int:
    """Maximum number of hits a single sequence adds to a hit count."""
    if besthit < 1:
        raise ConfigurationError(f"besthit must be >= 1, got {besthit}")
    return 1 if uniquestats else besthit


def matches_to_frame(matches: Iterable[MatchRecord]) -> pd.DataFrame:
    """Collect match records into a DataFrame."""
    rows = [
        (m.motif_id, m.sequence_id, m.kind, m.start, m.end, m.strand, m.score)
        for m in matches
    ]
    frame = pd.DataFrame(rows, columns=MATCH_COLUMNS)
    frame["score"] = frame["score"].astype(np.float64)
    return frame


def rank_matches(frame: pd.DataFrame, cutoff: float, besthit: int) -> pd.DataFrame:
    """Keep the ``besthit`` best matches per sequence scoring at least ``cutoff``.

    Within a sequence matches are ordered by score (descending), then start
    offset (ascending), then strand (``+`` first).
    """
    retained = frame[frame["score"] >= cutoff - SCORE_TOLERANCE]
    if retained.empty:
        return retained.assign(rank=pd.Series(dtype=np.int64))

    ordered = retained.sort_values(
        ["sequence_id", "score", "start", "strand"], ascending=[True, False, True, True], kind="mergesort"
    )
    top = ordered.groupby("sequence_id", sort=False).head(besthit)
    return top.assign(rank=top.groupby("sequence_id", sort=False).cumcount() + 1)


def count_hits(frame: pd.DataFrame, besthit: int = 1, uniquestats: bool = False) -> int:
    """Hit count of already ranked matches for the stats report."""
    if frame.empty:
        return 0
    if uniquestats:
        return int(frame["sequence_id"].nunique())
    return int(len(frame))


def classify(
    matches: Iterable[MatchRecord],
    motif_id: str,
    set_id: str,
    cutoff: float,
    besthit: int = 1,
    uniquestats: bool = False,
) -> ClassificationResult:
    """Classify the matches of one motif in one input sequence set.

    Parameters
    ----------
    matches : iterable of MatchRecord
        Raw matches; records of other motifs are ignored.
    motif_id, set_id : str
        Pair being classified.
    cutoff : float
        Calibrated score threshold of the motif.
    besthit : int
        Maximum number of hits kept per sequence.
    uniquestats : bool
        Count each sequence at most once in ``hit_count``.  The hit list
        still contains every retained hit.

    Returns
    -------
    ClassificationResult
    """
    stats_cap(besthit, uniquestats)
    frame = matches_to_frame(m for m in matches if m.motif_id == motif_id)
    ranked = rank_matches(frame, cutoff, besthit)

    hits = []
    for row in ranked.itertuples(index=False):
        match = MatchRecord(
            motif_id=row.motif_id,
            sequence_id=row.sequence_id,
            kind=row.kind,
            start=int(row.start),
            end=int(row.end),
            strand=row.strand,
            score=float(row.score),
        )
        hits.append(ClassifiedHit(match=match, rank=int(row.rank), set_id=set_id))

    hit_count = count_hits(ranked, besthit, uniquestats)
    logger.info(f"{hit_count} match(es) of {motif_id} found in {set_id} at cutoff {cutoff:g}")
    return ClassificationResult(
        motif_id=motif_id, set_id=set_id, cutoff=cutoff, hits=tuple(hits), hit_count=hit_count
    )


def hit_count_matrix(
    results: Iterable[ClassificationResult], motifs: Sequence[str], sets: Sequence[str]
) -> pd.DataFrame:
    """Tabulate hit counts as sequence sets (rows) by motifs (columns).

    Pairs without a result (for example a failed scan) are ``NA``.
    """
    table: Dict[str, Dict[str, int]] = {name: {} for name in sets}
    for result in results:
        table.setdefault(result.set_id, {})[result.motif_id] = result.hit_count

    matrix = pd.DataFrame.from_dict(table, orient="index").reindex(index=list(sets), columns=list(motifs))
    return matrix.astype("Int64")


def per_sequence_hits(
    sequence_ids: np.ndarray, scores: np.ndarray, cutoffs: np.ndarray, n_sequences: int, cap: int
) -> np.ndarray:
    """Capped hit counts at every cutoff.

    ``sequence_ids`` are integer codes in ``[0, n_sequences)``.  For each
    cutoff the number of matches at or above it is counted per sequence,
    capped at ``cap`` and summed.
    """
    counts = np.zeros(len(cutoffs), dtype=np.int64)
    if scores.size == 0:
        return counts
    for i, cutoff in enumerate(cutoffs):
        mask = scores >= cutoff - SCORE_TOLERANCE
        per_sequence = np.bincount(sequence_ids[mask], minlength=n_sequences)
        counts[i] = int(np.minimum(per_sequence, cap).sum())
    return counts
