"""
Data model
==========

Immutable containers shared by every stage of the scan pipeline.  Numeric
payloads (matrices, cutoff tables) are excluded from hashing and equality
because numpy arrays and DataFrames are unhashable.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dc_field
from typing import Any, Literal, Optional, Tuple

import numpy as np
import pandas as pd

from motifscan.exceptions import ImpreciseCoordinatesWarning, MotifscanWarning

SetKind = Literal["input", "background"]
Strand = Literal["+", "-"]


@dataclass(frozen=True)
class Motif:
    """Positional weight matrix loaded from a motif file.

    Attributes
    ----------
    name : str
        Motif identifier, unique within a motif file.
    matrix : np.ndarray
        Base probabilities with shape ``(4, length)``; rows are A, C, G, T.
    length : int
        Number of matrix positions.
    """

    name: str
    matrix: Any = dc_field(hash=False, compare=False, repr=False)
    length: int

    def __hash__(self):
        return hash((self.name, self.length))

    def consensus(self) -> str:
        """Return the most probable base at every position."""
        return "".join("ACGT"[i] for i in np.argmax(self.matrix, axis=0))


@dataclass(frozen=True)
class SequenceRecord:
    """One sequence of a FASTA file with optional peak summit metadata."""

    id: str
    sequence: str
    summit: Optional[int] = None
    extension: Optional[int] = None

    def __len__(self) -> int:
        return len(self.sequence)

    @property
    def name(self) -> str:
        """First whitespace-delimited token of the identifier."""
        return self.id.split()[0] if self.id else self.id


@dataclass(frozen=True)
class SequenceSet:
    """File-level group of sequences (one FASTA file)."""

    name: str
    records: Tuple[SequenceRecord, ...]
    kind: SetKind = "input"

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    @property
    def ids(self) -> list[str]:
        return [record.name for record in self.records]

    def by_id(self) -> dict[str, SequenceRecord]:
        """Map sequence name to record."""
        return {record.name: record for record in self.records}


@dataclass(frozen=True)
class MatchRecord:
    """Normalised raw scanner match.

    ``start`` is a 0-based offset and ``end`` is exclusive; both are measured
    on the forward strand of the scanned sequence regardless of ``strand``.
    """

    motif_id: str
    sequence_id: str
    kind: SetKind
    start: int
    end: int
    strand: Strand
    score: float


@dataclass(frozen=True)
class Cutoff:
    """Score threshold of one motif for one input sequence set."""

    motif_id: str
    set_id: str
    value: float


@dataclass(frozen=True)
class CalibrationResult:
    """Outcome of threshold calibration for a motif.

    Attributes
    ----------
    cutoff : Cutoff
        Selected score threshold.
    target_fpr : float
        Requested false positive rate.
    achieved_fpr : float
        Empirical background hit proportion at the selected cutoff
        (``nan`` when calibration was skipped).
    n_background : int
        Number of background sequences the proportion is computed on.
    achieved : bool
        Whether ``achieved_fpr <= target_fpr``.
    table : pd.DataFrame
        Columns ``cutoff``, ``hits``, ``fpr`` for every tested cutoff.
    warning : ThresholdNotAchievedWarning, optional
        Set when the target rate could not be met within the range.
    """

    cutoff: Cutoff
    target_fpr: float
    achieved_fpr: float
    n_background: int
    achieved: bool
    table: Any = dc_field(default=None, hash=False, compare=False, repr=False)
    warning: Optional[MotifscanWarning] = dc_field(default=None, compare=False)
    calibrated: bool = True

    @property
    def value(self) -> float:
        return self.cutoff.value


@dataclass(frozen=True)
class GenomicInterval:
    """Absolute genome position of a hit (0-based, end exclusive)."""

    chrom: str
    start: int
    end: int
    strand: Strand
    precise: bool = True


@dataclass(frozen=True)
class ClassifiedHit:
    """A match whose score passed its motif cutoff."""

    match: MatchRecord
    rank: int
    set_id: str
    coordinates: Optional[GenomicInterval] = None
    warning: Optional[ImpreciseCoordinatesWarning] = dc_field(default=None, compare=False)

    @property
    def motif_id(self) -> str:
        return self.match.motif_id

    @property
    def sequence_id(self) -> str:
        return self.match.sequence_id

    @property
    def score(self) -> float:
        return self.match.score

    @property
    def strand(self) -> str:
        return self.match.strand


@dataclass(frozen=True)
class ClassificationResult:
    """Significant hits of one motif in one input sequence set."""

    motif_id: str
    set_id: str
    cutoff: float
    hits: Tuple[ClassifiedHit, ...]
    hit_count: int

    def to_frame(self) -> pd.DataFrame:
        """Return the hits as a DataFrame in classification order."""
        rows = [
            {
                "motif_id": hit.motif_id,
                "sequence_id": hit.sequence_id,
                "start": hit.match.start,
                "end": hit.match.end,
                "strand": hit.strand,
                "score": hit.score,
                "rank": hit.rank,
            }
            for hit in self.hits
        ]
        return pd.DataFrame(rows, columns=["motif_id", "sequence_id", "start", "end", "strand", "score", "rank"])


@dataclass(frozen=True)
class Significance:
    """Bootstrap comparison of an observed hit count with background draws."""

    motif_id: str
    set_id: str
    observed: int
    p_value: float
    mean: float
    sd: float
    background_hits: Tuple[int, ...] = ()
