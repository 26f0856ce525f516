"""Random background sampling for false positive rate estimation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from motifscan.exceptions import InsufficientBackgroundError, SamplingWithReplacementWarning
from motifscan.models import SequenceRecord, SequenceSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackgroundSample:
    """Sampled background sequences and the sampling condition, if any."""

    sequences: SequenceSet
    warning: Optional[SamplingWithReplacementWarning] = None

    @property
    def with_replacement(self) -> bool:
        return self.warning is not None


class BackgroundSampler:
    """
    Draw fixed-length windows from a pool of background sequences.

    Parameters
    ----------
    pool : SequenceSet
        Background sequences to draw from.
    seed : int, optional
        Random seed; a fresh one is drawn (and logged) when omitted.
    replacement : bool
        Allow sampling with replacement when the pool holds fewer usable
        sequences than requested.  Otherwise such requests fail.
    """

    def __init__(self, pool: SequenceSet, seed: Optional[int] = None, replacement: bool = False) -> None:
        if seed is None:
            seed = int(np.random.SeedSequence().entropy % (2**32))
            logger.info(f"Background sampling seed: {seed}")
        self.pool = pool
        self.seed = seed
        self.replacement = replacement
        self.rng = np.random.default_rng(seed)

    def usable(self, length: int) -> List[SequenceRecord]:
        """Pool sequences long enough to yield a window of ``length``."""
        return [record for record in self.pool.records if len(record) >= length]

    def sample(self, n: int, length: int, name: Optional[str] = None) -> BackgroundSample:
        """Draw exactly ``n`` windows of ``length`` bases.

        Raises
        ------
        InsufficientBackgroundError
            If no pool sequence is at least ``length`` long, or if fewer than
            ``n`` are and sampling with replacement is not allowed.
        """
        usable = self.usable(length)
        if not usable:
            raise InsufficientBackgroundError(n, 0, length)

        warning = None
        if len(usable) >= n:
            chosen = self.rng.choice(len(usable), size=n, replace=False)
        elif self.replacement:
            warning = SamplingWithReplacementWarning(
                f"Background pool {self.pool.name} has {len(usable)} usable sequence(s) of length >= {length}, "
                f"{n} requested: sampling with replacement"
            )
            chosen = self.rng.choice(len(usable), size=n, replace=True)
        else:
            raise InsufficientBackgroundError(n, len(usable), length)

        seen = set()
        records = []
        for draw, index in enumerate(chosen):
            source = usable[int(index)]
            start = int(self.rng.integers(0, len(source) - length + 1))
            seq_id = f"{source.name}_{start}-{start + length}"
            if seq_id in seen:
                seq_id = f"{seq_id}_{draw}"
            seen.add(seq_id)
            records.append(SequenceRecord(id=seq_id, sequence=source.sequence[start : start + length]))

        logger.debug(f"Sampled {n} background sequence(s) of length {length} from {self.pool.name}")
        sample_name = name or f"{self.pool.name}_sample"
        return BackgroundSample(SequenceSet(name=sample_name, records=tuple(records), kind="background"), warning)

    def samples(self, n: int, length: int, count: int, name: Optional[str] = None) -> List[BackgroundSample]:
        """Draw ``count`` independent samples of ``n`` windows each."""
        prefix = name or f"{self.pool.name}_draw"
        return [self.sample(n, length, name=f"{prefix}{i + 1}") for i in range(count)]
