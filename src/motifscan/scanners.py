"""
scanners
========

MatchRecord adapters.  Every scanning backend turns its own raw output into
:class:`~motifscan.models.MatchRecord` objects with forward-strand, 0-based,
end-exclusive offsets, so the calibration and classification code never
needs to know which backend produced a match.

Backends are registered by name with :data:`registry`:

``native``
    In-process PWM scoring with numba kernels (normalised scores in [0, 1]).
``pwmscan``
    ``gimme scan`` from the GimmeMotifs suite.
``motifscanner``
    MotifScanner from the INCLUSive suite.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

import numpy as np

from motifscan.exceptions import ConfigurationError, ScannerAdapterError
from motifscan.execute import create_background_model, run_gimme_scan, run_motifscanner
from motifscan.functions import batch_all_scores, normalize_scores, pfm_to_pwm, pwm_with_n_row, score_bounds
from motifscan.io import write_fasta, write_inclusive, write_pwm
from motifscan.models import MatchRecord, Motif, SequenceSet
from motifscan.ragged import ragged_from_strings

logger = logging.getLogger(__name__)

SCORE_TOLERANCE = 1e-9

_STRANDS = {"+": "+", "1": "+", "+1": "+", "F": "+", "-": "-", "-1": "-", "R": "-"}
_ATTRIBUTE = re.compile(r'(\w+)\s+"([^"]*)"')


class ScannerRegistry:
    """Registry of scanner adapter classes using decorator pattern."""

    def __init__(self):
        self._adapters: Dict[str, type] = {}

    def register(self, key: str):
        """Decorator to register a scanner adapter class."""

        def decorator(adapter_cls):
            self._adapters[key] = adapter_cls
            adapter_cls.name = key
            return adapter_cls

        return decorator

    def get(self, key: str) -> type:
        """Get adapter class by key."""
        if key not in self._adapters:
            available = sorted(self._adapters.keys())
            raise ConfigurationError(f"Scanner '{key}' not found. Available: {available}")
        return self._adapters[key]

    def available(self) -> List[str]:
        return sorted(self._adapters.keys())


registry = ScannerRegistry()


def create_scanner(key: str, workdir: Optional[str] = None, **options) -> "ScannerAdapter":
    """Instantiate the adapter registered under ``key``."""
    return registry.get(key)(workdir=workdir, **options)


def normalize_strand(value: str) -> str:
    """Map the strand notations used by scanners to ``+`` or ``-``."""
    strand = _STRANDS.get(value.strip())
    if strand is None:
        raise ScannerAdapterError(f"Unknown strand value {value!r}")
    return strand


def parse_gff_line(line: str, kind: str, motif_id: Optional[str] = None) -> Optional[MatchRecord]:
    """Normalise one GFF line written by a scanner.

    Returns ``None`` for blank lines, comments and header lines.  The motif
    id is taken from the ``motif_name`` or ``id`` attribute, falling back to
    ``motif_id``.
    """
    line = line.rstrip("\r\n")
    if not line.strip() or line.startswith("#"):
        return None

    fields = line.split("\t")
    if len(fields) < 7:
        # MotifScanner writes a one-line header before its GFF records
        if len(fields) == 1:
            return None
        raise ScannerAdapterError(f"Malformed scanner line (expected 9 GFF columns): {line!r}")

    try:
        start = int(fields[3]) - 1
        end = int(fields[4])
        score = float(fields[5])
    except ValueError:
        raise ScannerAdapterError(f"Non-numeric position or score in scanner line: {line!r}") from None

    attributes = dict(_ATTRIBUTE.findall(fields[8])) if len(fields) > 8 else {}
    name = attributes.get("motif_name") or attributes.get("id") or motif_id
    if name is None:
        raise ScannerAdapterError(f"Scanner line carries no motif identifier: {line!r}")

    return MatchRecord(
        motif_id=name,
        sequence_id=fields[0].split()[0],
        kind=kind,
        start=start,
        end=end,
        strand=normalize_strand(fields[6]),
        score=score,
    )


def parse_gff(lines: Iterable[str], kind: str, motif_id: Optional[str] = None) -> List[MatchRecord]:
    """Normalise a stream of scanner GFF lines."""
    records = []
    for line in lines:
        record = parse_gff_line(line, kind, motif_id)
        if record is not None:
            records.append(record)
    return records


def validate_matches(records: Iterable[MatchRecord], low: float, high: float) -> List[MatchRecord]:
    """Check normalised records before they enter calibration.

    Raises
    ------
    ScannerAdapterError
        If a record has an empty or negative span, or a score outside the
        ``[low, high]`` scan range the scanner was asked for.
    """
    records = list(records)
    for record in records:
        if record.start < 0 or record.end <= record.start:
            raise ScannerAdapterError(
                f"Invalid match span {record.start}-{record.end} for {record.motif_id} on {record.sequence_id}"
            )
        if not np.isfinite(record.score) or not low - SCORE_TOLERANCE <= record.score <= high + SCORE_TOLERANCE:
            raise ScannerAdapterError(
                f"Score {record.score} of {record.motif_id} on {record.sequence_id} is outside the scan range "
                f"[{low}, {high}]"
            )
    return records


class ScannerAdapter(ABC):
    """Common interface of scanning backends.

    Parameters
    ----------
    workdir : str, optional
        Directory for temporary files written for external programs.
    """

    name = "abstract"

    def __init__(self, workdir: Optional[str] = None, **options) -> None:
        self.workdir = workdir
        self.options = options

    def prepare(self, background: Optional[SequenceSet]) -> None:
        """Run once per pipeline before any scan."""
        return None

    @abstractmethod
    def scan(self, motif: Motif, sequences: SequenceSet, cutoff: float, max_hits: int) -> List[MatchRecord]:
        """Scan ``sequences`` with ``motif`` and return at most ``max_hits``
        best matches per sequence scoring at least ``cutoff``."""
        raise NotImplementedError

    def _path(self, filename: str) -> str:
        if self.workdir is None:
            raise ConfigurationError(f"Scanner '{self.name}' needs a working directory for temporary files")
        return os.path.join(self.workdir, filename)

    def _fasta_for(self, sequences: SequenceSet) -> str:
        path = self._path(f"{sequences.kind}_{_safe_name(sequences.name)}.fa")
        if not os.path.exists(path):
            # parallel workers may stage the same set
            partial = f"{path}.{os.getpid()}"
            write_fasta(sequences.records, partial)
            os.replace(partial, path)
        return path


def _safe_name(name: str) -> str:
    return re.sub(r"[^\w.-]+", "_", name)


@registry.register("native")
class NativeScanner(ScannerAdapter):
    """In-process PWM scanner.

    Scores are log-odds sums normalised to [0, 1] by the PWM's theoretical
    score bounds, matching the score scale of ``gimme scan``.
    """

    def scan(self, motif: Motif, sequences: SequenceSet, cutoff: float, max_hits: int) -> List[MatchRecord]:
        pwm = pfm_to_pwm(motif.matrix, background=self.options.get("background_frequency", 0.25))
        minimum, maximum = score_bounds(pwm)
        matrix = pwm_with_n_row(pwm)

        encoded = ragged_from_strings(record.sequence for record in sequences.records)
        forward = batch_all_scores(encoded, matrix, is_revcomp=False)
        reverse = batch_all_scores(encoded, matrix, is_revcomp=True)

        records: List[MatchRecord] = []
        for i, record in enumerate(sequences.records):
            fwd = normalize_scores(forward.get_slice(i), minimum, maximum)
            rev = normalize_scores(reverse.get_slice(i), minimum, maximum)
            if fwd.size == 0:
                continue

            scores = np.concatenate([fwd, rev])
            positions = np.concatenate([np.arange(fwd.size), np.arange(rev.size)])
            strands = np.concatenate([np.zeros(fwd.size, dtype=np.int8), np.ones(rev.size, dtype=np.int8)])

            keep = scores >= cutoff - SCORE_TOLERANCE
            if not np.any(keep):
                continue
            scores, positions, strands = scores[keep], positions[keep], strands[keep]

            order = np.lexsort((strands, positions, -scores))[:max_hits]
            for j in order:
                records.append(
                    MatchRecord(
                        motif_id=motif.name,
                        sequence_id=record.name,
                        kind=sequences.kind,
                        start=int(positions[j]),
                        end=int(positions[j]) + motif.length,
                        strand="+" if strands[j] == 0 else "-",
                        score=round(float(scores[j]), 6),
                    )
                )

        logger.debug(f"native: {len(records)} match(es) of {motif.name} in {sequences.name} at >= {cutoff}")
        return records


@registry.register("pwmscan")
class PwmscanScanner(ScannerAdapter):
    """Adapter for ``gimme scan`` (pwmscan)."""

    def scan(self, motif: Motif, sequences: SequenceSet, cutoff: float, max_hits: int) -> List[MatchRecord]:
        motif_path = self._path(f"{_safe_name(motif.name)}_motif.pwm")
        if not os.path.exists(motif_path):
            write_pwm(motif, motif_path)

        output = run_gimme_scan(
            self._fasta_for(sequences),
            motif_path,
            cutoff,
            max_hits,
            executable=self.options.get("executable", "gimme"),
        )
        return parse_gff(output.splitlines(), sequences.kind, motif.name)


@registry.register("motifscanner")
class MotifScannerScanner(ScannerAdapter):
    """Adapter for MotifScanner; needs a Markov background model."""

    def __init__(self, workdir: Optional[str] = None, **options) -> None:
        super().__init__(workdir=workdir, **options)
        self.background_model: Optional[str] = options.get("background_model")

    def prepare(self, background: Optional[SequenceSet]) -> None:
        if self.background_model is None and background is not None:
            self._build_model(background)

    def _build_model(self, sequences: SequenceSet) -> None:
        self.background_model = create_background_model(
            self._fasta_for(sequences),
            self._path("MSmodel.bkg"),
            executable=self.options.get("model_executable", "CreateBackgroundModel"),
        )

    def scan(self, motif: Motif, sequences: SequenceSet, cutoff: float, max_hits: int) -> List[MatchRecord]:
        if self.background_model is None:
            logger.warning(f"No background given to MotifScanner; building the Markov model from {sequences.name}")
            self._build_model(sequences)

        motif_path = self._path(f"{_safe_name(motif.name)}_motif.mtrx")
        if not os.path.exists(motif_path):
            write_inclusive(motif, motif_path)

        output_path = self._path(f"{sequences.kind}_{_safe_name(sequences.name)}_{_safe_name(motif.name)}.gff")
        run_motifscanner(
            self._fasta_for(sequences),
            self.background_model,
            motif_path,
            cutoff,
            output_path,
            executable=self.options.get("executable", "MotifScanner"),
        )
        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise ScannerAdapterError(f"MotifScanner produced no output for {motif.name} on {sequences.name}")

        with open(output_path) as handle:
            records = parse_gff(handle, sequences.kind, motif.name)
        os.remove(output_path)
        return records
