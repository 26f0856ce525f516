"""
Coordinate projection
=====================

Maps hit offsets inside peak sequences back to genome coordinates.  Three
sources are tried in order:

1. a peak summit and extension (from centre files or the sequence record),
   giving ``summit - extension + offset``;
2. a ``chrom:start-end`` (or ``chrom:start:end``) region encoded in the
   sequence identifier, giving ``start + offset``;
3. none, in which case offsets are reported relative to the sequence and an
   :class:`~motifscan.exceptions.ImpreciseCoordinatesWarning` is attached.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Dict, List, Mapping, Optional, Tuple

from motifscan.exceptions import ImpreciseCoordinatesWarning
from motifscan.models import ClassificationResult, GenomicInterval, MatchRecord, SequenceRecord, SequenceSet

logger = logging.getLogger(__name__)

_REGION = re.compile(r"^(?P<chrom>[^:\s]+):(?P<start>\d+)[-:](?P<end>\d+)")


@dataclasses.dataclass(frozen=True)
class PeakCenter:
    """Summit of a peak as read from a centre file."""

    chrom: str
    summit: int


def parse_region(identifier: str) -> Optional[Tuple[str, int, int]]:
    """Return ``(chrom, start, end)`` encoded in a sequence identifier."""
    match = _REGION.match(identifier.strip())
    if match is None:
        return None
    return match.group("chrom"), int(match.group("start")), int(match.group("end"))


def project_offsets(start: int, end: int, summit: int, extension: int) -> Tuple[int, int]:
    """Project forward-strand offsets relative to a summit.

    Offsets count from the start of the forward strand whatever the motif
    strand, so the interval does not depend on the strand.
    """
    origin = summit - extension
    return origin + start, origin + end


class CoordinateProjector:
    """
    Project classified hits to genome coordinates.

    Parameters
    ----------
    centers : mapping, optional
        Peak id to :class:`PeakCenter` (or bare summit position).
    extension : int, optional
        Bases the peak sequences extend on each side of the summit.
    """

    def __init__(self, centers: Optional[Mapping[str, object]] = None, extension: Optional[int] = None) -> None:
        self.centers = dict(centers or {})
        self.extension = extension

    def _center_for(self, match: MatchRecord, record: Optional[SequenceRecord]):
        if record is not None and record.summit is not None:
            extension = record.extension if record.extension is not None else self.extension
            region = parse_region(record.name)
            return (region[0] if region else record.name), record.summit, extension

        keys = [match.sequence_id]
        if record is not None:
            keys = [record.name, *record.id.split()[1:]]
        for key in keys:
            center = self.centers.get(key)
            if center is None:
                continue
            if isinstance(center, PeakCenter):
                return center.chrom, center.summit, self.extension
            region = parse_region(match.sequence_id)
            return (region[0] if region else key), int(center), self.extension
        return None

    def project(
        self, match: MatchRecord, record: Optional[SequenceRecord] = None
    ) -> Tuple[GenomicInterval, Optional[ImpreciseCoordinatesWarning]]:
        """Genome interval of a match, with a warning when it is approximate."""
        center = self._center_for(match, record)
        if center is not None and center[2] is not None:
            chrom, summit, extension = center
            start, end = project_offsets(match.start, match.end, summit, extension)
            return GenomicInterval(chrom, start, end, match.strand), None

        region = parse_region(record.name if record is not None else match.sequence_id)
        if region is not None:
            chrom, region_start, _ = region
            return GenomicInterval(chrom, region_start + match.start, region_start + match.end, match.strand), None

        warning = ImpreciseCoordinatesWarning(
            f"No summit or region information for sequence {match.sequence_id}: "
            f"coordinates of {match.motif_id} are relative to the sequence start"
        )
        interval = GenomicInterval(match.sequence_id, match.start, match.end, match.strand, precise=False)
        return interval, warning

    def project_result(
        self, result: ClassificationResult, sequences: Optional[SequenceSet] = None
    ) -> Tuple[ClassificationResult, List[ImpreciseCoordinatesWarning]]:
        """Attach genome coordinates to every hit of a classification result."""
        records: Dict[str, SequenceRecord] = sequences.by_id() if sequences is not None else {}
        hits = []
        warnings = []
        for hit in result.hits:
            interval, warning = self.project(hit.match, records.get(hit.sequence_id))
            hits.append(dataclasses.replace(hit, coordinates=interval, warning=warning))
            if warning is not None:
                warnings.append(warning)

        if warnings:
            logger.warning(
                f"{len(warnings)} hit(s) of {result.motif_id} in {result.set_id} have approximate coordinates"
            )
        return dataclasses.replace(result, hits=tuple(hits)), warnings
