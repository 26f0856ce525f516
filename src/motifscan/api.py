"""High-level public API for motif scanning."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from motifscan.calibration import RangeLike, ScanRange, calibrate, parse_range, validate_fpr
from motifscan.classifier import classify
from motifscan.context import RunContext
from motifscan.coordinates import CoordinateProjector
from motifscan.exceptions import ConfigurationError
from motifscan.io import read_centers, read_fasta, read_motifs
from motifscan.models import CalibrationResult, ClassificationResult, MatchRecord, Motif, SequenceSet
from motifscan.pipeline import Pipeline, ScanResult
from motifscan.report import OUTPUT_TYPES
from motifscan.scanners import registry, validate_matches

SequenceRef = Union[SequenceSet, str, Path]
MotifRef = Union[Motif, Sequence[Motif], str, Path]


@dataclass
class ScanConfig:
    """Unified configuration object for library usage."""

    inputs: List[SequenceRef]
    motif: MotifRef
    background: Optional[SequenceRef] = None
    scanner: str = "native"
    scan_range: ScanRange = field(default_factory=lambda: ScanRange(0.1, 1.0, 0.1))
    fpr: float = 0.05
    times: int = 10
    length: int = 400
    besthit: int = 1
    uniquestats: bool = False
    justscan: bool = False
    center: List[str] = field(default_factory=list)
    colext: Optional[Tuple[int, int, int]] = None
    output: Tuple[str, ...] = ("stats", "gff")
    seed: Optional[int] = None
    replacement: bool = False
    bootstrap: int = 0
    n_jobs: int = 1
    outdir: str = "."
    scanner_options: Dict[str, Any] = field(default_factory=dict)


def _positive(name: str, value: int) -> int:
    if int(value) != value or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def create_config(
    inputs: Union[SequenceRef, Sequence[SequenceRef]],
    motif: MotifRef,
    background: Optional[SequenceRef] = None,
    scanner: str = "native",
    range: RangeLike = "0.1:0.1:1",
    fpr: float = 0.05,
    times: int = 10,
    length: int = 400,
    besthit: int = 1,
    uniquestats: bool = False,
    justscan: bool = False,
    center: Optional[Sequence[str]] = None,
    colext: Optional[Sequence[int]] = None,
    output: Union[str, Sequence[str]] = ("stats", "gff"),
    seed: Optional[int] = None,
    replacement: bool = False,
    bootstrap: int = 0,
    n_jobs: int = 1,
    outdir: str = ".",
    scanner_options: Optional[Dict[str, Any]] = None,
) -> ScanConfig:
    """Build and validate a scan config.

    Raises
    ------
    ConfigurationError
        On any missing or invalid option.
    """
    if isinstance(inputs, (str, Path, SequenceSet)):
        inputs = [inputs]
    inputs = list(inputs or [])
    if not inputs:
        raise ConfigurationError("At least one input sequence set is required")
    if motif is None or (isinstance(motif, (list, tuple)) and not motif):
        raise ConfigurationError("A motif file or motif list is required")

    bootstrap = int(bootstrap)
    if bootstrap < 0:
        raise ConfigurationError(f"bootstrap must be >= 0, got {bootstrap}")
    if background is None and not justscan:
        raise ConfigurationError("A background sequence file is required unless justscan is set")
    if background is None and bootstrap:
        raise ConfigurationError("bootstrap needs a background sequence file")

    if scanner not in registry.available():
        raise ConfigurationError(f"Scanner '{scanner}' not found. Available: {registry.available()}")

    if isinstance(output, str):
        output = [output]
    output = tuple(dict.fromkeys(o.lower() for o in output))
    unknown = [o for o in output if o not in OUTPUT_TYPES]
    if unknown or not output:
        raise ConfigurationError(f"Output must be a non-empty subset of {list(OUTPUT_TYPES)}, got {list(output)}")

    if colext is not None:
        colext = tuple(int(c) for c in colext)
        if len(colext) != 3 or min(colext) < 0:
            raise ConfigurationError(
                f"colext needs three non-negative integers (id column, summit column, extension), got {list(colext)}"
            )
    center = [str(c) for c in center or []]
    if center and colext is None:
        raise ConfigurationError("colext is required together with center files")

    if n_jobs == 0:
        raise ConfigurationError("n_jobs must be non-zero")

    return ScanConfig(
        inputs=inputs,
        motif=motif,
        background=background,
        scanner=scanner,
        scan_range=parse_range(range),
        fpr=validate_fpr(fpr),
        times=_positive("times", times),
        length=_positive("length", length),
        besthit=_positive("besthit", besthit),
        uniquestats=bool(uniquestats),
        justscan=bool(justscan),
        center=center,
        colext=colext,
        output=output,
        seed=seed,
        replacement=bool(replacement),
        bootstrap=bootstrap,
        n_jobs=int(n_jobs),
        outdir=str(outdir),
        scanner_options=dict(scanner_options or {}),
    )


def scan_motifs(inputs, motif, background=None, **kwargs) -> ScanResult:
    """Single-call entry point for motif scanning."""

    return run_scan(create_config(inputs, motif, background=background, **kwargs))


def run_scan(config: ScanConfig) -> ScanResult:
    """Execute a scan using the unified config."""

    motifs = _resolve_motifs(config.motif)
    inputs = _resolve_inputs(config.inputs)
    background = _resolve_sequences(config.background, "background") if config.background is not None else None
    projector = _resolve_projector(config)

    with RunContext(outdir=config.outdir) as context:
        pipeline = Pipeline(
            context,
            scanner=config.scanner,
            scan_range=config.scan_range,
            fpr=config.fpr,
            times=config.times,
            length=config.length,
            besthit=config.besthit,
            uniquestats=config.uniquestats,
            justscan=config.justscan,
            seed=config.seed,
            replacement=config.replacement,
            bootstrap=config.bootstrap,
            n_jobs=config.n_jobs,
            outputs=config.output,
            projector=projector,
            scanner_options=config.scanner_options,
        )
        return pipeline.run(motifs, inputs, background)


def classify_matches(
    background: Iterable[MatchRecord],
    n_background: int,
    matches: Iterable[MatchRecord],
    motif_id: str,
    set_id: str,
    range: RangeLike = "0.1:0.1:1",
    fpr: float = 0.05,
    besthit: int = 1,
    uniquestats: bool = False,
    sequences: Optional[SequenceSet] = None,
    projector: Optional[CoordinateProjector] = None,
) -> Tuple[CalibrationResult, ClassificationResult]:
    """Calibrate and classify MatchRecords produced by any scanner.

    Both streams are validated against the bounds of ``range``.  When a
    ``projector`` is given the hits also carry genome coordinates, with
    ``sequences`` supplying summit metadata.
    """
    scan_range = parse_range(range)
    background = validate_matches(background, scan_range.low, scan_range.high)
    matches = validate_matches(matches, scan_range.low, scan_range.high)

    calibration = calibrate(background, n_background, motif_id, set_id, scan_range, fpr, besthit, uniquestats)
    result = classify(matches, motif_id, set_id, calibration.value, besthit, uniquestats)
    if projector is not None:
        result, _ = projector.project_result(result, sequences)
    return calibration, result


def _resolve_motifs(motif: MotifRef) -> List[Motif]:
    """Convert a motif reference to a list of Motif objects."""

    if isinstance(motif, Motif):
        return [motif]
    if isinstance(motif, (str, Path)):
        return read_motifs(motif)
    if isinstance(motif, (list, tuple)) and all(isinstance(m, Motif) for m in motif):
        names = [m.name for m in motif]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Motif names must be unique, got {names}")
        return list(motif)
    raise ConfigurationError(f"Unsupported motif reference type: {type(motif)!r}")


def _resolve_sequences(source: SequenceRef, kind: str, name: Optional[str] = None) -> SequenceSet:
    """Resolve a sequence source to a SequenceSet."""

    if isinstance(source, SequenceSet):
        return source
    if isinstance(source, (str, Path)):
        return read_fasta(source, kind=kind, name=name)
    raise ConfigurationError(f"Unsupported sequence source type: {type(source)!r}")


def _resolve_inputs(sources: Sequence[SequenceRef]) -> List[SequenceSet]:
    """Read input sets, making their names unique."""

    sets = []
    seen: Dict[str, int] = {}
    for source in sources:
        sequence_set = _resolve_sequences(source, "input")
        name = sequence_set.name
        if name in seen:
            seen[name] += 1
            sequence_set = SequenceSet(name=f"{name}_{seen[name]}", records=sequence_set.records, kind="input")
        else:
            seen[name] = 1
        sets.append(sequence_set)
    return sets


def _resolve_projector(config: ScanConfig) -> CoordinateProjector:
    if config.colext is None:
        return CoordinateProjector()
    centers = read_centers(config.center, config.colext[:2]) if config.center else {}
    return CoordinateProjector(centers, extension=config.colext[2])
