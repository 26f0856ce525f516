from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from motifscan.coordinates import PeakCenter
from motifscan.exceptions import ConfigurationError, MotifFormatError
from motifscan.models import Motif, SequenceRecord, SequenceSet

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def read_fasta(path: PathLike, kind: str = "input", name: Optional[str] = None) -> SequenceSet:
    """Read a FASTA file into a SequenceSet, keeping sequence identifiers."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"FASTA file not found: {path}")

    records: List[SequenceRecord] = []
    header: Optional[str] = None
    chunks: List[str] = []

    with open(path, "r") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            if line.startswith(">"):
                if header is not None:
                    records.append(SequenceRecord(id=header, sequence="".join(chunks).upper()))
                header = line[1:].strip()
                chunks = []
            else:
                if header is None:
                    raise ConfigurationError(f"{path} does not appear to be a FASTA file")
                chunks.append(line)

    if header is not None:
        records.append(SequenceRecord(id=header, sequence="".join(chunks).upper()))

    return SequenceSet(name=name or path.stem, records=tuple(records), kind=kind)


def write_fasta(records: Iterable[SequenceRecord], path: PathLike, width: int = 100) -> None:
    """Write sequences to a FASTA file wrapped at ``width`` characters."""
    with open(path, "w") as out:
        for record in records:
            out.write(f">{record.id}\n")
            seq = record.sequence
            for i in range(0, len(seq), width):
                out.write(f"{seq[i : i + width]}\n")


def _to_frequencies(rows: List[List[float]], path: str, name: str) -> np.ndarray:
    """Convert position rows (A C G T) to a (4, L) probability matrix."""
    if not rows:
        raise MotifFormatError(path, f"motif {name!r} has no matrix rows")
    matrix = np.array(rows, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[1] != 4:
        raise MotifFormatError(path, f"motif {name!r} rows must have 4 columns")
    if np.any(matrix < 0):
        raise MotifFormatError(path, f"motif {name!r} contains negative values")
    totals = matrix.sum(axis=1, keepdims=True)
    if np.any(totals <= 0):
        raise MotifFormatError(path, f"motif {name!r} has an empty position")
    return (matrix / totals).T


def read_pwm(path: PathLike) -> List[Motif]:
    """Read motifs in the gimme ``.pwm`` format (``>name`` then A C G T rows)."""
    path = str(path)
    motifs: List[Motif] = []
    name: Optional[str] = None
    rows: List[List[float]] = []

    with open(path) as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith(">"):
                if name is not None:
                    matrix = _to_frequencies(rows, path, name)
                    motifs.append(Motif(name=name, matrix=matrix, length=matrix.shape[1]))
                name = line[1:].split()[0] if line[1:].strip() else f"motif_{len(motifs) + 1}"
                rows = []
                continue
            if name is None:
                raise MotifFormatError(path, "first record does not start with '>'")
            try:
                rows.append([float(x) for x in line.split()])
            except ValueError:
                raise MotifFormatError(path, f"non-numeric value on line {line_number}") from None

    if name is not None:
        matrix = _to_frequencies(rows, path, name)
        motifs.append(Motif(name=name, matrix=matrix, length=matrix.shape[1]))
    return motifs


def read_meme(path: PathLike) -> List[Motif]:
    """Read every letter-probability matrix of a MEME formatted file."""
    path = str(path)
    motifs: List[Motif] = []

    with open(path) as handle:
        line = handle.readline()
        while line:
            if line.startswith("MOTIF"):
                parts = line.strip().split()
                name = parts[1] if len(parts) > 1 else f"motif_{len(motifs) + 1}"

                header = handle.readline()
                while header and not header.strip().startswith("letter-probability"):
                    header = handle.readline()
                tokens = header.strip().split()
                try:
                    length = int(tokens[tokens.index("w=") + 1])
                except (ValueError, IndexError):
                    raise MotifFormatError(path, f"motif {name!r} has no 'w=' width") from None

                rows = []
                while len(rows) < length:
                    row_line = handle.readline()
                    if not row_line:
                        break
                    row = row_line.strip().split()
                    if not row:
                        continue
                    try:
                        rows.append([float(x) for x in row])
                    except ValueError:
                        raise MotifFormatError(path, f"non-numeric value in motif {name!r}") from None

                matrix = _to_frequencies(rows, path, name)
                motifs.append(Motif(name=name, matrix=matrix, length=matrix.shape[1]))

            line = handle.readline()

    return motifs


def read_inclusive(path: PathLike) -> List[Motif]:
    """Read motifs in the INCLUSive format used by MotifScanner."""
    path = str(path)
    with open(path) as handle:
        lines = [line.rstrip("\r\n") for line in handle]

    if not lines or not lines[0].lower().startswith("#inclusive"):
        raise MotifFormatError(path, "first line must be '#INCLUSive'")

    motifs: List[Motif] = []
    name: Optional[str] = None
    rows: List[List[float]] = []
    for line in lines[1:]:
        stripped = line.strip()
        if stripped.startswith("#ID"):
            if name is not None:
                matrix = _to_frequencies(rows, path, name)
                motifs.append(Motif(name=name, matrix=matrix, length=matrix.shape[1]))
            name = stripped.split("=", 1)[1].strip()
            rows = []
        elif not stripped or stripped.startswith("#"):
            continue
        elif name is not None:
            try:
                rows.append([float(x) for x in stripped.split()])
            except ValueError:
                raise MotifFormatError(path, f"non-numeric value in motif {name!r}") from None

    if name is not None:
        matrix = _to_frequencies(rows, path, name)
        motifs.append(Motif(name=name, matrix=matrix, length=matrix.shape[1]))
    return motifs


_READERS = {".pwm": read_pwm, ".meme": read_meme, ".txt": read_pwm, ".mtrx": read_inclusive}


def read_motifs(path: PathLike, fmt: Optional[str] = None) -> List[Motif]:
    """Read all motifs of a motif file, guessing the format when not given."""
    path = str(path)
    if not os.path.isfile(path):
        raise ConfigurationError(f"Motif file not found: {path}")

    if fmt is not None:
        readers = {"pwm": read_pwm, "meme": read_meme, "inclusive": read_inclusive}
        if fmt not in readers:
            raise ConfigurationError(f"Unknown motif format {fmt!r}. Available: {sorted(readers)}")
        reader = readers[fmt]
    else:
        with open(path) as handle:
            first = handle.readline().strip()
        if first.lower().startswith("#inclusive"):
            reader = read_inclusive
        elif first.startswith("MEME"):
            reader = read_meme
        else:
            reader = _READERS.get(os.path.splitext(path.lower())[1], read_pwm)

    motifs = reader(path)
    if not motifs:
        raise MotifFormatError(path, "no motifs found")

    names = [motif.name for motif in motifs]
    duplicated = sorted({n for n in names if names.count(n) > 1})
    if duplicated:
        raise MotifFormatError(path, f"duplicated motif names: {', '.join(duplicated)}")

    logger.info(f"Read {len(motifs)} motif(s) from {path}")
    return motifs


def write_pwm(motif: Motif, path: PathLike) -> None:
    """Write one motif in the gimme ``.pwm`` format."""
    with open(path, "w") as f:
        f.write(f">{motif.name}\n")
        np.savetxt(f, motif.matrix.T, fmt="%.6f", delimiter="\t")


def write_inclusive(motif: Motif, path: PathLike) -> None:
    """Write one motif in the INCLUSive format."""
    with open(path, "w") as f:
        f.write("#INCLUSive Motif Model\n")
        f.write(f"#ID = {motif.name}\n")
        f.write(f"#W = {motif.length}\n")
        np.savetxt(f, motif.matrix.T, fmt="%.6f", delimiter="\t")
        f.write("\n")


def read_centers(paths: Sequence[PathLike], colext: Sequence[int]) -> Dict[str, PeakCenter]:
    """Merge peak-centre tables into a mapping of peak id to summit.

    ``colext`` holds the 0-based peak-id column and summit column; the
    chromosome is read from the first column as in BED files.  A first line
    whose summit field is not an integer is skipped as a header.
    """
    if len(colext) < 2:
        raise ConfigurationError(f"colext needs at least the id and summit columns, got {list(colext)}")
    id_col, summit_col = int(colext[0]), int(colext[1])

    centers: Dict[str, PeakCenter] = {}
    for path in paths:
        if not os.path.isfile(path):
            raise ConfigurationError(f"Peak centre file not found: {path}")
        table = pd.read_csv(path, sep="\t", header=None, comment="#", dtype=str)
        if table.empty:
            continue
        if max(id_col, summit_col) >= table.shape[1]:
            raise ConfigurationError(
                f"Peak centre file {path} has {table.shape[1]} columns, colext asks for {id_col} and {summit_col}"
            )
        summits = pd.to_numeric(table[summit_col], errors="coerce")
        if pd.isna(summits.iloc[0]):
            table = table.iloc[1:]
            summits = summits.iloc[1:]
        if summits.isna().any():
            raise ConfigurationError(f"Peak centre file {path} has non-integer summits")
        for peak_id, chrom, summit in zip(table[id_col], table[0], summits.astype(np.int64)):
            centers[peak_id.strip()] = PeakCenter(chrom=chrom.strip(), summit=int(summit))

    logger.info(f"Loaded {len(centers)} peak centre(s) from {len(paths)} file(s)")
    return centers
