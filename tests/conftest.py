"""
Pytest configuration and common fixtures for motifscan tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest

from motifscan.models import Motif, SequenceRecord, SequenceSet

# Force testing the installed package, not the local source
project_root = str(Path(__file__).parent.parent.absolute())
if project_root in sys.path:
    sys.path.remove(project_root)

CONSENSUS = "GATAAGCTTA"


def consensus_matrix(consensus: str, major: float = 0.97) -> np.ndarray:
    minor = (1.0 - major) / 3
    matrix = np.full((4, len(consensus)), minor)
    for i, base in enumerate(consensus):
        matrix["ACGT".index(base), i] = major
    return matrix


def random_sequence(rng: np.random.Generator, length: int) -> str:
    return "".join(rng.choice(list("ACGT"), size=length))


@pytest.fixture
def temp_dir(tmp_path):
    """Temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def rng():
    return np.random.default_rng(20240501)


@pytest.fixture
def motif():
    """A sharply defined 10 bp motif."""
    return Motif(name="GATA_like", matrix=consensus_matrix(CONSENSUS), length=len(CONSENSUS))


@pytest.fixture
def input_set(rng):
    """20 peaks of 100 bp; the first 10 carry the motif consensus at offset 40."""
    records = []
    for i in range(20):
        sequence = random_sequence(rng, 100)
        if i < 10:
            sequence = sequence[:40] + CONSENSUS + sequence[40 + len(CONSENSUS) :]
        start = 1000 * (i + 1)
        records.append(SequenceRecord(id=f"chr1:{start}-{start + 100}", sequence=sequence))
    return SequenceSet(name="peaks", records=tuple(records), kind="input")


@pytest.fixture
def background_set(rng):
    """300 random background sequences of 150 bp."""
    records = tuple(SequenceRecord(id=f"bg{i}", sequence=random_sequence(rng, 150)) for i in range(300))
    return SequenceSet(name="background", records=records, kind="background")


def write_fasta_file(path: Path, sequence_set: SequenceSet) -> Path:
    with open(path, "w") as handle:
        for record in sequence_set.records:
            handle.write(f">{record.id}\n{record.sequence}\n")
    return path


@pytest.fixture
def input_fasta(temp_dir, input_set):
    return write_fasta_file(temp_dir / "peaks.fa", input_set)


@pytest.fixture
def background_fasta(temp_dir, background_set):
    return write_fasta_file(temp_dir / "background.fa", background_set)


@pytest.fixture
def pwm_file(temp_dir, motif):
    """The fixture motif in gimme .pwm format, written as counts."""
    path = temp_dir / "motifs.pwm"
    with open(path, "w") as handle:
        handle.write(f">{motif.name}\n")
        for column in motif.matrix.T:
            handle.write("\t".join(f"{100 * value:.1f}" for value in column) + "\n")
    return path
