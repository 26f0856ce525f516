from typing import Iterable, List

import numpy as np

_ENCODER = bytearray([4] * 256)
for _char, _code in zip(b"ACGTacgt", [0, 1, 2, 3] * 2):
    _ENCODER[_char] = _code


class RaggedData:
    """
    Flattened storage for variable-length integer-encoded sequences.

    Sequences are concatenated into ``data`` and delimited by ``offsets``
    (``offsets[i]:offsets[i + 1]`` is the i-th sequence), which lets the
    numba scoring kernels walk all sequences without padding.
    """

    def __init__(self, data: np.ndarray, offsets: np.ndarray):
        self.data = data
        self.offsets = offsets

    def get_length(self, i: int) -> int:
        """Return the length of the i-th sequence."""
        return int(self.offsets[i + 1] - self.offsets[i])

    def get_slice(self, i: int) -> np.ndarray:
        """Return a view of the i-th sequence."""
        return self.data[self.offsets[i] : self.offsets[i + 1]]

    @property
    def num_sequences(self) -> int:
        return self.offsets.size - 1


def encode_sequence(sequence: str) -> np.ndarray:
    """Encode a nucleotide string as int8 codes (A=0, C=1, G=2, T=3, other=4)."""
    raw = sequence.encode("ascii", errors="replace").translate(_ENCODER)
    return np.frombuffer(raw, dtype=np.int8).copy()


def ragged_from_list(data_list: List[np.ndarray], dtype=None) -> RaggedData:
    """Create RaggedData from a list of numpy arrays."""
    if len(data_list) == 0:
        return RaggedData(np.empty(0, dtype=dtype if dtype else np.int8), np.zeros(1, dtype=np.int64))

    if dtype is None:
        dtype = data_list[0].dtype

    lengths = np.fromiter((len(item) for item in data_list), dtype=np.int64, count=len(data_list))
    offsets = np.zeros(len(data_list) + 1, dtype=np.int64)
    offsets[1:] = np.cumsum(lengths)

    data = np.empty(offsets[-1], dtype=dtype)
    for i, item in enumerate(data_list):
        data[offsets[i] : offsets[i + 1]] = item

    return RaggedData(data, offsets)


def ragged_from_strings(sequences: Iterable[str]) -> RaggedData:
    """Encode nucleotide strings into a single RaggedData block."""
    return ragged_from_list([encode_sequence(seq) for seq in sequences], dtype=np.int8)
