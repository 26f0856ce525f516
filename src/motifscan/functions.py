import numpy as np
from numba import njit, prange

from motifscan.ragged import RaggedData


def pfm_to_pwm(pfm, background=0.25, pseudocount=0.0001):
    """Convert Position Frequency Matrix to log-odds Position Weight Matrix."""

    pwm = np.log((pfm + pseudocount) / background)
    return pwm


def pwm_with_n_row(pwm):
    """Append a fifth row scoring ambiguous bases with the per-position minimum."""
    return np.concatenate((pwm, np.min(pwm, axis=0, keepdims=True)), axis=0)


def score_bounds(pwm):
    """Return theoretical minimum and maximum scores of a (4, L) PWM."""
    return float(pwm[:4].min(axis=0).sum()), float(pwm[:4].max(axis=0).sum())


@njit
def score_site(num_site, matrix):
    """Sum the PWM entries for one encoded site."""
    score = 0.0
    for i in range(num_site.shape[0]):
        score += matrix[num_site[i], i]
    return score


@njit(inline="always")
def _fill_rc_buffer(data, start, length, buffer):
    """Fill a buffer with reverse-complement values without allocations."""
    rc_table = np.array([3, 2, 1, 0, 4], dtype=np.int8)
    for j in range(length):
        val = data[start + length - 1 - j]
        buffer[j] = rc_table[val]


@njit(parallel=True, fastmath=True, cache=True)
def _batch_all_scores_jit(data, offsets, matrix, is_revcomp):
    """Score every window of every sequence with a JIT-compiled kernel."""
    n_seq = len(offsets) - 1
    m = matrix.shape[-1]

    new_offsets = np.zeros(n_seq + 1, dtype=np.int64)
    for i in range(n_seq):
        seq_len = offsets[i + 1] - offsets[i]
        if seq_len >= m:
            new_offsets[i + 1] = seq_len - m + 1

    for i in range(n_seq):
        new_offsets[i + 1] += new_offsets[i]

    results = np.zeros(new_offsets[n_seq], dtype=np.float32)

    for i in prange(n_seq):
        start = offsets[i]
        out_start = new_offsets[i]
        n_scores = new_offsets[i + 1] - out_start

        if n_scores > 0:
            site_buffer = np.empty(m, dtype=data.dtype)

            for k in range(n_scores):
                if not is_revcomp:
                    results[out_start + k] = score_site(data[start + k : start + k + m], matrix)
                else:
                    _fill_rc_buffer(data, start + k, m, site_buffer)
                    results[out_start + k] = score_site(site_buffer, matrix)

    return results, new_offsets


def batch_all_scores(sequences: RaggedData, matrix: np.ndarray, is_revcomp: bool = False) -> RaggedData:
    """Score all windows of all sequences.

    Window ``k`` of sequence ``i`` starts at forward offset ``k`` on both
    strands; for the reverse strand the window is reverse-complemented
    before scoring.
    """
    data, offsets = _batch_all_scores_jit(sequences.data, sequences.offsets, matrix.astype(np.float32), is_revcomp)
    return RaggedData(data, offsets)


def normalize_scores(raw, minimum, maximum):
    """Map raw log-odds scores onto [0, 1] using the PWM score bounds."""
    span = maximum - minimum
    if span <= 0:
        return np.ones_like(raw, dtype=np.float64)
    return np.clip((np.asarray(raw, dtype=np.float64) - minimum) / span, 0.0, 1.0)
