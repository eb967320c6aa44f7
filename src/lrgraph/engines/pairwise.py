"""Exact affine-gap global alignment, used to close the gaps between anchors of a read alignment."""
from typing import NamedTuple, Union

import numpy as np

from lrgraph.containers.alignments import Cigar, CigarOp
from lrgraph.utils.resources import jit

# Constants ------------------------------------------------------------------------------------------------------------
# Traceback pointer flags: the low two bits give the source of H, the others mark gap extensions
_MATCH = 0
_E = 1
_F = 2
_E_EXT = 4
_F_EXT = 8
_NEG_INF = -1_000_000_000
# Ops emitted by the traceback, aligned with CigarOp values
_OP_M = 0
_OP_I = 1
_OP_D = 2


# Classes --------------------------------------------------------------------------------------------------------------
class PairwiseAlignment(NamedTuple):
    """
    Result of a global alignment of a query against a subject.

    Attributes:
        score: The alignment score.
        subject_aligned: The subject with ``'-'`` at insertions.
        query_aligned: The query with ``'-'`` at deletions.
        cigar: Edit script of the query relative to the subject.
    """
    score: int
    subject_aligned: str
    query_aligned: str
    cigar: Cigar


class AffineGapAligner:
    """
    Global (Needleman-Wunsch/Gotoh) aligner with affine gap costs.

    A gap of length ``L`` costs ``gap_open + (L - 1) * gap_extend``. All penalties are given as positive
    numbers. Among equally scoring alignments, the traceback prefers matches, then deletions, then insertions.

    Args:
        match: Score of identical bases.
        mismatch: Penalty of different bases.
        gap_open: Penalty of the first base of a gap.
        gap_extend: Penalty of each further base of a gap.

    Examples:
        >>> aln = AffineGapAligner().align('ACGTACGT', 'ACGTGACGT')
        >>> str(aln.cigar)
        '4M1I4M'
    """
    __slots__ = ('match', 'mismatch', 'gap_open', 'gap_extend')

    def __init__(self, match: int = 1, mismatch: int = 1, gap_open: int = 2, gap_extend: int = 1):
        if min(mismatch, gap_open, gap_extend) < 0: raise ValueError('Penalties must be given as non-negative numbers')
        self.match = match
        self.mismatch = mismatch
        self.gap_open = gap_open
        self.gap_extend = gap_extend

    def __repr__(self):
        return (f"AffineGapAligner(match={self.match}, mismatch={self.mismatch}, gap_open={self.gap_open}, "
                f"gap_extend={self.gap_extend})")

    def align(self, subject: Union[str, bytes], query: Union[str, bytes]) -> PairwiseAlignment:
        """
        Aligns ``query`` end to end against ``subject``.

        Args:
            subject: The reference segment (rows of the DP matrix).
            query: The read segment (columns of the DP matrix).

        Returns:
            A ``PairwiseAlignment``; ``I`` consumes only query bases, ``D`` only subject bases.
        """
        s_str = subject.decode('ascii') if isinstance(subject, bytes) else subject
        q_str = query.decode('ascii') if isinstance(query, bytes) else query
        s_arr = np.frombuffer(s_str.upper().encode('ascii', 'replace'), dtype=np.uint8)
        q_arr = np.frombuffer(q_str.upper().encode('ascii', 'replace'), dtype=np.uint8)
        trace = np.zeros((len(s_arr) + 1, len(q_arr) + 1), dtype=np.uint8)
        score = _affine_gap_kernel(s_arr, q_arr, self.match, self.mismatch, self.gap_open, self.gap_extend, trace)
        ops = _affine_gap_traceback_kernel(trace, len(s_arr), len(q_arr))
        s_out, q_out, runs = [], [], []
        r = c = 0
        for op in ops.tolist():
            if op == _OP_M:
                s_out.append(s_str[r])
                q_out.append(q_str[c])
                r += 1
                c += 1
            elif op == _OP_I:
                s_out.append('-')
                q_out.append(q_str[c])
                c += 1
            else:
                s_out.append(s_str[r])
                q_out.append('-')
                r += 1
            runs.append((CigarOp(op), 1))
        return PairwiseAlignment(int(score), ''.join(s_out), ''.join(q_out), Cigar.make(runs))


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _affine_gap_kernel(seq1, seq2, match, mismatch, gap_open, gap_extend, trace):
    rows = len(seq1) + 1
    cols = len(seq2) + 1
    H = np.empty(cols, dtype=np.int64)
    F = np.empty(cols, dtype=np.int64)
    H[0] = 0
    F[0] = _NEG_INF
    for c in range(1, cols):
        H[c] = -(gap_open + (c - 1) * gap_extend)
        F[c] = _NEG_INF
        trace[0, c] = _E | (_E_EXT if c > 1 else 0)

    for r in range(1, rows):
        h_diag = H[0]
        H[0] = -(gap_open + (r - 1) * gap_extend)
        trace[r, 0] = _F | (_F_EXT if r > 1 else 0)
        running_e = _NEG_INF
        char_s = seq1[r - 1]
        for c in range(1, cols):
            h_up = H[c]
            f_ext = F[c] - gap_extend
            f_open = h_up - gap_open
            if f_ext >= f_open:
                F[c] = f_ext
                f_bit = _F_EXT
            else:
                F[c] = f_open
                f_bit = 0
            e_ext = running_e - gap_extend
            e_open = H[c - 1] - gap_open
            if e_ext >= e_open:
                running_e = e_ext
                e_bit = _E_EXT
            else:
                running_e = e_open
                e_bit = 0
            best = h_diag + (match if char_s == seq2[c - 1] else -mismatch)
            source = _MATCH
            if F[c] > best:
                best = F[c]
                source = _F
            if running_e > best:
                best = running_e
                source = _E
            h_diag = h_up
            H[c] = best
            trace[r, c] = source | e_bit | f_bit
    return H[cols - 1]


@jit(nopython=True, cache=True, nogil=True)
def _affine_gap_traceback_kernel(trace, r, c):
    ops = np.empty(r + c, dtype=np.uint8)
    k = 0
    state = _MATCH
    while r > 0 or c > 0:
        flag = trace[r, c]
        if state == _MATCH:
            state = flag & 3
            if state == _MATCH:
                ops[k] = _OP_M
                r -= 1
                c -= 1
                k += 1
            continue
        if state == _E:
            ops[k] = _OP_I
            if not flag & _E_EXT: state = _MATCH
            c -= 1
        else:
            ops[k] = _OP_D
            if not flag & _F_EXT: state = _MATCH
            r -= 1
        k += 1
    return ops[:k][::-1]
