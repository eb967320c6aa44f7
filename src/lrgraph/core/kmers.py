"""
K-mer extraction for DNA reads: 2-bit numeric codes for gap filling and locally unique k-mers for seeding.
"""
from typing import Union

import numpy as np

from lrgraph.core.interval import validate_limits
from lrgraph.utils.resources import jit

# Constants ------------------------------------------------------------------------------------------------------------
MAX_CODE_KMER_LENGTH = 31
UNIQUE_KMER_LENGTH = 15
_INVALID = 255
_ENCODE_TABLE = np.full(256, _INVALID, dtype=np.uint8)
for _code, _base in enumerate(b'ACGT'):
    _ENCODE_TABLE[_base] = _code
    _ENCODE_TABLE[_base + 32] = _code  # lower case
_LOW_COMPLEXITY = ('AAAAAAAA', 'TTTTTTTT', 'TATATATA')


# Functions ------------------------------------------------------------------------------------------------------------
def encode_dna(seq: Union[str, bytes]) -> np.ndarray:
    """Encodes a DNA string as 2-bit symbols (A=0, C=1, G=2, T=3); any other character maps to 255."""
    if isinstance(seq, str): seq = seq.encode('ascii', 'replace')
    return _ENCODE_TABLE[np.frombuffer(seq, dtype=np.uint8)]


def extract_dna_kmer_codes(seq: Union[str, bytes], k: int, start: int = 0, end: int = None) -> dict[int, int]:
    """
    Computes the numeric code of every DNA k-mer starting in ``[start, end - k]``.

    K-mers spanning a non-ACGT character are skipped.

    Args:
        seq: The sequence.
        k: K-mer length, at most 31 so codes fit in 64 bits.
        start: First k-mer start (0-based).
        end: Exclusive end of the region; defaults to the sequence length.

    Returns:
        Dictionary of k-mer codes keyed and ordered by start position.

    Raises:
        InvalidIntervalError: If the limits are inverted or out of range.
        ValueError: If k is outside ``[1, 31]``.

    Examples:
        >>> extract_dna_kmer_codes('ACGTA', 4)
        {0: 27, 1: 108}
    """
    if end is None: end = len(seq)
    validate_limits(len(seq), start, end)
    if not 0 < k <= MAX_CODE_KMER_LENGTH: raise ValueError(f'K-mer length must be in [1, {MAX_CODE_KMER_LENGTH}], got {k}')
    if end - start < k: return {}
    codes, valid = _dna_codes_kernel(encode_dna(seq), k, start, end)
    positions = np.flatnonzero(valid)
    return dict(zip((positions + start).tolist(), codes[positions].tolist()))


def is_low_complexity(kmer: str) -> bool:
    """Flags homopolymer and TA dinucleotide runs of 8 bases."""
    kmer = kmer.upper()
    return any(pattern in kmer for pattern in _LOW_COMPLEXITY)


def extract_unique_kmers(seq: Union[str, bytes], start: int = 0, end: int = None, k: int = UNIQUE_KMER_LENGTH,
                         ignore_low_complexity: bool = False) -> dict[int, str]:
    """
    Finds the k-mers that occur exactly once in ``seq[start:end]``.

    Every occurrence of a repeated k-mer is dropped, not only the later copies. K-mers with non-ACGT
    characters are never returned. Comparison is case-insensitive and returned k-mers are upper case.

    Args:
        seq: The sequence.
        start: Start of the region (0-based).
        end: Exclusive end of the region; defaults to the sequence length.
        k: K-mer length.
        ignore_low_complexity: Also drop k-mers flagged by ``is_low_complexity``.

    Returns:
        Dictionary of unique k-mers keyed and ordered by start position.

    Raises:
        InvalidIntervalError: If the limits are inverted or out of range.
    """
    if isinstance(seq, bytes): seq = seq.decode('ascii', 'replace')
    if end is None: end = len(seq)
    validate_limits(len(seq), start, end)
    if end - start < k: return {}
    codes, valid = _dna_codes_kernel(encode_dna(seq), k, start, end)
    first_seen: dict[int, int] = {}
    repeated = set()
    for offset in np.flatnonzero(valid).tolist():
        code = int(codes[offset])
        if code in first_seen: repeated.add(code)
        else: first_seen[code] = offset + start
    unique = {}
    for code, pos in first_seen.items():
        if code in repeated: continue
        kmer = seq[pos:pos + k].upper()
        if ignore_low_complexity and is_low_complexity(kmer): continue
        unique[pos] = kmer
    return unique


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _dna_codes_kernel(encoded, k, start, end):
    n_out = end - start - k + 1
    codes = np.zeros(n_out, dtype=np.int64)
    valid = np.zeros(n_out, dtype=np.bool_)
    mask = (np.int64(1) << np.int64(2 * (k - 1))) - np.int64(1)
    curr = np.int64(0)
    run = 0
    for i in range(start, end):
        b = encoded[i]
        if b > 3:
            run = 0
            curr = np.int64(0)
            continue
        curr = ((curr & mask) << np.int64(2)) | np.int64(b)
        run += 1
        if run >= k:
            codes[i - k + 1 - start] = curr
            valid[i - k + 1 - start] = True
    return codes, valid
