"""
Module for base-level read alignments and their CIGAR strings.
"""
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Generator, Union


# Classes --------------------------------------------------------------------------------------------------------------
class CigarOp(IntEnum):
    M = 0
    I = 1
    D = 2
    N = 3
    S = 4
    H = 5
    P = 6
    EQ = 7
    X = 8

    @property
    def symbol(self) -> str: return _OP_SYMBOLS[self]

    @classmethod
    def from_symbol(cls, symbol: str) -> 'CigarOp':
        try: return _SYMBOL_TO_OP[symbol]
        except KeyError: raise ValueError(f'Unknown CIGAR operation {symbol!r}') from None


_OP_SYMBOLS = 'MIDNSHP=X'
_SYMBOL_TO_OP = {s: CigarOp(i) for i, s in enumerate(_OP_SYMBOLS)}


class Cigar:
    """
    Run-length encoded edit script.

    Adjacent runs of the same operation are merged and empty runs dropped on construction.

    Examples:
        >>> c = Cigar.make([(CigarOp.M, 10), (CigarOp.M, 5), (CigarOp.I, 0), (CigarOp.D, 2)])
        >>> str(c)
        '15M2D'
        >>> c.query_length, c.target_length
        (15, 17)
    """
    __slots__ = ('_runs',)
    _PATTERN = re.compile(r'(\d+)([MIDNSHP=X])')
    # Consumption logic
    _QUERY_CONSUMERS = frozenset((CigarOp.M, CigarOp.I, CigarOp.S, CigarOp.EQ, CigarOp.X))
    _TARGET_CONSUMERS = frozenset((CigarOp.M, CigarOp.D, CigarOp.N, CigarOp.EQ, CigarOp.X))

    def __init__(self, runs: tuple[tuple[CigarOp, int], ...] = ()):
        self._runs = runs

    @classmethod
    def make(cls, runs: Iterable[tuple[Union[CigarOp, str], int]]) -> 'Cigar':
        """Builds a CIGAR from ``(operation, length)`` runs, merging adjacent equal operations."""
        merged = []
        for op, n in runs:
            if n <= 0: continue
            if isinstance(op, str): op = CigarOp.from_symbol(op)
            if merged and merged[-1][0] == op: merged[-1] = (op, merged[-1][1] + n)
            else: merged.append((CigarOp(op), int(n)))
        return cls(tuple(merged))

    @classmethod
    def parse(cls, cigar: str) -> 'Cigar':
        """Parses a CIGAR string such as ``'5S100M2I'``."""
        if cigar in ('', '*'): return cls()
        runs = cls._PATTERN.findall(cigar)
        if sum(len(n) + 1 for n, _ in runs) != len(cigar): raise ValueError(f'Malformed CIGAR string {cigar!r}')
        return cls.make((op, int(n)) for n, op in runs)

    @property
    def runs(self) -> tuple[tuple[CigarOp, int], ...]: return self._runs
    @property
    def query_length(self) -> int: return sum(n for op, n in self._runs if op in self._QUERY_CONSUMERS)
    @property
    def target_length(self) -> int: return sum(n for op, n in self._runs if op in self._TARGET_CONSUMERS)

    def __iter__(self) -> Generator[tuple[CigarOp, int], None, None]: yield from self._runs
    def __len__(self): return len(self._runs)
    def __str__(self): return ''.join(f'{n}{op.symbol}' for op, n in self._runs) or '*'
    def __repr__(self): return f"Cigar('{self}')"
    def __hash__(self): return hash(self._runs)

    def __eq__(self, other):
        if isinstance(other, str): return str(self) == other
        if isinstance(other, Cigar): return self._runs == other._runs
        return NotImplemented


@dataclass(frozen=True, slots=True)
class ReadAlignment:
    """
    A read aligned to a subject sequence.

    Attributes:
        subject_name: Name of the subject (reference) sequence.
        read_name: Name of the read.
        start: 1-based first aligned subject position.
        end: 1-based last aligned subject position.
        cigar: The edit script, soft clips included.
        characters: The read sequence.
        quality: Base qualities as a phred+33 string.
        flags: SAM flags.
    """
    subject_name: str
    read_name: str
    start: int
    end: int
    cigar: Cigar
    characters: str
    quality: str
    flags: int = 0

    def __len__(self): return self.end - self.start + 1

    def to_sam(self) -> str:
        """Renders the alignment as a SAM line without optional tags; MAPQ is always 255 (unavailable)."""
        return '\t'.join((self.read_name, str(self.flags), self.subject_name, str(self.start), '255', str(self.cigar),
                          '*', '0', '0', self.characters, self.quality))
