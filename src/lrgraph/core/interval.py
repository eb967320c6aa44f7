"""Read intervals with strand, used for predicted and evidence extents of overlaps."""
from typing import Any, ClassVar
from enum import IntEnum


# Exceptions -----------------------------------------------------------------------------------------------------------
class InvalidIntervalError(ValueError):
    """Raised when interval limits are inverted or fall outside the sequence they refer to."""


# Classes --------------------------------------------------------------------------------------------------------------
class Strand(IntEnum):
    """
    Orientation of a query read relative to its subject.
    """
    FORWARD = 1
    REVERSE = -1
    _STR_CACHE: ClassVar[dict]

    def __str__(self): return self._STR_CACHE[self]

    @classmethod
    def from_symbol(cls, s: Any) -> 'Strand':
        """
        Parses a strand from a ``Strand``, a reverse flag, ``'+'``/``'-'``, or None (forward).

        Raises:
            ValueError: If the symbol is not recognised.
        """
        if s is None: return cls.FORWARD
        if isinstance(s, cls): return s
        if isinstance(s, bool): return cls.REVERSE if s else cls.FORWARD
        if s == '+': return cls.FORWARD
        if s == '-': return cls.REVERSE
        raise ValueError(f'Unknown strand symbol {s!r}')

    @property
    def is_reverse(self) -> bool: return self is Strand.REVERSE

    @classmethod
    def _init_caches(cls):
        cls._STR_CACHE = {cls.FORWARD: '+', cls.REVERSE: '-'}


Strand._init_caches()


class Interval:
    """
    Immutable half-open interval. Safe for hashing and use in sets/dicts.

    Predicted extents are allowed to start below zero or end past the sequence length; use ``within`` to
    test whether an interval fits a sequence.

    Attributes:
        start: The start position (0-based, inclusive).
        end: The end position (0-based, exclusive).
        strand: The strand (FORWARD or REVERSE).
    """
    __slots__ = ('_start', '_end', '_strand')

    def __init__(self, start: int, end: int, strand: Any = None):
        self._start: int = int(start)
        self._end: int = int(end)
        self._strand: Strand = Strand.from_symbol(strand)

    @property
    def start(self): return self._start
    @property
    def end(self): return self._end
    @property
    def strand(self) -> Strand: return self._strand
    def __hash__(self): return hash((self._start, self._end, self._strand))
    def __repr__(self): return f"{self._start}:{self._end}({self._strand})"
    def __len__(self): return max(0, self._end - self._start)

    def __eq__(self, other):
        if not isinstance(other, Interval): return False
        return (self._start == other._start and
                self._end == other._end and
                self._strand == other._strand)

    def overlap(self, other: 'Interval') -> int:
        """
        Calculates the overlap length with another interval.

        Args:
            other: The other interval.

        Returns:
            The number of overlapping bases.
        """
        return max(0, min(self._end, other.end) - max(self._start, other.start))

    def within(self, length: int) -> bool:
        """Whether the interval lies fully inside ``[0, length]``."""
        return self._start >= 0 and self._end <= length


# Functions ------------------------------------------------------------------------------------------------------------
def validate_limits(length: int, start: int, end: int) -> int:
    """
    Checks that ``[start, end)`` is an interval of a sequence with the given length; it may be empty.

    Returns:
        The sequence length.

    Raises:
        InvalidIntervalError: If start > end, start < 0 or end > length.
    """
    if start > end: raise InvalidIntervalError(f'Start must not exceed end, got start={start} end={end}')
    if start < 0: raise InvalidIntervalError(f'Start must not be negative, got start={start}')
    if end > length: raise InvalidIntervalError(f'End must be at most the sequence length {length}, got end={end}')
    return length
