"""
Engine that chains raw k-mer hits between two reads into collinear anchor clusters.
"""
from dataclasses import dataclass
from typing import Optional, Union, Iterable

import numpy as np

from lrgraph.containers.cluster import AnchorCluster, Hit, as_hit_arrays
from lrgraph.core.interval import Strand
from lrgraph.utils.resources import jit


# Classes --------------------------------------------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ClustererConfig:
    """
    Parameters of hit chaining.

    Attributes:
        max_jitter: Fixed maximum offset gap within a cluster; ``None`` derives it from the query length.
        min_jitter: Lower bound of the derived jitter.
        jitter_fraction: Fraction of the query length used as derived jitter.
        min_cluster_hits: Clusters with fewer hits are discarded.
    """
    max_jitter: Optional[int] = None
    min_jitter: int = 50
    jitter_fraction: float = 0.05
    min_cluster_hits: int = 1

    def __post_init__(self):
        if self.max_jitter is not None and self.max_jitter < 0:
            raise ValueError(f'max_jitter must be non-negative, got {self.max_jitter}')
        if self.min_jitter < 0: raise ValueError(f'min_jitter must be non-negative, got {self.min_jitter}')
        if not 0 <= self.jitter_fraction <= 1:
            raise ValueError(f'jitter_fraction must be in [0, 1], got {self.jitter_fraction}')
        if self.min_cluster_hits < 1: raise ValueError(f'min_cluster_hits must be positive, got {self.min_cluster_hits}')

    def jitter(self, query_length: int) -> int:
        """Returns the jitter window used for a query of the given length."""
        if self.max_jitter is not None: return self.max_jitter
        return max(self.min_jitter, int(self.jitter_fraction * query_length))


class AnchorClusterer:
    """
    Groups the hits of one (query, subject, strand) pair into collinear chains.

    Hits are linked when their diagonal offsets (``subject_pos - query_pos``) are within the jitter window of
    each other. Each group keeps one hit per query position (the one closest to the group's median offset) and
    the longest subset whose subject positions do not decrease along the query.

    Args:
        config: Chaining parameters.

    Examples:
        >>> clusters = AnchorClusterer().cluster([(0, 600), (20, 620), (40, 641)], query_length=500,
        ...                                      subject_length=1000)
        >>> len(clusters), clusters[0].num_different_kmers
        (1, 3)
    """
    __slots__ = ('config',)

    def __init__(self, config: ClustererConfig = None):
        self.config = config or ClustererConfig()

    def __repr__(self): return f"AnchorClusterer({self.config})"

    def cluster(self, hits: Union[Iterable[Hit], np.ndarray], query_idx: int = 0, subject_idx: int = 0,
                query_length: int = 0, subject_length: int = 0, kmer_length: int = 15,
                strand: Union[Strand, str, bool] = Strand.FORWARD) -> list[AnchorCluster]:
        """
        Builds every anchor cluster of a hit list.

        Args:
            hits: ``Hit`` tuples or an ``(n, 2)``/``(n, 3)`` array of (query_pos, subject_pos[, weight]).
            query_idx: Index of the query read.
            subject_idx: Index of the subject read.
            query_length: Length of the query read.
            subject_length: Length of the subject read.
            kmer_length: Length of the k-mers behind the hits.
            strand: Orientation of the query relative to the subject.

        Returns:
            Clusters in order of increasing diagonal offset; empty if there are no hits.
        """
        q, s, w = as_hit_arrays(hits)
        if len(q) == 0: return []
        jitter = self.config.jitter(query_length)
        offsets = s - q
        order = np.lexsort((q, offsets))
        q, s, w, offsets = q[order], s[order], w[order], offsets[order]
        bounds = np.concatenate(([0], np.flatnonzero(np.diff(offsets) > jitter) + 1, [len(q)]))
        clusters = []
        for start, end in zip(bounds[:-1].tolist(), bounds[1:].tolist()):
            if end - start < self.config.min_cluster_hits: continue
            gq, gs, gw = _dedupe_query_positions(q[start:end], s[start:end], w[start:end], offsets[start:end])
            keep = _longest_non_decreasing_kernel(gs)
            if len(keep) < self.config.min_cluster_hits: continue
            clusters.append(AnchorCluster(
                subject_idx, query_idx, query_length, subject_length, gq[keep], gs[keep], gw[keep],
                strand=strand, kmer_length=kmer_length, max_jitter=jitter
            ))
        return clusters


# Functions ------------------------------------------------------------------------------------------------------------
def _dedupe_query_positions(q: np.ndarray, s: np.ndarray, w: np.ndarray, offsets: np.ndarray):
    """Keeps one hit per query position, the one whose offset is closest to the median; sorts by query position."""
    deviation = np.abs(offsets - np.median(offsets))
    order = np.lexsort((s, deviation, q))
    q, s, w = q[order], s[order], w[order]
    first = np.ones(len(q), dtype=bool)
    first[1:] = q[1:] != q[:-1]
    return q[first], s[first], w[first]


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _longest_non_decreasing_kernel(values):
    """Indices of a longest non-decreasing subsequence, in order."""
    n = len(values)
    tails = np.empty(n, dtype=np.int64)  # index of the last element of the best subsequence of each length
    prev = np.full(n, -1, dtype=np.int64)
    length = 0
    for i in range(n):
        lo, hi = 0, length
        while lo < hi:  # first tail strictly greater than values[i]
            mid = (lo + hi) // 2
            if values[tails[mid]] <= values[i]: lo = mid + 1
            else: hi = mid
        if lo > 0: prev[i] = tails[lo - 1]
        tails[lo] = i
        if lo == length: length += 1
    out = np.empty(length, dtype=np.int64)
    k = tails[length - 1] if length > 0 else -1
    for j in range(length - 1, -1, -1):
        out[j] = k
        k = prev[k]
    return out
