"""Containers for k-mer hits and the collinear anchor clusters built from them."""
from bisect import bisect_left
from collections import defaultdict
from typing import Iterable, Mapping, NamedTuple, Union

import numpy as np

from lrgraph.core.interval import Interval, Strand
from lrgraph.utils.resources import jit


# Exceptions -----------------------------------------------------------------------------------------------------------
class ClusterStateError(RuntimeError):
    """Raised when a cluster is used outside its lifecycle (e.g. gap filling after summarizing)."""


# Classes --------------------------------------------------------------------------------------------------------------
class Hit(NamedTuple):
    """
    One exact k-mer match between a query and a subject read.

    Attributes:
        query_pos: Start of the k-mer on the query (0-based).
        subject_pos: Start of the k-mer on the subject (0-based).
        weight: Uniqueness weight, e.g. the inverse of the k-mer's multiplicity.
    """
    query_pos: int
    subject_pos: int
    weight: float = 1.0


def as_hit_arrays(hits: Union[Iterable[Hit], np.ndarray]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Normalises a hit list to ``(query_pos, subject_pos, weights)`` arrays.

    Args:
        hits: ``Hit`` tuples, ``(q, s)`` pairs, or an ``(n, 2)``/``(n, 3)`` array.

    Returns:
        Two int64 position arrays and a float64 weight array, in input order.
    """
    arr = np.asarray(hits if isinstance(hits, np.ndarray) else list(hits), dtype=np.float64)
    if arr.size == 0: return np.empty(0, np.int64), np.empty(0, np.int64), np.empty(0, np.float64)
    if arr.ndim != 2 or arr.shape[1] not in (2, 3):
        raise ValueError(f'Hits must have 2 or 3 columns (query_pos, subject_pos[, weight]), got shape {arr.shape}')
    weights = arr[:, 2].copy() if arr.shape[1] == 3 else np.ones(len(arr), dtype=np.float64)
    return arr[:, 0].astype(np.int64), arr[:, 1].astype(np.int64), weights


class ClusterSummary(NamedTuple):
    """Statistics of an anchor cluster, frozen by ``AnchorCluster.summarize``."""
    subject_predicted: Interval
    query_predicted: Interval
    subject_evidence: Interval
    query_evidence: Interval
    num_different_kmers: int
    weighted_count: float
    offset_sd: float
    predicted_overlap: int


class AnchorCluster:
    """
    A chain of collinear k-mer hits between one query and one subject on one strand.

    Holds at most one hit per query position, sorted by query position. The predicted intervals extrapolate
    the chain's offset across the full reads, so they may start below zero or end past the read length;
    evidence intervals come from the hit coordinates and always lie within the reads.

    Statistics are computed from the current hits until ``summarize`` freezes them; after that the hits can be
    released with ``dispose_hits``.

    Args:
        subject_idx: Index of the subject read.
        query_idx: Index of the query read.
        query_length: Length of the query read.
        subject_length: Length of the subject read.
        query_pos: Hit start positions on the query.
        subject_pos: Hit start positions on the subject.
        weights: Optional hit weights (default 1).
        strand: Orientation of the query relative to the subject.
        kmer_length: Length of the k-mers behind the hits.
        max_jitter: Maximum offset deviation accepted when filling missing hits.

    Examples:
        >>> c = AnchorCluster(0, 1, 500, 1000, [0, 20, 40], [600, 620, 640], kmer_length=15)
        >>> c.subject_predicted
        600:1100(+)
        >>> c.predicted_overlap
        400
    """
    __slots__ = ('subject_idx', 'query_idx', 'query_length', 'subject_length', 'strand', 'kmer_length', 'max_jitter',
                 '_q', '_s', '_w', '_summary', '_disposed')

    def __init__(self, subject_idx: int, query_idx: int, query_length: int, subject_length: int,
                 query_pos: Iterable[int], subject_pos: Iterable[int], weights: Iterable[float] = None,
                 strand: Union[Strand, str, bool] = Strand.FORWARD, kmer_length: int = 15, max_jitter: int = 50):
        self.subject_idx = subject_idx
        self.query_idx = query_idx
        self.query_length = query_length
        self.subject_length = subject_length
        self.strand = Strand.from_symbol(strand)
        self.kmer_length = kmer_length
        self.max_jitter = max_jitter
        q = np.asarray(query_pos, dtype=np.int64)
        s = np.asarray(subject_pos, dtype=np.int64)
        w = np.ones(len(q), dtype=np.float64) if weights is None else np.asarray(weights, dtype=np.float64)
        # One hit per query position, first occurrence wins
        _, first = np.unique(q, return_index=True)
        self._q, self._s, self._w = q[first], s[first], w[first]
        self._summary = None
        self._disposed = False

    def __len__(self): return 0 if self._disposed else len(self._q)

    def __repr__(self):
        return (f"AnchorCluster(subject={self.subject_idx}, query={self.query_idx}{self.strand}, "
                f"kmers={self.num_different_kmers}, predicted={self.subject_predicted})")

    @property
    def reverse(self) -> bool: return self.strand.is_reverse
    @property
    def summarized(self) -> bool: return self._summary is not None

    @property
    def hits(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Returns ``(query_pos, subject_pos, weights)`` sorted by query position."""
        if self._disposed: raise ClusterStateError('Hits of this cluster were disposed')
        return self._q, self._s, self._w

    def hits_by_query(self) -> Iterable[Hit]:
        q, s, w = self.hits
        for i in range(len(q)): yield Hit(int(q[i]), int(s[i]), float(w[i]))

    # --- Statistics ---
    @property
    def summary(self) -> ClusterSummary: return self._summary or self._compute_summary()
    @property
    def subject_predicted(self) -> Interval: return self.summary.subject_predicted
    @property
    def query_predicted(self) -> Interval: return self.summary.query_predicted
    @property
    def subject_evidence(self) -> Interval: return self.summary.subject_evidence
    @property
    def query_evidence(self) -> Interval: return self.summary.query_evidence
    @property
    def num_different_kmers(self) -> int: return self.summary.num_different_kmers
    @property
    def weighted_count(self) -> float: return self.summary.weighted_count
    @property
    def subject_start_sd(self) -> float: return self.summary.offset_sd
    @property
    def predicted_overlap(self) -> int: return self.summary.predicted_overlap
    @property
    def predicted_overlap_sd(self) -> float: return self.summary.offset_sd

    def _compute_summary(self) -> ClusterSummary:
        q, s, w = self.hits
        if len(q) == 0: raise ClusterStateError('Cannot summarize a cluster without hits')
        offsets = s - q
        subject_start = int(round(float(offsets.mean())))
        subject_predicted = Interval(subject_start, subject_start + self.query_length, self.strand)
        query_predicted = Interval(-subject_start, self.subject_length - subject_start, self.strand)
        k = self.kmer_length
        subject_evidence = Interval(s.min(), min(self.subject_length, int(s.max()) + k), self.strand)
        query_evidence = Interval(q.min(), min(self.query_length, int(q.max()) + k), self.strand)
        return ClusterSummary(
            subject_predicted, query_predicted, subject_evidence, query_evidence, len(q), float(w.sum()),
            float(offsets.std()), self._overlap(subject_predicted)
        )

    def _overlap(self, predicted: Interval) -> int:
        if predicted.within(self.subject_length): return self.query_length
        if predicted.start >= 0: return self.subject_length - predicted.start
        if predicted.end <= self.subject_length: return predicted.end
        return self.subject_length

    # --- Lifecycle ---
    def complete_missing_hits(self, subject_codes: Mapping[int, int], query_codes: Mapping[int, int]) -> int:
        """
        Adds hits implied by equal k-mer codes at query positions the cluster does not cover yet.

        For each uncovered query position inside the query evidence interval, the subject position with the same
        code closest to the one predicted by the nearest preceding hit is added, provided it deviates at most
        ``max_jitter`` from the prediction and keeps the chain collinear.

        Args:
            subject_codes: K-mer codes of the subject keyed by position.
            query_codes: K-mer codes of the query (in this cluster's orientation) keyed by position.

        Returns:
            The number of hits added.

        Raises:
            ClusterStateError: If the cluster was already summarized.
        """
        if self._summary is not None: raise ClusterStateError('Cannot add hits to a summarized cluster')
        q, s, w = self.hits
        if len(q) == 0 or not subject_codes or not query_codes: return 0
        subject_by_code = defaultdict(list)
        for pos in sorted(subject_codes): subject_by_code[subject_codes[pos]].append(pos)
        q_first, q_last = int(q[0]), int(q[-1])
        new_q, new_s = [], []
        last_i = last_s = None
        for pos in sorted(query_codes):
            if pos <= q_first or pos >= q_last: continue
            if (candidates := subject_by_code.get(query_codes[pos])) is None: continue
            i = int(np.searchsorted(q, pos))
            if q[i] == pos: continue
            # q[i - 1] < pos < q[i]
            predicted = pos + int(s[i - 1] - q[i - 1])
            j = bisect_left(candidates, predicted)
            best = None
            for cand in candidates[max(0, j - 1):j + 1]:
                if best is None or abs(cand - predicted) < abs(best - predicted): best = cand
            if abs(best - predicted) > self.max_jitter: continue
            # Added hits in the same gap must stay ordered among themselves
            lower = last_s if i == last_i else s[i - 1]
            if not lower <= best <= s[i]: continue
            new_q.append(pos)
            new_s.append(best)
            last_i, last_s = i, best
        if not new_q: return 0
        q = np.concatenate([q, np.asarray(new_q, dtype=np.int64)])
        s = np.concatenate([s, np.asarray(new_s, dtype=np.int64)])
        w = np.concatenate([w, np.ones(len(new_q), dtype=np.float64)])
        order = np.argsort(q, kind='stable')
        self._q, self._s, self._w = q[order], s[order], w[order]
        return len(new_q)

    def summarize(self) -> ClusterSummary:
        """Freezes the cluster statistics. Calling it again returns the frozen summary."""
        if self._summary is None: self._summary = self._compute_summary()
        return self._summary

    def dispose_hits(self):
        """Releases the hit arrays; frozen statistics stay readable."""
        self.summarize()
        self._q = self._s = self._w = None
        self._disposed = True

    def simulate_alignment(self, max_gap: int = 2000) -> tuple[int, int]:
        """
        Estimates how well the query aligns to the subject without a base-level alignment.

        Walks the hits in query order, crediting the bases newly covered by each k-mer. Gaps between consecutive
        k-mers shorter than ``max_gap`` on both reads also credit their expected matches, i.e. the shorter gap
        minus the length difference.

        Returns:
            ``(coverage, weighted_coverage)``: estimated matching bases, and exact k-mer bases scaled by hit weight.
        """
        q, s, w = self.hits
        if len(q) == 0: return 0, 0
        coverage, weighted = _simulate_alignment_kernel(q, s, w, self.kmer_length, max_gap)
        return min(int(coverage), self.query_length), int(round(weighted))


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _simulate_alignment_kernel(q, s, w, k, max_gap):
    coverage = k
    weighted = k * w[0]
    for i in range(1, len(q)):
        dq = q[i] - q[i - 1]
        ds = s[i] - s[i - 1]
        if dq <= 0 or ds < 0: continue
        step = min(dq, k)
        coverage += step
        weighted += step * w[i]
        gap_q = dq - k
        gap_s = ds - k
        if 0 < gap_q <= max_gap and 0 < gap_s <= max_gap:
            coverage += max(0, min(gap_q, gap_s) - abs(gap_q - gap_s))
    return coverage, weighted
