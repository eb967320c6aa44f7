"""
Engine that turns per-read k-mer hit maps into overlap edges and embeddings of an assembly graph.

Each query read is processed independently against every subject read with a smaller index, so
``EdgeClassifier.update_graph_batch`` can spread the reads over the shared thread pool.
"""
from dataclasses import dataclass
from enum import IntEnum
from threading import Lock
from typing import Mapping, Optional, Iterable, Union, Sequence
from warnings import warn

import numpy as np

from lrgraph import ParameterWarning
from lrgraph.containers.cluster import AnchorCluster, Hit
from lrgraph.containers.graph import AssemblyGraph, AssemblyEdge, AssemblyEmbedded
from lrgraph.core.kmers import extract_dna_kmer_codes
from lrgraph.engines.cluster import AnchorClusterer
from lrgraph.utils.resources import RESOURCES
from lrgraph.utils.trace import trace

HitList = Union[Sequence[Hit], np.ndarray]


# Classes --------------------------------------------------------------------------------------------------------------
class OverlapKind(IntEnum):
    """How the predicted extent of a query relates to its subject."""
    EMBEDDED = 0
    QUERY_AFTER_SUBJECT = 1
    QUERY_BEFORE_SUBJECT = 2
    SPANNING = 3

    @property
    def is_edge(self) -> bool: return self in (OverlapKind.QUERY_AFTER_SUBJECT, OverlapKind.QUERY_BEFORE_SUBJECT)


@dataclass(frozen=True, slots=True)
class ClassifierConfig:
    """
    Filters applied when turning clusters into graph elements.

    Attributes:
        min_proportion_overlap: Minimum predicted overlap as a fraction of each read length; also scales the
            minimum raw hit count from the query's self hits.
        min_proportion_evidence: Minimum evidence span on each read as a fraction of the overlap.
        expected_assembly_length: Total query length whose k-mer codes may be cached for gap filling.
        min_hits_floor: Lower bound of the minimum raw hit count.
    """
    min_proportion_overlap: float = 0.05
    min_proportion_evidence: float = 0.0
    expected_assembly_length: int = 0
    min_hits_floor: int = 25

    def __post_init__(self):
        if not 0 <= self.min_proportion_overlap <= 1:
            raise ValueError(f'min_proportion_overlap must be in [0, 1], got {self.min_proportion_overlap}')
        if not 0 <= self.min_proportion_evidence <= 1:
            raise ValueError(f'min_proportion_evidence must be in [0, 1], got {self.min_proportion_evidence}')
        if self.expected_assembly_length < 0:
            raise ValueError(f'expected_assembly_length must be non-negative, got {self.expected_assembly_length}')
        if self.min_hits_floor < 0: raise ValueError(f'min_hits_floor must be non-negative, got {self.min_hits_floor}')


@dataclass(frozen=True, slots=True)
class QuerySeeds:
    """
    Everything the seed index found for one query read.

    Attributes:
        query_idx: Index of the query read.
        hits_forward: Hits of the query against each subject index, forward orientation.
        hits_reverse: Hits of the reverse complement of the query against each subject index.
        codes_forward: K-mer codes of the query by position, used to fill missing hits.
        codes_reverse: K-mer codes of the reverse complement of the query.
        compression_factor: Ratio between compressed and real coordinates; overlaps are divided by it.
        kmer_length: Length of the k-mers behind the hits and codes.
    """
    query_idx: int
    hits_forward: Mapping[int, HitList]
    hits_reverse: Mapping[int, HitList]
    codes_forward: Optional[Mapping[int, int]] = None
    codes_reverse: Optional[Mapping[int, int]] = None
    compression_factor: float = 1.0
    kmer_length: int = 15

    def __post_init__(self):
        if self.compression_factor <= 0:
            raise ValueError(f'Compression factor must be positive, got {self.compression_factor}')
        if self.compression_factor < 1:
            warn(f'Compression factor {self.compression_factor} < 1 will inflate overlaps of read {self.query_idx}',
                 ParameterWarning)
        if self.kmer_length < 1: raise ValueError(f'K-mer length must be positive, got {self.kmer_length}')

    @property
    def self_hits(self) -> int:
        """Number of hits of the query against itself, 1 if the index reported none."""
        hits = self.hits_forward.get(self.query_idx)
        return 1 if hits is None else len(hits)


class KmerCodesCache:
    """
    Write-once store of forward k-mer codes of processed reads, bounded by their total length.

    Args:
        budget: Total read length that may be cached.
    """
    __slots__ = ('budget', 'kmer_length', '_codes', '_total_length', '_lock')

    def __init__(self, budget: int = 0):
        self.budget = budget
        self.kmer_length = None
        self._codes: dict[int, Mapping[int, int]] = {}
        self._total_length = 0
        self._lock = Lock()

    def __len__(self): return len(self._codes)
    def __contains__(self, idx: int): return idx in self._codes
    @property
    def total_length(self) -> int: return self._total_length

    def get(self, idx: int, start: int, end: int) -> Optional[dict[int, int]]:
        """Returns the cached codes of a read at positions in ``[start, end]``, or None if the read is not cached."""
        with self._lock: codes = self._codes.get(idx)
        if codes is None: return None
        return {pos: code for pos, code in codes.items() if start <= pos <= end}

    def put(self, idx: int, codes: Mapping[int, int], length: int, kmer_length: int) -> bool:
        """
        Caches the codes of a read while the budget is not exhausted.

        Returns:
            Whether the codes were stored.
        """
        with self._lock:
            if self._total_length >= self.budget or idx in self._codes: return False
            if self.kmer_length is None: self.kmer_length = kmer_length
            elif self.kmer_length != kmer_length:
                warn(f'Caching codes of read {idx} with k={kmer_length}, cached codes use k={self.kmer_length}',
                     ParameterWarning)
            self._codes[idx] = dict(codes)
            self._total_length += length
            return True


class EdgeClassifier:
    """
    Adds overlap edges and embeddings to an assembly graph from the k-mer hits of each read.

    For every subject with enough raw hits, the best anchor cluster per orientation is optionally completed
    with hits from k-mer codes, filtered by predicted overlap and evidence, and classified by where the
    query's predicted extent falls on the subject.

    Args:
        graph: The graph to update.
        config: Filtering parameters.
        clusterer: Hit chaining engine.

    Examples:
        >>> graph = AssemblyGraph(reads)
        >>> classifier = EdgeClassifier(graph)
        >>> classifier.update_graph(QuerySeeds(5, hits_forward, hits_reverse))
        2
    """
    __slots__ = ('graph', 'config', 'clusterer', 'codes_cache')

    def __init__(self, graph: AssemblyGraph, config: ClassifierConfig = None, clusterer: AnchorClusterer = None):
        self.graph = graph
        self.config = config or ClassifierConfig()
        self.clusterer = clusterer or AnchorClusterer()
        self.codes_cache = KmerCodesCache(self.config.expected_assembly_length)

    def __repr__(self): return f"EdgeClassifier({self.graph!r}, {self.config})"

    def update_graph(self, seeds: QuerySeeds) -> int:
        """
        Processes the hits of one query read.

        Args:
            seeds: Hits and codes of the query.

        Returns:
            The number of edges and embeddings added.
        """
        query_idx = seeds.query_idx
        query_length = self.graph.get_sequence_length(query_idx)
        min_hits = int(max(seeds.self_hits * self.config.min_proportion_overlap, self.config.min_hits_floor))
        trace(query_idx, 'min_hits', self_hits=seeds.self_hits, min_hits=min_hits)
        subjects_forward = self._filter_subjects(query_idx, seeds.hits_forward, min_hits)
        subjects_reverse = self._filter_subjects(query_idx, seeds.hits_reverse, min_hits)
        trace(query_idx, 'subjects', forward=len(subjects_forward), reverse=len(subjects_reverse))
        if not subjects_forward and not subjects_reverse: return 0
        clusters_forward = self._create_clusters(seeds, query_length, seeds.hits_forward, subjects_forward, False)
        clusters_reverse = self._create_clusters(seeds, query_length, seeds.hits_reverse, subjects_reverse, True)
        trace(query_idx, 'clusters', forward=len(clusters_forward), reverse=len(clusters_reverse))
        added = self._process_clusters(seeds, query_length, False, seeds.codes_forward, clusters_forward)
        added += self._process_clusters(seeds, query_length, True, seeds.codes_reverse, clusters_reverse)
        return added

    def update_graph_batch(self, seeds: Iterable[QuerySeeds]) -> int:
        """
        Processes many query reads on the shared thread pool.

        Returns:
            The number of edges and embeddings added.

        Raises:
            Exception: The first exception raised by a task, in submission order.
        """
        futures = [RESOURCES.pool.submit(self.update_graph, s) for s in seeds]
        return sum(f.result() for f in futures)

    def _filter_subjects(self, query_idx: int, hits: Mapping[int, HitList], min_hits: int) -> list[int]:
        return [i for i, subject_hits in hits.items() if i < query_idx and len(subject_hits) >= min_hits]

    def _create_clusters(self, seeds: QuerySeeds, query_length: int, hits: Mapping[int, HitList],
                         subject_idxs: list[int], reverse: bool) -> list[AnchorCluster]:
        """Keeps the cluster with the most distinct k-mers of each subject."""
        best_clusters = []
        for subject_idx in subject_idxs:
            clusters = self.clusterer.cluster(
                hits[subject_idx], query_idx=seeds.query_idx, subject_idx=subject_idx, query_length=query_length,
                subject_length=self.graph.get_sequence_length(subject_idx), kmer_length=seeds.kmer_length,
                strand=reverse
            )
            if not clusters: continue
            best = max(clusters, key=lambda c: c.num_different_kmers)  # first wins on ties
            trace(seeds.query_idx, 'cluster', subject=subject_idx, reverse=reverse, hits=len(hits[subject_idx]),
                  clusters=len(clusters), kmers=best.num_different_kmers)
            best_clusters.append(best)
        return best_clusters

    def _process_clusters(self, seeds: QuerySeeds, query_length: int, reverse: bool,
                          query_codes: Optional[Mapping[int, int]], clusters: list[AnchorCluster]) -> int:
        added = 0
        for cluster in clusters:
            if query_codes is not None: cluster.complete_missing_hits(self._subject_codes(cluster, seeds), query_codes)
            cluster.summarize()
            if self._pass_filters(seeds.query_idx, query_length, cluster):
                self._add_cluster(seeds.query_idx, reverse, seeds.compression_factor, cluster)
                added += 1
            cluster.dispose_hits()
        if not reverse and query_codes is not None:
            self.codes_cache.put(seeds.query_idx, query_codes, query_length, seeds.kmer_length)
        return added

    def _subject_codes(self, cluster: AnchorCluster, seeds: QuerySeeds) -> dict[int, int]:
        evidence = cluster.subject_evidence
        if (codes := self.codes_cache.get(cluster.subject_idx, evidence.start, evidence.end)) is not None: return codes
        return extract_dna_kmer_codes(self.graph.get_sequence(cluster.subject_idx), seeds.kmer_length,
                                      evidence.start, evidence.end)

    def _pass_filters(self, query_idx: int, query_length: int, cluster: AnchorCluster) -> bool:
        subject_length = self.graph.get_sequence_length(cluster.subject_idx)
        overlap = cluster.predicted_overlap
        min_overlap = self.config.min_proportion_overlap
        min_evidence = self.config.min_proportion_evidence * overlap
        reason = None
        if overlap <= 0: reason = 'no_overlap'
        elif overlap < min_overlap * query_length: reason = 'short_for_query'
        elif overlap < min_overlap * subject_length: reason = 'short_for_subject'
        elif len(cluster.query_evidence) < min_evidence: reason = 'query_evidence'
        elif len(cluster.subject_evidence) < min_evidence: reason = 'subject_evidence'
        if reason is None: return True
        trace(query_idx, 'rejected', subject=cluster.subject_idx, reason=reason, overlap=overlap)
        return False

    def _add_cluster(self, query_idx: int, reverse: bool, compression_factor: float, cluster: AnchorCluster):
        subject_idx = cluster.subject_idx
        kind = classify_cluster(cluster, self.graph.get_sequence_length(subject_idx))
        coverage, weighted_coverage = cluster.simulate_alignment()
        if kind.is_edge:
            if kind == OverlapKind.QUERY_AFTER_SUBJECT:
                vertices = (self.graph.get_vertex(subject_idx, False), self.graph.get_vertex(query_idx, not reverse))
            else:
                vertices = (self.graph.get_vertex(query_idx, reverse), self.graph.get_vertex(subject_idx, True))
            edge = AssemblyEdge(
                *vertices, overlap=int(cluster.predicted_overlap / compression_factor),
                overlap_sd=int(round(cluster.predicted_overlap_sd)), num_shared_kmers=cluster.num_different_kmers,
                coverage_shared_kmers=coverage, weighted_coverage_shared_kmers=weighted_coverage
            )
            self.graph.add_edge(edge)
            trace(query_idx, 'edge', kind=kind.name, vertex1=edge.vertex1, vertex2=edge.vertex2, overlap=edge.overlap)
            return
        # Spanning clusters are recorded as embeddings too
        predicted, evidence = cluster.subject_predicted, cluster.subject_evidence
        self.graph.add_embedded(AssemblyEmbedded(
            query_idx, subject_idx, reverse, predicted.start, predicted.end, evidence.start, evidence.end,
            int(round(cluster.subject_start_sd)), cluster.num_different_kmers, coverage, weighted_coverage
        ))
        trace(query_idx, 'embedded', kind=kind.name, host=subject_idx, start=predicted.start, end=predicted.end)


# Functions ------------------------------------------------------------------------------------------------------------
def classify_cluster(cluster: AnchorCluster, subject_length: int = None) -> OverlapKind:
    """
    Classifies a cluster by where the query's predicted extent falls on the subject.

    Args:
        cluster: The cluster.
        subject_length: Length of the subject; defaults to the one stored in the cluster.

    Returns:
        The overlap kind.

    Examples:
        >>> classify_cluster(AnchorCluster(0, 1, 500, 1000, [0, 20], [600, 620]))
        <OverlapKind.QUERY_AFTER_SUBJECT: 1>
    """
    if subject_length is None: subject_length = cluster.subject_length
    predicted = cluster.subject_predicted
    starts_inside = predicted.start >= 0
    ends_inside = predicted.end <= subject_length
    if starts_inside and ends_inside: return OverlapKind.EMBEDDED
    if starts_inside: return OverlapKind.QUERY_AFTER_SUBJECT
    if ends_inside: return OverlapKind.QUERY_BEFORE_SUBJECT
    return OverlapKind.SPANNING
