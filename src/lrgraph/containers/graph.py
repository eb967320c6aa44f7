"""
Assembly overlap graph: two vertices per read, overlap edges between read ends, and embedding records.

The graph is append-only and safe to mutate from many threads; connectivity queries go through
`scipy.sparse.csgraph`.
"""
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Iterable, Union, List, Dict

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components as _cc


# Exceptions -----------------------------------------------------------------------------------------------------------
class GraphError(ValueError):
    """Raised when an edge or embedding would link a read to itself."""


# Classes --------------------------------------------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Read:
    """
    An input read, identified by its index in the graph.

    Attributes:
        idx: Index of the read.
        name: Read name.
        characters: The read sequence.
    """
    idx: int
    name: str
    characters: str

    def __len__(self): return len(self.characters)


@dataclass(frozen=True, slots=True)
class AssemblyVertex:
    """One end of a read. Every read owns exactly one START and one END vertex."""
    read_idx: int
    is_start: bool

    def __repr__(self): return f"{self.read_idx}{'B' if self.is_start else 'E'}"


@dataclass(frozen=True, slots=True)
class AssemblyEdge:
    """
    Undirected overlap between the ends of two different reads.

    Attributes:
        vertex1: First vertex.
        vertex2: Second vertex.
        overlap: Estimated overlap length.
        overlap_sd: Standard deviation of the overlap estimate.
        num_shared_kmers: Distinct k-mers supporting the overlap.
        coverage_shared_kmers: Estimated matching bases over the overlap.
        weighted_coverage_shared_kmers: Exact k-mer bases scaled by hit weights.
    """
    vertex1: AssemblyVertex
    vertex2: AssemblyVertex
    overlap: int
    overlap_sd: float = 0.0
    num_shared_kmers: int = 0
    coverage_shared_kmers: int = 0
    weighted_coverage_shared_kmers: int = 0

    def __post_init__(self):
        if self.vertex1.read_idx == self.vertex2.read_idx:
            raise GraphError(f'Edge cannot connect two ends of read {self.vertex1.read_idx}')

    def connecting(self, vertex: AssemblyVertex) -> AssemblyVertex:
        """Returns the vertex at the other side of the edge."""
        return self.vertex2 if vertex == self.vertex1 else self.vertex1


@dataclass(frozen=True, slots=True)
class AssemblyEmbedded:
    """
    Records that a read lies within a host read.

    Attributes:
        read_idx: Index of the embedded read.
        host_idx: Index of the host read.
        is_reverse: Whether the read aligns to the reverse complement of the host.
        host_start: Predicted start of the read on the host.
        host_end: Predicted end of the read on the host.
        host_evidence_start: First host base supported by hits.
        host_evidence_end: End of the host bases supported by hits.
        host_start_sd: Standard deviation of the predicted start.
        num_shared_kmers: Distinct k-mers supporting the embedding.
        coverage: Estimated matching bases.
        weighted_coverage: Exact k-mer bases scaled by hit weights.
    """
    read_idx: int
    host_idx: int
    is_reverse: bool
    host_start: int
    host_end: int
    host_evidence_start: int = 0
    host_evidence_end: int = 0
    host_start_sd: int = 0
    num_shared_kmers: int = 0
    coverage: int = 0
    weighted_coverage: int = 0

    def __post_init__(self):
        if self.read_idx == self.host_idx: raise GraphError(f'Read {self.read_idx} cannot be embedded in itself')


class AssemblyGraph:
    """
    Thread-safe, append-only store of reads, read-end vertices, overlap edges and embeddings.

    Args:
        sequences: Read sequences, or ``Read`` objects, in index order.

    Examples:
        >>> g = AssemblyGraph(['ACGT' * 10, 'TTGCA' * 8])
        >>> g.get_vertex(0, True) is g.get_vertex(0, True)
        True
        >>> g.add_edge(AssemblyEdge(g.get_vertex(0, False), g.get_vertex(1, True), 20))
        >>> g.n_edges
        1
    """
    __slots__ = ('_reads', '_vertices', '_edges', '_edges_by_vertex', '_embedded', '_embedded_by_host',
                 '_embedded_by_read', '_lock')

    def __init__(self, sequences: Iterable[Union[str, Read]]):
        self._reads: List[Read] = []
        for i, seq in enumerate(sequences):
            self._reads.append(seq if isinstance(seq, Read) else Read(i, str(i), seq))
        self._vertices = [(AssemblyVertex(i, True), AssemblyVertex(i, False)) for i in range(len(self._reads))]
        self._edges: List[AssemblyEdge] = []
        self._edges_by_vertex: Dict[AssemblyVertex, List[AssemblyEdge]] = defaultdict(list)
        self._embedded: List[AssemblyEmbedded] = []
        self._embedded_by_host: Dict[int, List[AssemblyEmbedded]] = defaultdict(list)
        self._embedded_by_read: Dict[int, List[AssemblyEmbedded]] = defaultdict(list)
        self._lock = Lock()

    def __len__(self): return len(self._reads)
    def __getitem__(self, item) -> Read: return self._reads[item]
    def __iter__(self): return iter(self._reads)

    def __repr__(self):
        return f"AssemblyGraph with {len(self._reads)} reads, {self.n_edges} edges and {self.n_embedded} embedded"

    # --- Reads and vertices ---
    def get_sequence(self, idx: int) -> str: return self._get_read(idx).characters
    def get_sequence_length(self, idx: int) -> int: return len(self._get_read(idx))

    def get_vertex(self, idx: int, is_start: bool) -> AssemblyVertex:
        """
        Returns the START or END vertex of a read; always the same object for the same arguments.

        Raises:
            IndexError: If the read index is unknown.
        """
        self._check_read(idx)
        return self._vertices[idx][0 if is_start else 1]

    def _get_read(self, idx: int) -> Read:
        self._check_read(idx)
        return self._reads[idx]

    # --- Mutation ---
    def add_edge(self, edge: AssemblyEdge):
        self._check_read(edge.vertex1.read_idx)
        self._check_read(edge.vertex2.read_idx)
        with self._lock:
            self._edges.append(edge)
            self._edges_by_vertex[edge.vertex1].append(edge)
            self._edges_by_vertex[edge.vertex2].append(edge)

    def add_embedded(self, embedded: AssemblyEmbedded):
        self._check_read(embedded.read_idx)
        self._check_read(embedded.host_idx)
        with self._lock:
            self._embedded.append(embedded)
            self._embedded_by_host[embedded.host_idx].append(embedded)
            self._embedded_by_read[embedded.read_idx].append(embedded)

    def _check_read(self, idx: int):
        if not 0 <= idx < len(self._reads): raise IndexError(f'Unknown read index {idx}')

    # --- Inspection ---
    @property
    def edges(self) -> List[AssemblyEdge]:
        with self._lock: return list(self._edges)

    @property
    def embedded(self) -> List[AssemblyEmbedded]:
        with self._lock: return list(self._embedded)

    @property
    def n_edges(self) -> int:
        with self._lock: return len(self._edges)

    @property
    def n_embedded(self) -> int:
        with self._lock: return len(self._embedded)

    def get_edges(self, vertex: AssemblyVertex) -> List[AssemblyEdge]:
        with self._lock: return list(self._edges_by_vertex.get(vertex, ()))

    def get_embedded(self, host_idx: int) -> List[AssemblyEmbedded]:
        """Returns the embeddings hosted by a read."""
        with self._lock: return list(self._embedded_by_host.get(host_idx, ()))

    def get_embedded_by_read(self, read_idx: int) -> List[AssemblyEmbedded]:
        """Returns the embeddings in which a read is the embedded one."""
        with self._lock: return list(self._embedded_by_read.get(read_idx, ()))

    def is_embedded(self, read_idx: int) -> bool:
        with self._lock: return bool(self._embedded_by_read.get(read_idx))

    def get_matrix(self) -> csr_matrix:
        """
        Builds the read-level adjacency matrix, linking reads that share an edge or an embedding.

        Returns:
            A symmetric ``(n_reads, n_reads)`` CSR matrix with unit weights.
        """
        n = len(self._reads)
        with self._lock:
            pairs = [(e.vertex1.read_idx, e.vertex2.read_idx) for e in self._edges]
            pairs.extend((e.read_idx, e.host_idx) for e in self._embedded)
        if not pairs: return csr_matrix((n, n))
        u, v = np.asarray(pairs, dtype=np.int32).T
        rows = np.concatenate([u, v])
        cols = np.concatenate([v, u])
        data = np.ones(len(rows), dtype=np.float64)
        matrix = csr_matrix((data, (rows, cols)), shape=(n, n))
        matrix.sum_duplicates()
        return matrix

    def connected_components(self) -> List[List[int]]:
        """
        Groups reads connected by edges or embeddings.

        Returns:
            Lists of read indices, one per component, ordered by their smallest read index.
        """
        if not self._reads: return []
        _, labels = _cc(self.get_matrix(), directed=False)
        components = defaultdict(list)
        for idx, label in enumerate(labels.tolist()): components[label].append(idx)
        return sorted(components.values(), key=lambda c: c[0])
