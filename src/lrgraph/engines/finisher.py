"""
Engine that aligns long reads to a subject sequence by chaining unique k-mers and closing the gaps between them.
"""
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Union

from lrgraph.containers.alignments import Cigar, CigarOp, ReadAlignment
from lrgraph.containers.cluster import AnchorCluster, Hit
from lrgraph.containers.graph import Read
from lrgraph.core.kmers import extract_unique_kmers, MAX_CODE_KMER_LENGTH
from lrgraph.engines.cluster import AnchorClusterer
from lrgraph.engines.pairwise import AffineGapAligner
from lrgraph.utils.resources import RESOURCES


# Classes --------------------------------------------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FinisherConfig:
    """
    Parameters of read alignment.

    Attributes:
        kmer_length: Length of the unique k-mers used as anchors.
        max_segment_length: Longest gap segment aligned with dynamic programming; longer ones abort the alignment.
        min_dp_segment: Equal-length gap segments shorter than this are taken as matches without alignment.
        ambiguity_fraction: Span overlap and seed-share fraction below which two competing clusters are ambiguous.
        match: Score of identical bases in gap alignments.
        mismatch: Penalty of different bases in gap alignments.
        gap_open: Penalty of opening a gap in gap alignments.
        gap_extend: Penalty of extending a gap in gap alignments.
        quality_char: Character of the uniform quality string of the output.
        ignore_low_complexity: Skip homopolymer and TA-repeat k-mers as anchors.
    """
    kmer_length: int = 15
    max_segment_length: int = 2000
    min_dp_segment: int = 10
    ambiguity_fraction: float = 0.9
    match: int = 1
    mismatch: int = 1
    gap_open: int = 2
    gap_extend: int = 1
    quality_char: str = '5'
    ignore_low_complexity: bool = False

    def __post_init__(self):
        if not 0 < self.kmer_length <= MAX_CODE_KMER_LENGTH:
            raise ValueError(f'kmer_length must be in [1, {MAX_CODE_KMER_LENGTH}], got {self.kmer_length}')
        if self.max_segment_length < 0:
            raise ValueError(f'max_segment_length must be non-negative, got {self.max_segment_length}')
        if not 0 <= self.ambiguity_fraction <= 1:
            raise ValueError(f'ambiguity_fraction must be in [0, 1], got {self.ambiguity_fraction}')
        if len(self.quality_char) != 1: raise ValueError(f'quality_char must be one character, got {self.quality_char!r}')


class AlignmentFinisher:
    """
    Aligns reads to a subject from anchors of k-mers that are unique in both sequences.

    Anchors are chained with an ``AnchorClusterer``; the gaps between consecutive anchors are closed with an
    ``AffineGapAligner`` unless they are short equal-length segments, which are taken as matches.

    Args:
        config: Alignment parameters.
        clusterer: Anchor chaining engine.

    Examples:
        >>> finisher = AlignmentFinisher()
        >>> aln = finisher.align_read(subject, subject[100:300])
        >>> aln.start, str(aln.cigar)
        (101, '200M')
    """
    __slots__ = ('config', 'clusterer', 'aligner')

    def __init__(self, config: FinisherConfig = None, clusterer: AnchorClusterer = None):
        self.config = config or FinisherConfig()
        self.clusterer = clusterer or AnchorClusterer()
        self.aligner = AffineGapAligner(self.config.match, self.config.mismatch, self.config.gap_open,
                                        self.config.gap_extend)

    def __repr__(self): return f"AlignmentFinisher({self.config})"

    def extract_unique_kmers(self, seq: str, start: int = 0, end: int = None) -> dict[int, str]:
        """Returns the k-mers occurring once in ``seq[start:end]``, keyed and ordered by position."""
        return extract_unique_kmers(seq, start, end, k=self.config.kmer_length,
                                    ignore_low_complexity=self.config.ignore_low_complexity)

    def align_read(self, subject: str, read: str, subject_unique_kmers: Mapping[int, str] = None,
                   subject_name: str = '*', read_name: str = '*', start: int = 0,
                   end: int = None) -> Optional[ReadAlignment]:
        """
        Aligns a read to a subject.

        Args:
            subject: The subject sequence.
            read: The read sequence.
            subject_unique_kmers: Unique k-mers of the subject by position; computed over ``[start, end)`` if
                not given.
            subject_name: Name reported in the alignment.
            read_name: Name reported in the alignment.
            start: Start of the subject region used for anchors when no k-mers are given.
            end: End of that region; defaults to the subject length.

        Returns:
            The alignment, or None if there are no anchors, the anchors are ambiguous, or a gap between anchors
            is too long to align.
        """
        if subject_unique_kmers is None: subject_unique_kmers = self.extract_unique_kmers(subject, start, end)
        subject_positions = {kmer: pos for pos, kmer in subject_unique_kmers.items()}
        hits = []
        for query_pos, kmer in self.extract_unique_kmers(read).items():
            if (subject_pos := subject_positions.get(kmer)) is not None: hits.append(Hit(query_pos, subject_pos))
        if not hits: return None
        clusters = self.clusterer.cluster(hits, query_length=len(read), subject_length=len(subject),
                                          kmer_length=self.config.kmer_length)
        clusters.sort(key=lambda c: c.num_different_kmers, reverse=True)
        if len(clusters) > 1 and self._is_ambiguous(clusters[0], clusters[1], len(hits)): return None
        return self.build_complete_alignment(subject, read, clusters[0], subject_name, read_name)

    def _is_ambiguous(self, best: AnchorCluster, second: AnchorCluster, n_hits: int) -> bool:
        fraction = self.config.ambiguity_fraction
        span1, span2 = best.subject_evidence, second.subject_evidence
        overlap = span1.overlap(span2)
        if overlap >= fraction * len(span1) and overlap >= fraction * len(span2): return False
        return best.num_different_kmers < fraction * n_hits

    def build_complete_alignment(self, subject: str, query: str, cluster: AnchorCluster, subject_name: str = '*',
                                 read_name: str = '*') -> Optional[ReadAlignment]:
        """
        Builds a full alignment from the anchors of a cluster.

        Anchors are walked in query order. The query before the first anchor and after the last aligned base
        is soft clipped. Anchors on the current diagonal that overlap the aligned region extend it, other
        overlapping anchors are skipped.

        Returns:
            The alignment, or None if a gap segment longer than ``max_segment_length`` must be aligned.
        """
        k = cluster.kmer_length
        max_segment, min_dp = self.config.max_segment_length, self.config.min_dp_segment
        runs = []
        aln_start = subject_next = query_next = None
        for hit in cluster.hits_by_query():
            q, s = hit.query_pos, hit.subject_pos
            if aln_start is None:
                aln_start = s
                runs.append((CigarOp.S, q))
            elif q >= query_next and s >= subject_next:
                subject_gap = subject[subject_next:s]
                query_gap = query[query_next:q]
                ls, lq = len(subject_gap), len(query_gap)
                if ls == lq and (ls < min_dp or ls > max_segment): runs.append((CigarOp.M, ls))
                elif ls and lq:
                    if ls > max_segment or lq > max_segment: return None
                    runs.extend(self.aligner.align(subject_gap, query_gap).cigar)
                elif ls: runs.append((CigarOp.D, ls))
                else: runs.append((CigarOp.I, lq))
            elif s - q == subject_next - query_next and q + k > query_next:
                runs.append((CigarOp.M, q + k - query_next))
                query_next, subject_next = q + k, s + k
                continue
            else: continue
            runs.append((CigarOp.M, k))
            query_next, subject_next = q + k, s + k
        if aln_start is None: return None
        runs.append((CigarOp.S, len(query) - query_next))
        return ReadAlignment(subject_name, read_name, aln_start + 1, subject_next, Cigar.make(runs), query,
                             self.config.quality_char * len(query))

    def align_reads(self, subject: str, reads: Iterable[Union[str, Read]], subject_name: str = '*',
                    start: int = 0, end: int = None) -> list[Optional[ReadAlignment]]:
        """
        Aligns many reads to one subject on the shared thread pool, sharing the subject's unique k-mers.

        Args:
            subject: The subject sequence.
            reads: Read sequences, or ``Read`` objects whose names are reported.
            subject_name: Name reported in the alignments.
            start: Start of the subject region used for anchors.
            end: End of that region; defaults to the subject length.

        Returns:
            One alignment (or None) per read, in input order.
        """
        subject_kmers = self.extract_unique_kmers(subject, start, end)
        futures = []
        for i, read in enumerate(reads):
            name, characters = (read.name, read.characters) if isinstance(read, Read) else (str(i), read)
            futures.append(RESOURCES.pool.submit(self.align_read, subject, characters, subject_kmers, subject_name,
                                                 name))
        return [f.result() for f in futures]
