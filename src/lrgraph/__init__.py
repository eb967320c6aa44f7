"""
Top-level module, with package warnings.

lrgraph builds long-read overlap graphs from k-mer hit evidence and finishes anchor chains into
base-level alignments.

Examples:
    >>> from lrgraph import AssemblyGraph, EdgeClassifier, QuerySeeds
    >>> graph = AssemblyGraph(reads)
    >>> EdgeClassifier(graph).update_graph_batch(seeds)
"""
from importlib.metadata import version, PackageNotFoundError

try: __version__ = version('lrgraph')
except PackageNotFoundError: __version__ = '0.0.0'


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class LrgraphWarning(Warning): pass
class ParameterWarning(LrgraphWarning): pass


from lrgraph.core.interval import Interval, Strand, InvalidIntervalError
from lrgraph.containers.cluster import Hit, AnchorCluster, ClusterStateError
from lrgraph.containers.graph import Read, AssemblyVertex, AssemblyEdge, AssemblyEmbedded, AssemblyGraph, GraphError
from lrgraph.containers.alignments import ReadAlignment, Cigar, CigarOp
from lrgraph.engines.cluster import AnchorClusterer, ClustererConfig
from lrgraph.engines.edges import EdgeClassifier, ClassifierConfig, OverlapKind, QuerySeeds, classify_cluster
from lrgraph.engines.finisher import AlignmentFinisher, FinisherConfig
from lrgraph.engines.pairwise import AffineGapAligner
