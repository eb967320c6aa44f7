"""
Containers for the data flowing through graph construction: k-mer hits and anchor clusters, the assembly graph
and its elements, and read alignments.
"""
