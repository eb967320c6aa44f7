"""
Process-wide resources: the thread pool shared by per-read tasks and the optional numba JIT.
"""
from functools import cached_property, lru_cache
from importlib import import_module
from concurrent.futures import ThreadPoolExecutor
import atexit
import os
from typing import Callable


# Classes --------------------------------------------------------------------------------------------------------------
class Resources:
    """
    Holds the worker pool on which reads are classified and aligned, and remembers which optional modules import.

    The pool is created on first use. Kernels release the GIL when numba compiles them, so threads scale with
    the number of CPUs.

    Attributes:
        max_workers: Pool size from ``LRGRAPH_THREADS``; None sizes the pool from the available CPUs.
    """
    def __init__(self) -> None:
        self.max_workers = int(os.environ.get('LRGRAPH_THREADS', 0)) or None
        atexit.register(self.shutdown)

    @cached_property
    def pool(self) -> ThreadPoolExecutor:
        """Pool for ``update_graph_batch`` and ``align_reads`` tasks."""
        cpus = getattr(os, 'process_cpu_count', os.cpu_count)() or 1
        return ThreadPoolExecutor(self.max_workers or min(32, cpus + 4), thread_name_prefix='lrgraph')

    def shutdown(self):
        """Cancels pending read tasks; a later ``pool`` access starts a fresh pool."""
        if (pool := self.__dict__.pop('pool', None)) is not None: pool.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    @lru_cache(maxsize=None)
    def has_module(module_name: str) -> bool:
        try:
            import_module(module_name)
            return True
        except ImportError: return False


# Decorators -----------------------------------------------------------------------------------------------------------
def jit(signature_or_function=None, **options) -> Callable:
    """
    Compiles a kernel with ``numba.jit`` when numba is installed, otherwise leaves it as plain Python.

    Examples:
        >>> @jit(nopython=True, cache=True, nogil=True)
        ... def _kernel(codes): ...
    """
    if not RESOURCES.has_module('numba'):
        if callable(signature_or_function): return signature_or_function
        return lambda func: func
    from numba import jit as numba_jit
    if callable(signature_or_function): return numba_jit(signature_or_function)
    return numba_jit(signature_or_function, **options)


# Constants ------------------------------------------------------------------------------------------------------------
RESOURCES = Resources()
