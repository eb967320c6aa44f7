"""
Structured trace events for graph construction, filterable by query read.

Events go to the ``lrgraph.trace`` logger at DEBUG level. Each record carries ``query``, ``event`` and
``fields`` attributes so handlers can format or collect them without parsing messages.

Examples:
    >>> handler = enable_trace(42)
    >>> finder.update_graph(seeds)  # only events for read 42 reach the handler
    >>> disable_trace()
"""
import logging
from typing import Iterable, Optional

logger = logging.getLogger('lrgraph.trace')
logger.addHandler(logging.NullHandler())


# Classes --------------------------------------------------------------------------------------------------------------
class QueryFilter(logging.Filter):
    """Passes only trace records whose ``query`` attribute is in the selected set (all if empty)."""

    def __init__(self, query_idxs: Iterable[int] = ()):
        super().__init__()
        self.query_idxs = frozenset(query_idxs)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.query_idxs: return True
        return getattr(record, 'query', None) in self.query_idxs


class TraceFormatter(logging.Formatter):
    """Renders a trace record as ``query=<idx> <event> key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        fields = ' '.join(f'{k}={v}' for k, v in getattr(record, 'fields', {}).items())
        return f"query={getattr(record, 'query', '?')} {getattr(record, 'event', record.getMessage())} {fields}".rstrip()


# Functions ------------------------------------------------------------------------------------------------------------
def trace(query_idx: int, event: str, **fields):
    """Emits one trace event for a query read. Cheap when tracing is disabled."""
    if not logger.isEnabledFor(logging.DEBUG): return
    logger.debug('%s', event, extra={'query': query_idx, 'event': event, 'fields': fields})


def enable_trace(*query_idxs: int, handler: Optional[logging.Handler] = None) -> logging.Handler:
    """
    Turns on the trace stream for the given query reads (all reads if none are given).

    Args:
        *query_idxs: Read indices to keep.
        handler: Destination for the records; defaults to a stderr ``StreamHandler``.

    Returns:
        The installed handler.
    """
    disable_trace()
    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(TraceFormatter())
    handler.addFilter(QueryFilter(query_idxs))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return handler


def disable_trace():
    """Removes the handlers installed by ``enable_trace`` and silences the stream."""
    for handler in list(logger.handlers):
        if isinstance(handler, logging.NullHandler): continue
        logger.removeHandler(handler)
    logger.setLevel(logging.WARNING)
