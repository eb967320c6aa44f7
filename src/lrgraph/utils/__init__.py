"""
Shared utilities: global resources and the trace stream.
"""
from lrgraph.utils.resources import RESOURCES, jit
from lrgraph.utils.trace import trace, enable_trace, disable_trace
