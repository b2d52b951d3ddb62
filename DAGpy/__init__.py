"""
DAGpy: neural networks as computational graphs

Graphs are built from nodes (feeds, trainable variables, constants and
operator applications), assembled into a network from a scalar cost and
evaluated forward and backward over flat variable and gradient buffers.
Recurrent graphs are unrolled into a fixed number of time steps or fed one
step at a time.
"""

from .core import (
    AMBIGUOUS,
    F_COST,
    F_IN,
    F_OUT,
    F_TRUTH,
    NOT_FOUND,
    Builder,
    Config,
    EvalContext,
    Function,
    Network,
    NetworkSaver,
    Node,
    use_builder,
)

__version__ = "0.1.0"

__all__ = [
    "Node",
    "Builder",
    "use_builder",
    "Config",
    "EvalContext",
    "Function",
    "Network",
    "NetworkSaver",
    "F_IN",
    "F_OUT",
    "F_TRUTH",
    "F_COST",
    "NOT_FOUND",
    "AMBIGUOUS",
]
