"""
Layer builders for DAGpy.

Each function adds the nodes of one layer to the graph and returns the
layer's output node.
"""

from .cost import CostType, cost
from .linear import bias, dropout, input, linear, weight
from .rnn import gru, lstm, rnn

__all__ = [
    "input",
    "weight",
    "bias",
    "linear",
    "dropout",
    "rnn",
    "lstm",
    "gru",
    "cost",
    "CostType",
]
