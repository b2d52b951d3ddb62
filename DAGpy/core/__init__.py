"""
Core functionality for DAGpy.

This module contains the graph representation (nodes and the builder that
creates them), the scheduler and evaluator, buffer management, networks and
their recurrent unrolling.
"""

from .autograd import AutogradEngine, topological_sort
from .buffers import BufferAllocator
from .builder import Builder, get_builder, use_builder
from .config import Config
from .context import Context, EvalContext
from .exceptions import (
    BindingError,
    CostError,
    CycleError,
    GraphError,
    RecurrentStateError,
    ShapeError,
    UnrollError,
)
from .function import Function
from .network import Network, RNNState
from .node import AMBIGUOUS, F_COST, F_IN, F_OUT, F_TRUTH, NOT_FOUND, Node, NodeKind
from .serialization import NetworkSaver
from .unroll import unroll

__all__ = [
    "Node",
    "NodeKind",
    "Builder",
    "get_builder",
    "use_builder",
    "Config",
    "Context",
    "EvalContext",
    "Function",
    "AutogradEngine",
    "topological_sort",
    "BufferAllocator",
    "Network",
    "RNNState",
    "NetworkSaver",
    "unroll",
    "F_IN",
    "F_OUT",
    "F_TRUTH",
    "F_COST",
    "NOT_FOUND",
    "AMBIGUOUS",
    "GraphError",
    "ShapeError",
    "CostError",
    "UnrollError",
    "CycleError",
    "BindingError",
    "RecurrentStateError",
]
