"""
Operators module for DAGpy.

This module contains every operator a graph node can apply, plus functional
wrappers for building graphs.
"""

from .activations import LogSoftmax, ReLU, Sigmoid, Softmax, Tanh
from .basic import Add, CMul, Exp, Log, MatMul, Mul, OneMinus, Scale, Square, Sub
from .functional import (
    add,
    avg,
    ce_bin,
    ce_bin_neg,
    ce_multi,
    cmul,
    concat,
    dropout,
    exp,
    log,
    log_softmax,
    matmul,
    max_,
    mse,
    mul,
    one_minus,
    reduce_mean,
    reduce_sum,
    relu,
    reshape,
    scale,
    select,
    sigmoid,
    slice_,
    softmax,
    square,
    stack,
    sub,
    sum_,
    switch,
    tanh,
)
from .loss import MSE, CrossEntropyBinary, CrossEntropyBinaryNeg, CrossEntropyMulti
from .pooling import Avg, Max, Select, Stack, Sum
from .reduction import ReduceMean, ReduceSum
from .reshape import Concat, Reshape, Slice
from .stochastic import Dropout, Switch

__all__ = [
    # Arithmetic
    "Add",
    "Sub",
    "Mul",
    "CMul",
    "MatMul",
    "Square",
    "Exp",
    "Log",
    "OneMinus",
    "Scale",
    # Activations
    "Sigmoid",
    "Tanh",
    "ReLU",
    "Softmax",
    "LogSoftmax",
    # Costs
    "CrossEntropyMulti",
    "CrossEntropyBinary",
    "CrossEntropyBinaryNeg",
    "MSE",
    # Reductions and shape
    "ReduceSum",
    "ReduceMean",
    "Reshape",
    "Concat",
    "Slice",
    # Pooling
    "Avg",
    "Sum",
    "Max",
    "Stack",
    "Select",
    # Mode sensitive
    "Dropout",
    "Switch",
    # Functional
    "add",
    "sub",
    "mul",
    "cmul",
    "matmul",
    "square",
    "exp",
    "log",
    "one_minus",
    "scale",
    "sigmoid",
    "tanh",
    "relu",
    "softmax",
    "log_softmax",
    "ce_multi",
    "ce_bin",
    "ce_bin_neg",
    "mse",
    "reduce_sum",
    "reduce_mean",
    "reshape",
    "concat",
    "slice_",
    "avg",
    "sum_",
    "max_",
    "stack",
    "select",
    "dropout",
    "switch",
]
