"""
Functional graph construction.

Thin wrappers around ``Function.apply`` so graphs read like expressions:

    h = tanh(add(cmul(x, w), b))
"""

from typing import Sequence

from ..core.node import Node
from .activations import LogSoftmax, ReLU, Sigmoid, Softmax, Tanh
from .basic import Add, CMul, Exp, Log, MatMul, Mul, OneMinus, Scale, Square, Sub
from .loss import MSE, CrossEntropyBinary, CrossEntropyBinaryNeg, CrossEntropyMulti
from .pooling import Avg, Max, Select, Stack, Sum
from .reduction import ReduceMean, ReduceSum
from .reshape import Concat, Reshape, Slice
from .stochastic import Dropout, Switch


def add(a: Node, b: Node) -> Node:
    return Add.apply(a, b)


def sub(a: Node, b: Node) -> Node:
    return Sub.apply(a, b)


def mul(a: Node, b: Node) -> Node:
    return Mul.apply(a, b)


def cmul(x: Node, w: Node) -> Node:
    """x W^T"""
    return CMul.apply(x, w)


def matmul(a: Node, b: Node) -> Node:
    return MatMul.apply(a, b)


def square(x: Node) -> Node:
    return Square.apply(x)


def exp(x: Node) -> Node:
    return Exp.apply(x)


def log(x: Node) -> Node:
    return Log.apply(x)


def one_minus(x: Node) -> Node:
    return OneMinus.apply(x)


def scale(x: Node, factor: float) -> Node:
    return Scale.apply(x, factor=float(factor))


def sigmoid(x: Node) -> Node:
    return Sigmoid.apply(x)


def tanh(x: Node) -> Node:
    return Tanh.apply(x)


def relu(x: Node) -> Node:
    return ReLU.apply(x)


def softmax(x: Node) -> Node:
    return Softmax.apply(x)


def log_softmax(x: Node) -> Node:
    return LogSoftmax.apply(x)


def ce_multi(pred: Node, truth: Node) -> Node:
    return CrossEntropyMulti.apply(pred, truth)


def ce_bin(pred: Node, truth: Node) -> Node:
    return CrossEntropyBinary.apply(pred, truth)


def ce_bin_neg(pred: Node, truth: Node) -> Node:
    return CrossEntropyBinaryNeg.apply(pred, truth)


def mse(pred: Node, truth: Node) -> Node:
    return MSE.apply(pred, truth)


def reduce_sum(x: Node, axis: int = -1) -> Node:
    return ReduceSum.apply(x, axis=int(axis))


def reduce_mean(x: Node, axis: int = -1) -> Node:
    return ReduceMean.apply(x, axis=int(axis))


def reshape(x: Node, shape: Sequence[int]) -> Node:
    return Reshape.apply(x, shape=[int(d) for d in shape])


def concat(nodes: Sequence[Node], axis: int = -1) -> Node:
    return Concat.apply(*nodes, axis=int(axis))


def slice_(x: Node, axis: int, start: int, end: int) -> Node:
    return Slice.apply(x, axis=int(axis), start=int(start), end=int(end))


def avg(nodes: Sequence[Node]) -> Node:
    return Avg.apply(*nodes)


def sum_(nodes: Sequence[Node]) -> Node:
    return Sum.apply(*nodes)


def max_(nodes: Sequence[Node]) -> Node:
    return Max.apply(*nodes)


def stack(nodes: Sequence[Node]) -> Node:
    return Stack.apply(*nodes)


def select(nodes: Sequence[Node], index: int = -1) -> Node:
    return Select.apply(*nodes, index=int(index))


def dropout(x: Node, rate: Node) -> Node:
    return Dropout.apply(x, rate)


def switch(train: Node, evaluate: Node) -> Node:
    return Switch.apply(train, evaluate)
